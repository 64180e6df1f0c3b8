"""
Tests for the audit log service and request provenance.
"""

from datetime import timedelta

from authgate.database import utcnow
from authgate.models.auth_event import AuthAction
from authgate.services import audit_log
from authgate.services.audit_log import RequestContext


CTX = RequestContext(ip_address="198.51.100.4", user_agent="pytest")


class TestRequestContext:

    def test_defaults_to_unknown(self):
        ctx = RequestContext.from_headers({})
        assert ctx.ip_address == "unknown"
        assert ctx.user_agent == "unknown"

    def test_forwarded_for_first_hop_wins(self):
        ctx = RequestContext.from_headers(
            {"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "10.0.0.2"},
            client_host="127.0.0.1",
        )
        assert ctx.ip_address == "203.0.113.7"

    def test_real_ip_then_peer(self):
        assert RequestContext.from_headers({"x-real-ip": "10.0.0.2"}).ip_address == "10.0.0.2"
        assert RequestContext.from_headers({}, client_host="127.0.0.1").ip_address == "127.0.0.1"

    def test_user_agent(self):
        ctx = RequestContext.from_headers({"User-Agent": "curl/8.0"})
        assert ctx.user_agent == "curl/8.0"


class TestRecord:

    async def test_record_success(self, db_session):
        assert await audit_log.record(db_session, AuthAction.LOGIN, True, CTX, user_id=1)
        [event] = await audit_log.recent(db_session, 10)
        assert event.action == "login"
        assert event.success is True
        assert event.user_id == 1
        assert event.ip_address == "198.51.100.4"
        assert event.user_agent == "pytest"
        assert event.timestamp is not None

    async def test_error_reason_only_kept_on_failure(self, db_session):
        await audit_log.record(
            db_session, AuthAction.LOGIN, True, CTX, user_id=1, error_reason="ignored"
        )
        await audit_log.record(
            db_session, AuthAction.LOGIN_ATTEMPT, False, CTX, error_reason="User not found"
        )
        failed, succeeded = await audit_log.recent(db_session, 10)
        assert succeeded.error_reason is None
        assert failed.error_reason == "User not found"
        assert failed.user_id is None

    async def test_metadata_stored(self, db_session):
        await audit_log.record(
            db_session, AuthAction.ADMIN_CREATE_USER, True, CTX,
            user_id=1, metadata={"target_user_id": 2, "actor_email": "a@example.com"},
        )
        [event] = await audit_log.recent(db_session, 10)
        assert event.details == {"target_user_id": 2, "actor_email": "a@example.com"}

    async def test_write_failure_is_swallowed(self, db_session):
        """A failed insert returns False and leaves the session usable."""
        ok = await audit_log.record(
            db_session, AuthAction.LOGIN, True, CTX, metadata={"bad": object()}
        )
        assert ok is False

        assert await audit_log.record(db_session, AuthAction.LOGOUT, True, CTX)
        events = await audit_log.recent(db_session, 10)
        assert [e.action for e in events] == ["logout"]


class TestQueries:

    async def test_recent_newest_first_with_limit(self, db_session):
        for action in (AuthAction.REGISTER, AuthAction.LOGIN, AuthAction.LOGOUT):
            await audit_log.record(db_session, action, True, CTX, user_id=1)
        events = await audit_log.recent(db_session, 2)
        assert [e.action for e in events] == ["logout", "login"]

    async def test_recent_for_one_user(self, db_session):
        await audit_log.record(db_session, AuthAction.LOGIN, True, CTX, user_id=1)
        await audit_log.record(db_session, AuthAction.LOGIN, True, CTX, user_id=2)
        await audit_log.record(db_session, AuthAction.LOGIN_ATTEMPT, False, CTX)
        events = await audit_log.recent(db_session, 10, user_id=2)
        assert [e.user_id for e in events] == [2]

    async def test_count_since(self, db_session):
        await audit_log.record(db_session, AuthAction.LOGIN, True, CTX, user_id=1)
        await audit_log.record(db_session, AuthAction.LOGIN, True, CTX, user_id=2)
        await audit_log.record(db_session, AuthAction.LOGIN_ATTEMPT, False, CTX)

        since = utcnow() - timedelta(hours=24)
        assert await audit_log.count_since(db_session, AuthAction.LOGIN, since) == 2
        assert await audit_log.count_since(
            db_session, AuthAction.LOGIN_ATTEMPT, since, success=False
        ) == 1
        assert await audit_log.count_since(
            db_session, AuthAction.LOGIN, utcnow() + timedelta(minutes=1)
        ) == 0
