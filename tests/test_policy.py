"""
Tests for the authorization policy and the startup allow-list bootstrap.
"""

from authgate.database import utcnow
from authgate.models.user import User, UserRole
from authgate.policy import AuthorizationPolicy
from authgate.security import TokenClaims, TokenSubject, verify_password
from authgate.services import user_store

HASH = "$2b$10$placeholderplaceholderplaceholderplaceholderplacehold"


def claims_for(role: str) -> TokenClaims:
    now = utcnow()
    return TokenClaims(
        subject=TokenSubject(user_id=1, email="x@example.com", name="X", role=role),
        token_id="jti",
        issued_at=now,
        expires_at=now,
    )


class TestPolicyChecks:

    def test_role_for_email_is_exact_match(self):
        policy = AuthorizationPolicy(["admin@example.com"])
        assert policy.role_for_email("admin@example.com") == UserRole.ADMIN
        assert policy.role_for_email("Admin@example.com") == UserRole.USER
        assert policy.role_for_email(" admin@example.com") == UserRole.USER

    def test_is_admin_reads_role(self):
        policy = AuthorizationPolicy()
        assert policy.is_admin(claims_for("admin"))
        assert not policy.is_admin(claims_for("user"))
        assert policy.is_admin(User(email="a@example.com", role=UserRole.ADMIN))
        assert not policy.is_admin(User(email="a@example.com", role=UserRole.USER))

    def test_allow_list_alone_does_not_grant_admin(self):
        """Privilege comes from the role, not from the address."""
        policy = AuthorizationPolicy(["boss@example.com"])
        user = User(email="boss@example.com", role=UserRole.USER)
        assert not policy.is_admin(user)
        assert policy.is_protected(user)

    def test_is_protected(self):
        policy = AuthorizationPolicy(["boss@example.com"])
        assert policy.is_protected(User(email="root@example.com", role=UserRole.ADMIN))
        assert not policy.is_protected(User(email="jane@example.com", role=UserRole.USER))


class TestBootstrap:

    async def test_promotes_existing_account(self, db_session):
        user = await user_store.create_user(db_session, "Boss", "boss@example.com", HASH)
        policy = AuthorizationPolicy(["boss@example.com"])

        await policy.bootstrap(db_session)

        refreshed = await user_store.find_by_id(db_session, user.id)
        assert refreshed.role == UserRole.ADMIN

    async def test_seeds_missing_account_with_password(self, db_session):
        policy = AuthorizationPolicy(["boss@example.com"])

        await policy.bootstrap(db_session, seed_password="seed-pass", seed_name="Boss")

        seeded = await user_store.find_by_email(db_session, "boss@example.com")
        assert seeded is not None
        assert seeded.name == "Boss"
        assert seeded.role == UserRole.ADMIN
        assert verify_password("seed-pass", seeded.password_hash)

    async def test_no_seed_without_password(self, db_session):
        policy = AuthorizationPolicy(["boss@example.com"])
        await policy.bootstrap(db_session)
        assert await user_store.count_users(db_session) == 0

    async def test_leaves_other_accounts_alone(self, db_session):
        await user_store.create_user(db_session, "Jane", "jane@example.com", HASH)
        await AuthorizationPolicy(["boss@example.com"]).bootstrap(db_session)
        jane = await user_store.find_by_email(db_session, "jane@example.com")
        assert jane.role == UserRole.USER
