"""
Auth gateway: the request-handling composition layer.

One set of transport-neutral operations (inputs -> result or domain
error) that both transports call: the FastAPI routers in authgate.routers
and the per-invocation handler in authgate.serverless. Neither transport
contains business logic of its own, so the two can't drift apart.

Every operation takes the request's AsyncSession; operations that record
audit events also take the RequestContext. The caller owns the session's
transaction: commit after success and after domain errors (so failure
audit rows persist), roll back otherwise.

Register flow:
  1. Validate name/email/password (BadRequestError)
  2. Hash the password off the event loop
  3. INSERT; the unique index turns a duplicate into a conflict
  4. Record the event, issue a token

Login flow:
  1. Reject passwords over the byte cap, then look up by email
  2. Verify password off the event loop
  3. Same InvalidCredentialsError for "no such email" and "wrong password"
  4. Stamp last_login_at (best-effort), record the event, issue a token

Admin operations check the caller's role from the verified token before
touching the credential store.
"""

import logging
import re
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import Settings
from authgate.database import utcnow
from authgate.exceptions import (
    AuthServiceError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    RegistrationConflictError,
    UnauthorizedError,
)
from authgate.models.auth_event import AuthAction, AuthEvent
from authgate.models.user import User, UserRole
from authgate.policy import AuthorizationPolicy
from authgate.security import (
    TokenClaims,
    TokenIssuer,
    TokenSubject,
    hash_password_async,
    verify_password_async,
)
from authgate.services import audit_log, revocation_store, user_store
from authgate.services.audit_log import RequestContext

logger = logging.getLogger(__name__)

# Same shape check as the sign-up form: something@something.tld, no spaces
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

STATS_WINDOW = timedelta(hours=24)


@dataclass(frozen=True)
class AuthResult:
    user: User
    token: str


@dataclass(frozen=True)
class AdminStats:
    total_users: int
    admin_users: int
    regular_users: int
    recent_logins: int
    failed_logins: int
    registrations: int


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


class AuthGateway:
    def __init__(
        self,
        tokens: TokenIssuer,
        policy: AuthorizationPolicy,
        password_min_length: int = 6,
        password_max_length: int = 72,
        events_limit: int = 100,
    ):
        self.tokens = tokens
        self.policy = policy
        self.password_min_length = password_min_length
        self.password_max_length = password_max_length
        self.events_limit = events_limit

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _check_password(self, password: str) -> None:
        if len(password) < self.password_min_length:
            raise BadRequestError(
                f"Password must be at least {self.password_min_length} characters"
            )
        # Cap before hashing: bcrypt work must not scale with attacker input
        if len(password.encode("utf-8")) > self.password_max_length:
            raise BadRequestError(
                f"Password must be at most {self.password_max_length} bytes"
            )

    @staticmethod
    def _check_email(email: str) -> None:
        if not EMAIL_PATTERN.match(email):
            raise BadRequestError("Invalid email address")

    def _issue_token(self, user: User) -> str:
        return self.tokens.issue(
            TokenSubject(
                user_id=user.id,
                email=user.email,
                name=user.name,
                role=user.role.value,
            )
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def register(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        name: str | None,
        email: str | None,
        password: str | None,
    ) -> AuthResult:
        if _is_blank(name) or _is_blank(email) or not password:
            raise BadRequestError("All fields are required")
        self._check_email(email)
        self._check_password(password)

        try:
            password_hash = await hash_password_async(password)
        except ValueError as exc:
            logger.error(f"Password hashing failed: {exc}", extra={"action": "register"})
            raise InternalError("Password processing error")

        try:
            user = await user_store.create_user(
                db, name.strip(), email, password_hash,
                role=self.policy.role_for_email(email),
            )
        except ConflictError as exc:
            await audit_log.record(
                db, AuthAction.REGISTER, False, ctx, error_reason=exc.detail,
            )
            raise RegistrationConflictError("Email already exists")
        except SQLAlchemyError as exc:
            logger.error("User creation failed", extra={"action": "register"}, exc_info=True)
            await audit_log.record(
                db, AuthAction.REGISTER, False, ctx, error_reason=str(exc),
            )
            raise InternalError("User creation failed")

        await audit_log.record(db, AuthAction.REGISTER, True, ctx, user_id=user.id)
        logger.info("User registered", extra={"action": "register", "user_id": user.id})
        return AuthResult(user=user, token=self._issue_token(user))

    async def login(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        email: str | None,
        password: str | None,
    ) -> AuthResult:
        if _is_blank(email) or not password:
            raise BadRequestError("Email and password are required")

        # Same cap as registration, before any lookup or bcrypt work. bcrypt
        # would otherwise truncate at 72 bytes and accept trailing junk.
        if len(password.encode("utf-8")) > self.password_max_length:
            await audit_log.record(
                db, AuthAction.LOGIN_ATTEMPT, False, ctx, error_reason="Password too long",
            )
            raise InvalidCredentialsError()

        try:
            user = await user_store.find_by_email(db, email)
        except SQLAlchemyError as exc:
            logger.error("User lookup failed", extra={"action": "login"}, exc_info=True)
            await audit_log.record(
                db, AuthAction.LOGIN_ATTEMPT, False, ctx, error_reason=str(exc),
            )
            raise InternalError("Database error")

        if user is None:
            await audit_log.record(
                db, AuthAction.LOGIN_ATTEMPT, False, ctx, error_reason="User not found",
            )
            raise InvalidCredentialsError()

        try:
            matches = await verify_password_async(password, user.password_hash)
        except ValueError as exc:
            logger.error(
                f"Password verification failed: {exc}",
                extra={"action": "login", "user_id": user.id},
            )
            await audit_log.record(
                db, AuthAction.LOGIN_ATTEMPT, False, ctx,
                user_id=user.id, error_reason="Password verification error",
            )
            raise InternalError("Authentication error")

        if not matches:
            await audit_log.record(
                db, AuthAction.LOGIN_ATTEMPT, False, ctx,
                user_id=user.id, error_reason="Invalid password",
            )
            raise InvalidCredentialsError()

        await user_store.touch_last_login(db, user)
        await audit_log.record(db, AuthAction.LOGIN, True, ctx, user_id=user.id)
        return AuthResult(user=user, token=self._issue_token(user))

    async def authenticate(self, db: AsyncSession, token: str | None) -> TokenClaims:
        """
        Resolve a bearer token to its claims.

        Raises:
            UnauthorizedError: No token was presented (401).
            InvalidTokenError: Bad signature, malformed, expired, or revoked (403).
        """
        if not token:
            raise UnauthorizedError("Access token required")
        claims = self.tokens.verify(token)
        try:
            revoked = await revocation_store.is_revoked(db, claims.token_id)
        except SQLAlchemyError:
            logger.error("Revocation lookup failed", exc_info=True)
            raise InternalError("Database error")
        if revoked:
            raise InvalidTokenError("Token has been revoked")
        return claims

    async def logout(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        claims: TokenClaims,
    ) -> None:
        """Revoke the presented token for the rest of its lifetime and record the logout."""
        try:
            await revocation_store.revoke(
                db, claims.token_id, claims.expires_at, user_id=claims.user_id,
            )
        except SQLAlchemyError:
            logger.error(
                "Token revocation failed",
                extra={"action": "logout", "user_id": claims.user_id},
                exc_info=True,
            )
            raise InternalError("Database error")
        await audit_log.record(db, AuthAction.LOGOUT, True, ctx, user_id=claims.user_id)

    async def get_profile(self, db: AsyncSession, claims: TokenClaims) -> User:
        user = await self._load_user(db, claims.user_id)
        if user is None:
            # Deleted while a token was still valid
            raise NotFoundError()
        return user

    async def list_events(self, db: AsyncSession, claims: TokenClaims) -> list[AuthEvent]:
        """
        Most recent events, capped at this gateway's events_limit.

        Administrators see every event; other users see only their own.
        """
        scope = None if self.policy.is_admin(claims) else claims.user_id
        try:
            return await audit_log.recent(db, self.events_limit, user_id=scope)
        except SQLAlchemyError:
            logger.error("Event listing failed", exc_info=True)
            raise InternalError("Database error")

    # ------------------------------------------------------------------
    # Administrative operations
    # ------------------------------------------------------------------

    def require_admin(self, claims: TokenClaims) -> None:
        if not self.policy.is_admin(claims):
            raise ForbiddenError("Admin access required")

    async def list_users(self, db: AsyncSession, claims: TokenClaims) -> list[User]:
        self.require_admin(claims)
        try:
            return await user_store.list_users(db)
        except SQLAlchemyError:
            logger.error("User listing failed", exc_info=True)
            raise InternalError("Database error")

    async def get_user(self, db: AsyncSession, claims: TokenClaims, user_id: int) -> User:
        self.require_admin(claims)
        user = await self._load_user(db, user_id)
        if user is None:
            raise NotFoundError()
        return user

    async def create_user(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        claims: TokenClaims,
        name: str | None,
        email: str | None,
        password: str | None,
    ) -> User:
        self.require_admin(claims)
        action = AuthAction.ADMIN_CREATE_USER

        if _is_blank(name) or _is_blank(email) or not password:
            raise BadRequestError("All fields are required")
        self._check_email(email)
        self._check_password(password)

        async def operation() -> User:
            password_hash = await hash_password_async(password)
            return await user_store.create_user(
                db, name.strip(), email, password_hash,
                role=self.policy.role_for_email(email),
            )

        user = await self._admin_mutation(db, ctx, claims, action, None, operation)
        await self._record_admin(db, ctx, claims, action, True, user.id)
        return user

    async def update_user(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        claims: TokenClaims,
        user_id: int,
        name: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ) -> User:
        self.require_admin(claims)
        action = AuthAction.ADMIN_UPDATE_USER

        if name is None and email is None and password is None:
            raise BadRequestError("No fields to update")
        if name is not None and _is_blank(name):
            raise BadRequestError("Name cannot be empty")
        if email is not None:
            self._check_email(email)
        if password is not None:
            self._check_password(password)

        async def operation() -> User:
            password_hash = None
            if password is not None:
                password_hash = await hash_password_async(password)
            # Moving an account onto an allow-listed address grants admin;
            # moving off one never demotes an existing administrator.
            role = UserRole.ADMIN if self.policy.is_admin_email(email) else None
            return await user_store.update_user(
                db, user_id,
                name=name.strip() if name is not None else None,
                email=email,
                password_hash=password_hash,
                role=role,
            )

        user = await self._admin_mutation(db, ctx, claims, action, user_id, operation)
        await self._record_admin(db, ctx, claims, action, True, user_id)
        return user

    async def delete_user(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        claims: TokenClaims,
        user_id: int,
    ) -> None:
        self.require_admin(claims)
        action = AuthAction.ADMIN_DELETE_USER

        async def operation() -> User:
            return await user_store.delete_user(db, user_id, self.policy)

        await self._admin_mutation(db, ctx, claims, action, user_id, operation)
        await self._record_admin(db, ctx, claims, action, True, user_id)

    async def stats_overview(self, db: AsyncSession, claims: TokenClaims) -> AdminStats:
        """
        Headline counts for the admin dashboard.

        admin_users counts the admin role, which is authoritative. The
        allow-list only assigns that role, so an allow-listed address that
        was never promoted is counted as a regular user.
        """
        self.require_admin(claims)
        since = utcnow() - STATS_WINDOW
        try:
            total = await user_store.count_users(db)
            admins = await user_store.count_by_role(db, UserRole.ADMIN)
            recent_logins = await audit_log.count_since(db, AuthAction.LOGIN, since)
            failed_logins = await audit_log.count_since(
                db, AuthAction.LOGIN_ATTEMPT, since, success=False,
            )
            registrations = await audit_log.count_since(db, AuthAction.REGISTER, since)
        except SQLAlchemyError:
            logger.error("Statistics query failed", exc_info=True)
            raise InternalError("Database error")

        return AdminStats(
            total_users=total,
            admin_users=admins,
            regular_users=total - admins,
            recent_logins=recent_logins,
            failed_logins=failed_logins,
            registrations=registrations,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_user(self, db: AsyncSession, user_id: int) -> User | None:
        try:
            return await user_store.find_by_id(db, user_id)
        except SQLAlchemyError:
            logger.error("User lookup failed", extra={"user_id": user_id}, exc_info=True)
            raise InternalError("Database error")

    async def _admin_mutation(self, db, ctx, claims, action, target_id, operation):
        """
        Run an admin write, recording a failed event for any error.

        Domain errors pass through unchanged; store and hashing failures
        become a generic InternalError.
        """
        try:
            return await operation()
        except AuthServiceError as exc:
            await self._record_admin(db, ctx, claims, action, False, target_id, exc.detail)
            raise
        except (SQLAlchemyError, ValueError) as exc:
            logger.error(
                f"{action.value} failed",
                extra={"action": action.value, "user_id": claims.user_id},
                exc_info=True,
            )
            await self._record_admin(db, ctx, claims, action, False, target_id, str(exc))
            raise InternalError("Database error")

    async def _record_admin(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        claims: TokenClaims,
        action: AuthAction,
        success: bool,
        target_id: int | None,
        error_reason: str | None = None,
    ) -> None:
        # Attributed to the acting administrator, not the affected account
        await audit_log.record(
            db, action, success, ctx,
            user_id=claims.user_id,
            error_reason=error_reason,
            metadata={"target_user_id": target_id, "actor_email": claims.email},
        )


def build_gateway(settings: Settings, events_limit: int | None = None) -> AuthGateway:
    """Construct a gateway from configuration."""
    tokens = TokenIssuer(
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expires_in=timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    )
    return AuthGateway(
        tokens=tokens,
        policy=AuthorizationPolicy(settings.ADMIN_EMAILS),
        password_min_length=settings.PASSWORD_MIN_LENGTH,
        password_max_length=settings.PASSWORD_MAX_LENGTH,
        events_limit=events_limit if events_limit is not None else settings.SERVER_EVENTS_LIMIT,
    )
