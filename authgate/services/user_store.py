"""
Credential store: the users table, the single source of truth for identity.

Plain async functions over an AsyncSession, separated from HTTP concerns.

Concurrency note:
  Uniqueness of email is enforced by the database's unique index, not by
  looking before inserting. Two concurrent registrations for one address
  both attempt the INSERT; the store lets exactly one through and the
  other surfaces as ConflictError. Writes that may hit the constraint run
  inside a SAVEPOINT so the failure doesn't poison the request's session,
  and the caller can still record an audit event afterwards.
"""

import logging
from datetime import timedelta
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.database import utcnow
from authgate.exceptions import ConflictError, ForbiddenError, NotFoundError
from authgate.models.user import User, UserRole
from authgate.policy import AuthorizationPolicy

logger = logging.getLogger(__name__)


async def create_user(
    db: AsyncSession,
    name: str,
    email: str,
    password_hash: str,
    role: UserRole = UserRole.USER,
) -> User:
    """
    Insert a new user.

    Raises:
        ConflictError: If the email already exists.
    """
    user = User(name=name, email=email, password_hash=password_hash, role=role)
    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError:
        raise ConflictError("Email already exists")
    return user


async def find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def find_by_id(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id)


async def update_user(
    db: AsyncSession,
    user_id: int,
    name: str | None = None,
    email: str | None = None,
    password_hash: str | None = None,
    role: UserRole | None = None,
) -> User:
    """
    Apply the given changes; None means "leave unchanged".

    Raises:
        NotFoundError: If no user has this id.
        ConflictError: If the new email belongs to a different user.
    """
    user = await find_by_id(db, user_id)
    if user is None:
        raise NotFoundError()

    try:
        async with db.begin_nested():
            if name is not None:
                user.name = name
            if email is not None:
                user.email = email
            if password_hash is not None:
                user.password_hash = password_hash
            if role is not None:
                user.role = role
    except IntegrityError:
        # The savepoint rollback expires the row; callers must not reuse it
        raise ConflictError("Email already in use")
    return user


async def delete_user(
    db: AsyncSession,
    user_id: int,
    policy: AuthorizationPolicy,
) -> User:
    """
    Delete a user unless the policy protects it.

    Raises:
        NotFoundError: If no user has this id.
        ForbiddenError: If the user is an administrator.
    """
    user = await find_by_id(db, user_id)
    if user is None:
        raise NotFoundError()
    if policy.is_protected(user):
        raise ForbiddenError("Cannot delete admin users")

    await db.delete(user)
    await db.flush()
    return user


async def touch_last_login(db: AsyncSession, user: User) -> bool:
    """
    Stamp last_login_at; best-effort.

    Returns False (and logs) on failure instead of raising, so a hiccup
    here never fails the login itself. Values strictly increase even if
    two logins land within the clock's resolution.
    """
    user_id = user.id
    now = utcnow()
    if user.last_login_at is not None and now <= user.last_login_at:
        now = user.last_login_at + timedelta(microseconds=1)
    try:
        async with db.begin_nested():
            user.last_login_at = now
    except SQLAlchemyError:
        logger.error(
            "Failed to update last login timestamp",
            extra={"user_id": user_id},
            exc_info=True,
        )
        # The savepoint rollback expired the row; reload it for the caller
        await db.refresh(user)
        return False
    return True


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(
        select(User).order_by(User.created_at.desc(), User.id.desc())
    )
    return list(result.scalars().all())


async def count_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(User))
    return result.scalar_one()


async def count_by_emails(db: AsyncSession, emails: Iterable[str]) -> int:
    emails = list(emails)
    if not emails:
        return 0
    result = await db.execute(
        select(func.count()).select_from(User).where(User.email.in_(emails))
    )
    return result.scalar_one()


async def count_by_role(db: AsyncSession, role: UserRole) -> int:
    result = await db.execute(
        select(func.count()).select_from(User).where(User.role == role)
    )
    return result.scalar_one()
