"""Revoked token registry: jti blocklist consulted on every authenticated request."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.database import utcnow
from authgate.models.revoked_token import RevokedToken


async def revoke(
    db: AsyncSession,
    jti: str,
    expires_at: datetime,
    user_id: int | None = None,
) -> None:
    # Idempotent: a second logout with the same token is a no-op here
    if await is_revoked(db, jti):
        return
    db.add(RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at))
    await db.flush()


async def is_revoked(db: AsyncSession, jti: str) -> bool:
    result = await db.execute(select(RevokedToken.id).where(RevokedToken.jti == jti))
    return result.first() is not None


async def purge_expired(db: AsyncSession, now: datetime | None = None) -> int:
    """Drop rows for tokens that have expired on their own. Returns the count."""
    result = await db.execute(
        delete(RevokedToken).where(RevokedToken.expires_at <= (now or utcnow()))
    )
    return result.rowcount or 0
