"""
Audit log: append-only record of authentication events.

Every credential operation in the gateway, successful or not, records an
AuthEvent here. Recording is best-effort from the caller's point of view:
the insert runs in its own SAVEPOINT, and a failure is written to the
operator log and swallowed. An audit hiccup can never turn a successful
login into an error, nor roll back the work around it.

Rows are never updated or deleted; nothing in this module does either.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.models.auth_event import AuthAction, AuthEvent

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass(frozen=True)
class RequestContext:
    """Best-effort provenance of the request that triggered an event."""
    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        client_host: str | None = None,
    ) -> "RequestContext":
        """
        Build from request headers (keys compared case-insensitively).

        A proxy's X-Forwarded-For (first hop) or X-Real-IP wins over the
        socket peer address.
        """
        lowered = {k.lower(): v for k, v in headers.items()}
        forwarded = lowered.get("x-forwarded-for", "").split(",")[0].strip()
        ip_address = forwarded or lowered.get("x-real-ip") or client_host or UNKNOWN
        user_agent = lowered.get("user-agent") or UNKNOWN
        return cls(ip_address=ip_address, user_agent=user_agent)


async def record(
    db: AsyncSession,
    action: AuthAction,
    success: bool,
    ctx: RequestContext,
    user_id: int | None = None,
    error_reason: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """
    Append one event. Never raises.

    Returns:
        True if the row was written, False if the write failed (logged).
    """
    event = AuthEvent(
        user_id=user_id,
        action=action.value,
        success=success,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        error_reason=None if success else error_reason,
        details=metadata,
    )
    try:
        async with db.begin_nested():
            db.add(event)
    except SQLAlchemyError:
        logger.error(
            "Failed to write audit event",
            extra={"action": action.value, "user_id": user_id},
            exc_info=True,
        )
        return False
    return True


async def recent(
    db: AsyncSession,
    limit: int,
    user_id: int | None = None,
) -> list[AuthEvent]:
    """Newest first, at most `limit` rows, optionally for one user only."""
    query = select(AuthEvent)
    if user_id is not None:
        query = query.where(AuthEvent.user_id == user_id)
    query = query.order_by(AuthEvent.timestamp.desc(), AuthEvent.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def count_since(
    db: AsyncSession,
    action: AuthAction,
    since: datetime,
    success: bool = True,
) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(AuthEvent)
        .where(
            AuthEvent.action == action.value,
            AuthEvent.success == success,
            AuthEvent.timestamp > since,
        )
    )
    return result.scalar_one()
