"""
AuthEvent model: append-only audit record of authentication activity.

Rows are inserted by the audit log service and never updated or deleted.
user_id is deliberately not a foreign key: the history must outlive the
accounts it describes, including deleted ones, and is null when the
subject couldn't be resolved (e.g. a login against an unknown email).
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from authgate.database import Base, UTCDateTime, utcnow


class AuthAction(str, enum.Enum):
    REGISTER = "register"
    LOGIN = "login"
    LOGIN_ATTEMPT = "login_attempt"
    LOGOUT = "logout"
    ADMIN_CREATE_USER = "admin_create_user"
    ADMIN_UPDATE_USER = "admin_update_user"
    ADMIN_DELETE_USER = "admin_delete_user"


class AuthEvent(Base):
    __tablename__ = "auth_events"

    # Monotonically increasing by insertion
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(32), nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )

    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")

    user_agent: Mapped[str] = mapped_column(String(512), nullable=False, default="unknown")

    # Only populated on failure
    error_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes, hence the attribute name
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
