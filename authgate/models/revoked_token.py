"""
RevokedToken model: jti blocklist for session token revocation.

Logout inserts the token's jti here and the gateway checks this table on
every authenticated request. expires_at mirrors the token's own exp, so
rows can be pruned once the token would have expired anyway.
"""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authgate.database import Base, UTCDateTime, utcnow


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    jti: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)

    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    revoked_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
