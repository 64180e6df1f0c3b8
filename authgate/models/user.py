"""
User model: the authentication identity.

Each User is a login credential (email + hashed password) with a display
name and a role. Email is the primary lookup key and is unique as stored;
no case folding is applied, so "Alice@x.com" and "alice@x.com" are distinct.

Roles:
  - ADMIN: may use the /api/users administrative surface
  - USER: everyone else (the default for self-registration)

The role is assigned from the administrator allow-list when an account is
created (or at startup bootstrap); after that it is the role attribute, not
the email value, that authorization checks consult.

The password is stored as a bcrypt hash and never leaves the service.
"""

import enum
from datetime import datetime

from sqlalchemy import Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authgate.database import Base, UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    """
    Inherits from str so the value serializes naturally to JSON and is
    stored as a plain string.
    """
    ADMIN = "admin"
    USER = "user"


class User(Base):
    __tablename__ = "users"

    # Integer id, stable for the account's lifetime
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # The unique index is the real guard against duplicate registrations
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=16),
        default=UserRole.USER,
        nullable=False,
    )

    # Set once at creation
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        nullable=False,
    )

    last_login_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role.value}>"
