"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table (create_all, Alembic autogenerate)
  2. Other modules can import from authgate.models directly
"""

from authgate.models.user import User, UserRole  # noqa: F401
from authgate.models.auth_event import AuthEvent, AuthAction  # noqa: F401
from authgate.models.revoked_token import RevokedToken  # noqa: F401
