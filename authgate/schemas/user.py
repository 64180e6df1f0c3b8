"""
Pydantic schemas for User-related requests and responses.

password_hash is never part of any response schema.
"""

from datetime import datetime

from pydantic import BaseModel

from authgate.models.user import UserRole


class UserResponse(BaseModel):
    """Public representation of a User."""
    id: int
    name: str
    email: str
    role: UserRole
    is_admin: bool
    created_at: datetime
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}


class UserCreateRequest(BaseModel):
    """Request body for POST /api/users."""
    name: str | None = None
    email: str | None = None
    password: str | None = None


class UserUpdateRequest(BaseModel):
    """Request body for PUT /api/users/{id} (omitted fields are left unchanged)."""
    name: str | None = None
    email: str | None = None
    password: str | None = None


class StatsResponse(BaseModel):
    """Administrative overview; counts of logins/registrations cover the last 24 hours."""
    total_users: int
    admin_users: int
    regular_users: int
    recent_logins: int
    failed_logins: int
    registrations: int

    model_config = {"from_attributes": True}
