"""
Pydantic schemas for the /api/auth endpoints.

Request fields are all optional at the schema level: presence and length
rules are enforced by the gateway, so both transports report missing
fields with the same 400 message instead of a framework validation error.
"""

from pydantic import BaseModel

from authgate.schemas.user import UserResponse


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""
    name: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""
    email: str | None = None
    password: str | None = None


class AuthResponse(BaseModel):
    """Response body for successful register/login: user view + bearer token."""
    token: str
    token_type: str = "bearer"
    user: UserResponse


class MessageResponse(BaseModel):
    message: str
