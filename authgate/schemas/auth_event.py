"""Pydantic schema for audit events returned by GET /api/auth/events."""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class AuthEventResponse(BaseModel):
    id: int
    user_id: int | None
    action: str
    success: bool
    timestamp: datetime
    ip_address: str
    user_agent: str
    error_reason: str | None = None
    # Stored on the ORM model as `details` (declarative classes reserve "metadata")
    metadata: dict[str, Any] | None = Field(
        None, validation_alias=AliasChoices("details", "metadata")
    )

    model_config = {"from_attributes": True}
