"""
User administration router: admin-only CRUD and statistics.

Every endpoint requires a valid bearer token whose role is admin; the
gateway returns 403 "Admin access required" before touching the store
otherwise.

Endpoints:
  GET    /api/users                 - List all users
  GET    /api/users/stats/overview  - Counts for the admin dashboard
  GET    /api/users/{user_id}       - One user
  POST   /api/users                 - Create a user
  PUT    /api/users/{user_id}       - Update name/email/password
  DELETE /api/users/{user_id}       - Delete a non-admin user

The stats route is declared before /{user_id} so the literal path wins.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.database import get_db
from authgate.dependencies import get_current_claims, get_gateway, get_request_context
from authgate.gateway import AuthGateway
from authgate.schemas.auth import MessageResponse
from authgate.schemas.user import (
    StatsResponse,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
)
from authgate.security import TokenClaims
from authgate.services.audit_log import RequestContext

router = APIRouter()


@router.get(
    "",
    response_model=list[UserResponse],
    summary="[Admin] List all users",
)
async def list_users(
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
):
    return await gateway.list_users(db, claims)


@router.get(
    "/stats/overview",
    response_model=StatsResponse,
    summary="[Admin] User and login statistics",
)
async def stats_overview(
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
):
    """
    Total, admin and regular user counts, plus successful logins, failed
    login attempts and registrations in the trailing 24 hours.
    """
    return await gateway.stats_overview(db, claims)


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="[Admin] Get a user",
)
async def get_user(
    user_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
):
    return await gateway.get_user(db, claims, user_id)


@router.post(
    "",
    response_model=UserResponse,
    summary="[Admin] Create a user",
)
async def create_user(
    request: UserCreateRequest,
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
    ctx: RequestContext = Depends(get_request_context),
):
    """An email that already exists returns 409."""
    return await gateway.create_user(
        db, ctx, claims, request.name, request.email, request.password
    )


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="[Admin] Update a user",
)
async def update_user(
    user_id: int,
    request: UserUpdateRequest,
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
    ctx: RequestContext = Depends(get_request_context),
):
    return await gateway.update_user(
        db, ctx, claims, user_id,
        name=request.name, email=request.email, password=request.password,
    )


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="[Admin] Delete a user",
)
async def delete_user(
    user_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
    ctx: RequestContext = Depends(get_request_context),
):
    """Administrator accounts can't be deleted (403)."""
    await gateway.delete_user(db, ctx, claims, user_id)
    return MessageResponse(message="User deleted successfully")
