"""
Authentication router: register, login, logout, profile, events.

Endpoints:
  POST /api/auth/register  - Create an account and get a token
  POST /api/auth/login     - Authenticate and get a token
  POST /api/auth/logout    - Revoke the presented token
  GET  /api/auth/profile   - The caller's own user record
  GET  /api/auth/events    - Recent authentication events

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - Tokens appear only in response bodies, never in log lines.
  - No request body logging middleware is installed.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.database import get_db
from authgate.dependencies import get_current_claims, get_gateway, get_request_context
from authgate.gateway import AuthGateway
from authgate.schemas.auth import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
)
from authgate.schemas.auth_event import AuthEventResponse
from authgate.schemas.user import UserResponse
from authgate.security import TokenClaims
from authgate.services.audit_log import RequestContext

router = APIRouter()


@router.post(
    "/register",
    response_model=AuthResponse,
    summary="Register a new user",
)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Register a new account and log it in.

    - **name**: Required display name (not unique)
    - **email**: Required, unique
    - **password**: Minimum 6 characters

    An email that is already registered returns 400 "Email already exists".
    """
    result = await gateway.register(db, ctx, request.name, request.email, request.password)
    return AuthResponse(token=result.token, user=UserResponse.model_validate(result.user))


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Authenticate with email and password.

    Returns a bearer token for the Authorization header of later requests:

        Authorization: Bearer <token>

    The token expires after ACCESS_TOKEN_EXPIRE_HOURS (default: 24).
    """
    result = await gateway.login(db, ctx, request.email, request.password)
    return AuthResponse(token=result.token, user=UserResponse.model_validate(result.user))


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Log out and revoke the current token",
)
async def logout(
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
    ctx: RequestContext = Depends(get_request_context),
):
    await gateway.logout(db, ctx, claims)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/profile",
    response_model=UserResponse,
    summary="Get the current user's profile",
)
async def profile(
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
):
    return await gateway.get_profile(db, claims)


@router.get(
    "/events",
    response_model=list[AuthEventResponse],
    summary="List recent authentication events",
)
async def events(
    claims: TokenClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
):
    """
    Newest first, at most SERVER_EVENTS_LIMIT (100) entries.

    Administrators see all events; everyone else sees their own.
    """
    return await gateway.list_events(db, claims)
