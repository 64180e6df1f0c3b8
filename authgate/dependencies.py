"""
FastAPI dependencies for authentication.

Dependencies are reusable functions that FastAPI injects into route
handlers:

  get_gateway          -> the AuthGateway built in create_app()
  get_request_context  -> client IP / User-Agent for audit events
  get_current_claims   -> verified TokenClaims for the bearer token

The admin check is not a dependency here: it lives inside the gateway's
admin operations so the serverless transport enforces it identically.
"""

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.database import get_db
from authgate.gateway import AuthGateway
from authgate.security import TokenClaims
from authgate.services.audit_log import RequestContext


# Looks for "Authorization: Bearer <token>". auto_error=False hands a
# missing or non-Bearer header to the gateway as None, which answers 401
# with the same body on both transports.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_gateway(request: Request) -> AuthGateway:
    return request.app.state.gateway


def get_request_context(request: Request) -> RequestContext:
    client_host = request.client.host if request.client else None
    return RequestContext.from_headers(request.headers, client_host=client_host)


async def get_current_claims(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    gateway: AuthGateway = Depends(get_gateway),
) -> TokenClaims:
    """
    Verify the bearer token and return its claims.

    Raises:
        UnauthorizedError (401): No token.
        InvalidTokenError (403): Bad, expired or revoked token.
    """
    return await gateway.authenticate(db, token)
