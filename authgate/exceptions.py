"""
Custom exception classes and FastAPI exception handlers.

The gateway raises these domain errors without importing HTTP concepts;
each transport translates them into a response. Every class carries the
HTTP status and a machine-readable error_type, so the FastAPI handler and
the serverless handler render identical bodies: {"detail", "error_type"}.

Exception hierarchy:
    AuthServiceError (base, 500)
    ├── BadRequestError            400  malformed or missing input
    ├── ConflictError              409  unique email violated
    │   └── RegistrationConflictError 400  same conflict on self-registration
    ├── UnauthorizedError          401  missing token / bad credentials
    │   └── InvalidCredentialsError    401  fixed "Invalid credentials" text
    ├── ForbiddenError             403  insufficient privilege
    │   └── InvalidTokenError      403  token present but not acceptable
    ├── NotFoundError              404  referenced entity absent
    └── InternalError              500  store or hashing failure
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class AuthServiceError(Exception):
    """Base exception for all auth service domain errors."""

    status_code = 500
    error_type = "error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail, "error_type": self.error_type}


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class BadRequestError(AuthServiceError):
    """Raised when input is missing or fails a pre-authentication check."""

    status_code = 400
    error_type = "bad_request"


class ConflictError(AuthServiceError):
    """Raised when a write would violate the unique email constraint."""

    status_code = 409
    error_type = "conflict"

    def __init__(self, detail: str = "Email already exists"):
        super().__init__(detail)


class RegistrationConflictError(ConflictError):
    """Self-registration reports an existing email as a 400."""

    status_code = 400


class UnauthorizedError(AuthServiceError):
    status_code = 401
    error_type = "unauthorized"


class InvalidCredentialsError(UnauthorizedError):
    """
    Raised when login fails for any reason.

    The text is identical whether the email is unknown or the password is
    wrong, so the response can't be used to enumerate accounts.
    """

    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid credentials")


class ForbiddenError(AuthServiceError):
    status_code = 403
    error_type = "forbidden"


class InvalidTokenError(ForbiddenError):
    """Raised when a bearer token is malformed, tampered with, expired, or revoked."""

    error_type = "invalid_token"

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


class NotFoundError(AuthServiceError):
    status_code = 404
    error_type = "not_found"

    def __init__(self, detail: str = "User not found"):
        super().__init__(detail)


class InternalError(AuthServiceError):
    """Store or hashing failure; the detail shown to callers is always generic."""

    status_code = 500
    error_type = "internal_error"

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI application.

    Called once from create_app() in main.py.
    """

    @app.exception_handler(AuthServiceError)
    async def auth_service_error_handler(
        request: Request, exc: AuthServiceError
    ) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed bodies are input errors like any other: 400, not 422
        return JSONResponse(
            status_code=400,
            content={"detail": "Malformed request body", "error_type": "bad_request"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled exception: {exc}",
            extra={"path": request.url.path, "method": request.method},
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content=InternalError().to_dict())
