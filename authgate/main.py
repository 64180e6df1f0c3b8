"""
FastAPI application factory and entry point (the persistent-server transport).

create_app() builds and configures the application:
  1. Lifespan manager: opens the store, creates tables, bootstraps the
     administrator allow-list, prunes expired revocations; disposes the
     engine at shutdown
  2. CORS middleware
  3. Rate limiting: fixed window, 100 requests per 15 minutes per client
  4. Exception handlers: map domain errors to HTTP responses
  5. Routers: /api/auth and /api/users

Running locally:
    uvicorn authgate.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from authgate.config import Settings, settings as default_settings
from authgate.database import create_engine, create_session_factory, init_models
from authgate.exceptions import register_exception_handlers
from authgate.gateway import build_gateway
from authgate.logger import setup_logging
from authgate.routers import auth, users
from authgate.services import revocation_store

logger = logging.getLogger(__name__)


def create_limiter(settings: Settings) -> Limiter:
    """
    One limiter per app, so counters are never shared between app instances.

    application_limits count every route against one budget per client
    address, rather than a separate budget per endpoint.
    """
    return Limiter(
        key_func=get_remote_address,
        application_limits=[settings.RATE_LIMIT],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


def create_app(settings: Settings = default_settings) -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
          Opens the engine and session factory, creates missing tables
          (use `alembic upgrade head` for managed schemas), promotes or
          seeds allow-listed administrators, and prunes revocation rows
          for tokens that have expired anyway.

        Shutdown:
          Disposes of the engine, closing all connections cleanly.
        """
        if settings.uses_dev_secret:
            logger.warning(
                "SECRET_KEY is the development fallback; set it before deploying"
            )

        engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)
        await init_models(engine)

        async with app.state.session_factory() as session:
            await app.state.gateway.policy.bootstrap(
                session,
                seed_password=settings.ADMIN_SEED_PASSWORD,
                seed_name=settings.ADMIN_SEED_NAME,
            )
            purged = await revocation_store.purge_expired(session)
            await session.commit()
        if purged:
            logger.info(f"Pruned {purged} expired token revocations")

        logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} started")
        yield

        await engine.dispose()
        logger.info(f"{settings.APP_NAME} shut down")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Authentication, session tokens, admin user management and audit log",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = build_gateway(settings, events_limit=settings.SERVER_EVENTS_LIMIT)

    # -----------------------------------------------------------------------
    # Middleware
    # -----------------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.limiter = create_limiter(settings)
    app.add_middleware(SlowAPIMiddleware)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    register_exception_handlers(app)

    # Sync on purpose: slowapi's middleware calls this handler without awaiting
    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning(
            "Rate limit exceeded",
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": request.client.host if request.client else "unknown",
            },
        )
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Too many requests, please try again later",
                "error_type": "rate_limit_exceeded",
            },
        )

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """Liveness probe for load balancers and orchestrators."""
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


app = create_app()
