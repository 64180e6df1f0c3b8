"""
Per-invocation function entry point (the stateless transport).

handler(event, context) accepts an API-Gateway / Netlify-style event:

    {
        "httpMethod": "POST",
        "path": "/.netlify/functions/auth/api/auth/login",
        "headers": {"content-type": "application/json", ...},
        "body": "{\"email\": ..., \"password\": ...}",
        "isBase64Encoded": false
    }

and returns {"statusCode", "headers", "body"}. Each invocation opens its
own engine, runs exactly one gateway operation in one session, and
disposes the engine; nothing is shared between invocations.

Routes match on the part of the path from "/api/" onward, so the same
function works behind any mount prefix. The route table and JSON shapes
mirror authgate.routers. This transport has no rate limiting; put an
equivalent policy in front of it (API gateway throttling) when deploying.
"""

import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.config import Settings, settings as default_settings
from authgate.database import create_engine, create_session_factory, init_models
from authgate.exceptions import AuthServiceError, BadRequestError, InternalError
from authgate.gateway import AuthGateway, build_gateway
from authgate.logger import setup_logging
from authgate.schemas.auth import AuthResponse, LoginRequest, MessageResponse, RegisterRequest
from authgate.schemas.auth_event import AuthEventResponse
from authgate.schemas.user import (
    StatsResponse,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
)
from authgate.services.audit_log import RequestContext

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Content-Type": "application/json",
}


@dataclass
class Invocation:
    """Everything a route needs from one event."""
    gateway: AuthGateway
    db: AsyncSession
    ctx: RequestContext
    headers: dict[str, str]
    body: Any
    params: dict[str, str]

    def token(self) -> str | None:
        return bearer_token(self.headers.get("authorization"))

    def parse(self, schema: type[BaseModel]) -> BaseModel:
        try:
            return schema.model_validate(self.body if self.body is not None else {})
        except ValidationError:
            raise BadRequestError("Malformed request body")

    def user_id(self) -> int:
        return int(self.params["user_id"])


Route = Callable[[Invocation], Awaitable[tuple[int, Any]]]


def bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

async def _register(inv: Invocation):
    req = inv.parse(RegisterRequest)
    result = await inv.gateway.register(inv.db, inv.ctx, req.name, req.email, req.password)
    return 200, _dump(AuthResponse(token=result.token, user=UserResponse.model_validate(result.user)))


async def _login(inv: Invocation):
    req = inv.parse(LoginRequest)
    result = await inv.gateway.login(inv.db, inv.ctx, req.email, req.password)
    return 200, _dump(AuthResponse(token=result.token, user=UserResponse.model_validate(result.user)))


async def _logout(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    await inv.gateway.logout(inv.db, inv.ctx, claims)
    return 200, _dump(MessageResponse(message="Logged out successfully"))


async def _profile(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    user = await inv.gateway.get_profile(inv.db, claims)
    return 200, _dump(UserResponse.model_validate(user))


async def _events(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    events = await inv.gateway.list_events(inv.db, claims)
    return 200, [_dump(AuthEventResponse.model_validate(e)) for e in events]


async def _list_users(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    users = await inv.gateway.list_users(inv.db, claims)
    return 200, [_dump(UserResponse.model_validate(u)) for u in users]


async def _stats(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    stats = await inv.gateway.stats_overview(inv.db, claims)
    return 200, _dump(StatsResponse.model_validate(stats))


async def _get_user(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    user = await inv.gateway.get_user(inv.db, claims, inv.user_id())
    return 200, _dump(UserResponse.model_validate(user))


async def _create_user(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    req = inv.parse(UserCreateRequest)
    user = await inv.gateway.create_user(
        inv.db, inv.ctx, claims, req.name, req.email, req.password
    )
    return 200, _dump(UserResponse.model_validate(user))


async def _update_user(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    req = inv.parse(UserUpdateRequest)
    user = await inv.gateway.update_user(
        inv.db, inv.ctx, claims, inv.user_id(),
        name=req.name, email=req.email, password=req.password,
    )
    return 200, _dump(UserResponse.model_validate(user))


async def _delete_user(inv: Invocation):
    claims = await inv.gateway.authenticate(inv.db, inv.token())
    await inv.gateway.delete_user(inv.db, inv.ctx, claims, inv.user_id())
    return 200, _dump(MessageResponse(message="User deleted successfully"))


# Order matters: the literal stats path precedes the {user_id} pattern
ROUTES: list[tuple[str, re.Pattern, Route]] = [
    ("POST", re.compile(r"^/api/auth/register$"), _register),
    ("POST", re.compile(r"^/api/auth/login$"), _login),
    ("POST", re.compile(r"^/api/auth/logout$"), _logout),
    ("GET", re.compile(r"^/api/auth/profile$"), _profile),
    ("GET", re.compile(r"^/api/auth/events$"), _events),
    ("GET", re.compile(r"^/api/users$"), _list_users),
    ("POST", re.compile(r"^/api/users$"), _create_user),
    ("GET", re.compile(r"^/api/users/stats/overview$"), _stats),
    ("GET", re.compile(r"^/api/users/(?P<user_id>\d+)$"), _get_user),
    ("PUT", re.compile(r"^/api/users/(?P<user_id>\d+)$"), _update_user),
    ("DELETE", re.compile(r"^/api/users/(?P<user_id>\d+)$"), _delete_user),
]


def match_route(method: str, path: str) -> tuple[Route, dict[str, str]] | None:
    index = path.find("/api/")
    if index == -1:
        return None
    path = path[index:].rstrip("/")
    for route_method, pattern, route in ROUTES:
        m = pattern.match(path)
        if m and route_method == method:
            return route, m.groupdict()
    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _response(status_code: int, payload: Any) -> dict:
    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": json.dumps(payload) if payload is not None else "",
    }


def _decode_body(event: dict) -> Any:
    raw = event.get("body")
    if not raw:
        return None
    if event.get("isBase64Encoded"):
        # Bad padding (binascii.Error), non-ASCII input and non-UTF-8 bytes
        # (UnicodeDecodeError) all surface as ValueError
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except ValueError:
            raise BadRequestError("Malformed request body")
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise BadRequestError("Malformed request body")


async def handle(event: dict, settings: Settings = default_settings) -> dict:
    """Async core of the handler; one fresh store per call."""
    method = (event.get("httpMethod") or "GET").upper()
    path = event.get("path") or "/"
    headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}

    if method == "OPTIONS":
        return _response(200, None)

    matched = match_route(method, path)
    if matched is None:
        return _response(404, {"detail": "Not found", "error_type": "not_found"})
    route, params = matched

    try:
        body = _decode_body(event)
    except AuthServiceError as exc:
        return _response(exc.status_code, exc.to_dict())

    gateway = build_gateway(settings, events_limit=settings.SERVERLESS_EVENTS_LIMIT)
    engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    try:
        await init_models(engine)
        session_factory = create_session_factory(engine)
        async with session_factory() as db:
            inv = Invocation(
                gateway=gateway,
                db=db,
                ctx=RequestContext.from_headers(headers),
                headers=headers,
                body=body,
                params=params,
            )
            try:
                status_code, payload = await route(inv)
                await db.commit()
            except AuthServiceError as exc:
                # Failure audit rows are part of the outcome; keep them
                await db.commit()
                return _response(exc.status_code, exc.to_dict())
            except Exception:
                await db.rollback()
                raise
        return _response(status_code, payload)
    except Exception as exc:
        logger.error(
            f"Unhandled exception: {exc}",
            extra={"path": path, "method": method},
            exc_info=True,
        )
        return _response(500, InternalError().to_dict())
    finally:
        await engine.dispose()


def handler(event: dict, context: Any = None) -> dict:
    """Synchronous entry point for function runtimes."""
    setup_logging(default_settings.LOG_LEVEL)
    return asyncio.run(handle(event, default_settings))
