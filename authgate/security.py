"""
Security utilities: password hashing and session tokens.

This module centralizes the cryptographic operations so they're easy to
audit and update.

1. PASSWORD HASHING (bcrypt)
   - Passwords are never stored in plaintext
   - bcrypt with a fixed cost of 10 rounds; each hash embeds its own salt
   - Hashing is CPU-bound, so the async wrappers run it in a worker thread
     and an in-flight login never stalls unrelated requests
   - Input size is capped by the gateway before anything reaches here

2. SESSION TOKENS (JWT, HS256)
   - After login the user receives a signed JWT carrying their id, email,
     display name and role, valid for 24 hours
   - Signed with one process-wide secret (settings.SECRET_KEY)
   - Each token carries a jti so logout can revoke it (see
     services/revocation_store.py); the signature and expiry checks
     here are stateless
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from authgate.exceptions import InvalidTokenError


# ---------------------------------------------------------------------------
# 1. Password Hashing (bcrypt)
# ---------------------------------------------------------------------------

BCRYPT_ROUNDS = 10

# deprecated="auto" lets a future scheme (or a raised cost) take over for new
# hashes while existing ones keep verifying.
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password with bcrypt.

    Returns:
        A modular-crypt hash string (e.g. "$2b$10$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plaintext password against a stored hash.

    Raises:
        ValueError: If the stored hash is not a recognised format.
    """
    return pwd_context.verify(plain_password, hashed_password)


async def hash_password_async(plain_password: str) -> str:
    return await asyncio.to_thread(hash_password, plain_password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    return await asyncio.to_thread(verify_password, plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. Session Tokens
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TokenSubject:
    """The identity a token is issued for."""
    user_id: int
    email: str
    name: str
    role: str


@dataclass(frozen=True)
class TokenClaims:
    """A verified token: its subject plus the bookkeeping claims."""
    subject: TokenSubject
    token_id: str
    issued_at: datetime
    expires_at: datetime

    @property
    def user_id(self) -> int:
        return self.subject.user_id

    @property
    def email(self) -> str:
        return self.subject.email

    @property
    def role(self) -> str:
        return self.subject.role


class TokenIssuer:
    """
    Creates and validates signed, time-limited session tokens.

    Stateless beyond the shared secret. `now` can be passed explicitly to
    both operations, which keeps expiry behaviour testable without patching
    the clock.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expires_in: timedelta = timedelta(hours=24),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_in = expires_in

    def issue(self, subject: TokenSubject, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        expires_at = issued_at + self.expires_in

        payload = {
            # "sub" must be a string per RFC 7519
            "sub": str(subject.user_id),
            "email": subject.email,
            "name": subject.name,
            "role": subject.role,
            "jti": str(uuid.uuid4()),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str, now: datetime | None = None) -> TokenClaims:
        """
        Verify signature and expiry and return the embedded claims.

        A token is rejected at or after its exp, not just after it.

        Raises:
            InvalidTokenError: On any signature, format or expiry failure.
        """
        try:
            # Expiry is checked below against `now` instead of jose's own clock
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
            subject = TokenSubject(
                user_id=int(payload["sub"]),
                email=payload["email"],
                name=payload["name"],
                role=payload["role"],
            )
            token_id = payload["jti"]
            issued_at = datetime.fromtimestamp(int(payload["iat"]), timezone.utc)
            expires_at = datetime.fromtimestamp(int(payload["exp"]), timezone.utc)
        except (JWTError, KeyError, TypeError, ValueError):
            raise InvalidTokenError()

        current = now or datetime.now(timezone.utc)
        if current >= expires_at:
            raise InvalidTokenError("Token has expired")

        return TokenClaims(
            subject=subject,
            token_id=token_id,
            issued_at=issued_at,
            expires_at=expires_at,
        )
