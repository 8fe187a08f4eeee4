"""JWT token creation and validation.

Access tokens identify a caller as ``{uid, email}``; the ``iat`` claim lets
the retrieval proxy reject credentials that are too old to be fresh.
Verification tokens prove that an email address passed OTP verification.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings
from errors import Expired, Unauthorized

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60
REFRESH_TOKEN_EXPIRE_DAYS = 30
VERIFICATION_TOKEN_EXPIRE_MINUTES = 10

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """A verified caller."""

    uid: uuid.UUID
    email: str
    issued_at: int


def create_access_token(user_id: uuid.UUID, email: str) -> str:
    """Create a short-lived JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        "type": "access",
    }
    return jwt.encode(payload, settings.app_secret_key, algorithm=ALGORITHM)


def create_refresh_token(user_id: uuid.UUID, email: str) -> str:
    """Create a long-lived JWT refresh token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        "type": "refresh",
    }
    return jwt.encode(payload, settings.app_secret_key, algorithm=ALGORITHM)


def create_verification_token(email: str) -> str:
    """Create a token proving ``email`` just passed OTP verification."""
    now = datetime.now(timezone.utc)
    payload = {
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=VERIFICATION_TOKEN_EXPIRE_MINUTES),
        "type": "email_verification",
    }
    return jwt.encode(payload, settings.app_secret_key, algorithm=ALGORITHM)


def decode_token(token: str, expected_type: str = "access") -> dict:
    """Decode and validate a JWT token, returning its claims.

    Raises:
        Unauthorized: If token is invalid, expired, or wrong type.
    """
    try:
        payload = jwt.decode(token, settings.app_secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")

    if payload.get("type") != expected_type:
        raise Unauthorized("Invalid token type")
    return payload


def verify_identity_token(token: str, expected_type: str = "access") -> Identity:
    """Exchange a bearer token for a verified identity."""
    payload = decode_token(token, expected_type=expected_type)
    try:
        return Identity(
            uid=uuid.UUID(payload["sub"]),
            email=payload["email"].strip().lower(),
            issued_at=int(payload.get("iat", 0)),
        )
    except (KeyError, ValueError, AttributeError, TypeError):
        raise Unauthorized("Invalid token payload")


def verify_verification_token(token: str, email: str) -> None:
    """Check that ``token`` is a verification token issued for ``email``."""
    payload = decode_token(token, expected_type="email_verification")
    if str(payload.get("email", "")).lower() != email.lower():
        raise Unauthorized("Verification token does not match email")


def ensure_recent(identity: Identity, max_age_seconds: int, now: float | None = None) -> None:
    """Reject identities whose token was issued more than ``max_age_seconds`` ago."""
    now = time.time() if now is None else now
    if now - identity.issued_at > max_age_seconds:
        raise Expired("Authentication token is too old, please refresh it")


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Identity:
    """FastAPI dependency that extracts the caller from a JWT Bearer token."""
    if credentials is None:
        raise Unauthorized("Authentication required")
    return verify_identity_token(credentials.credentials)


async def get_optional_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Identity | None:
    """Like get_current_identity, but anonymous callers yield None."""
    if credentials is None:
        return None
    return verify_identity_token(credentials.credentials)
