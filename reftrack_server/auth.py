# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Identity gate: dashboard JWTs and per-app static SDK secrets."""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reftrack_server.config import settings
from reftrack_server.database import get_db
from reftrack_server.exceptions import AuthenticationError
from reftrack_server.models import TenantApp

secret_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller. ``user`` is a dashboard user, ``app`` an SDK caller scoped to one app."""

    kind: Literal["user", "app"]
    user_id: str | None = None
    email: str | None = None
    app_id: uuid.UUID | None = None


def generate_app_secret() -> str:
    return secrets.token_urlsafe(32)


def hash_app_secret(secret: str) -> str:
    """Hash an app secret for storage."""
    return secret_context.hash(secret)


def verify_app_secret(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return secret_context.verify(plain, hashed)
    except ValueError:
        return False


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a dashboard JWT the way the identity provider does (local dev and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    to_encode.update({"exp": expire})
    if settings.auth_jwt_audience and "aud" not in to_encode:
        to_encode["aud"] = settings.auth_jwt_audience
    return jwt.encode(to_encode, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a dashboard JWT."""
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options={"verify_aud": settings.auth_jwt_audience is not None},
        )
    except JWTError:
        return None


def principal_from_token(token: str) -> Principal | None:
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    return Principal(kind="user", user_id=str(payload["sub"]), email=payload.get("email"))


async def verify_app_secret_for(db: AsyncSession, app_id: uuid.UUID, token: str) -> bool:
    """True if ``token`` is the static secret of app ``app_id``."""
    result = await db.execute(select(TenantApp.api_secret_hash).where(TenantApp.id == app_id))
    hashed = result.scalar_one_or_none()
    return verify_app_secret(token, hashed)


def _bearer_token(credentials: HTTPAuthorizationCredentials | None) -> str:
    if not credentials or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AuthenticationError("Missing or invalid authorization header")
    return credentials.credentials


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """Dashboard mode. Raises 401 if the bearer token is missing or invalid."""
    token = _bearer_token(credentials)
    principal = principal_from_token(token)
    if principal is None:
        raise AuthenticationError("Invalid or expired token")
    return principal


async def get_app_caller(
    app_id: uuid.UUID,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Dashboard JWT or the static secret of the app in the path.

    A secret that does not match gives a bare 401 so callers cannot tell
    whether the app id or the secret was wrong.
    """
    token = _bearer_token(credentials)
    principal = principal_from_token(token)
    if principal is not None:
        return principal
    if await verify_app_secret_for(db, app_id, token):
        return Principal(kind="app", app_id=app_id)
    raise AuthenticationError()
