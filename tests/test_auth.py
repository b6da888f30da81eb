# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Identity gate: dashboard JWTs and per-app SDK secrets."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt

from reftrack_server.auth import (
    create_access_token,
    decode_token,
    hash_app_secret,
    principal_from_token,
    verify_app_secret,
)
from reftrack_server.config import settings

pytestmark = pytest.mark.anyio


def test_token_round_trip_gives_user_principal():
    token = create_access_token({"sub": "user-42", "email": "a@example.com"})
    principal = principal_from_token(token)
    assert principal is not None
    assert principal.kind == "user"
    assert principal.user_id == "user-42"
    assert principal.email == "a@example.com"


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "user-42"}, expires_delta=timedelta(seconds=-5))
    assert decode_token(token) is None


def test_token_without_sub_is_rejected():
    token = create_access_token({"email": "a@example.com"})
    assert principal_from_token(token) is None


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode(
        {"sub": "user-42", "aud": settings.auth_jwt_audience},
        "some-other-secret",
        algorithm="HS256",
    )
    assert decode_token(token) is None


def test_wrong_audience_is_rejected():
    token = create_access_token({"sub": "user-42", "aud": "someone-else"})
    assert decode_token(token) is None


def test_app_secret_hashing():
    hashed = hash_app_secret("s3cret")
    assert hashed != "s3cret"
    assert verify_app_secret("s3cret", hashed)
    assert not verify_app_secret("wrong", hashed)
    assert not verify_app_secret("s3cret", None)


async def test_missing_header_is_401(client: AsyncClient):
    r = await client.get("/api/v1/apps")
    assert r.status_code == 401
    assert r.json()["success"] is False
    assert r.headers["www-authenticate"] == "Bearer"


async def test_non_bearer_scheme_is_401(client: AsyncClient):
    r = await client.get("/api/v1/apps", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert r.status_code == 401


async def test_garbage_token_is_401(client: AsyncClient):
    r = await client.get("/api/v1/apps", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired token"


async def test_app_secret_grants_access_to_its_own_app(client: AsyncClient, tenant_app, sdk_headers):
    r = await client.get(f"/api/v1/apps/{tenant_app['id']}/invitations", headers=sdk_headers)
    assert r.status_code == 200
    assert r.json()["data"] == []


async def test_app_secret_is_not_a_dashboard_login(client: AsyncClient, sdk_headers):
    r = await client.get("/api/v1/apps", headers=sdk_headers)
    assert r.status_code == 401


async def test_app_secret_for_another_app_is_bare_401(client: AsyncClient, sdk_headers):
    r = await client.get(f"/api/v1/apps/{uuid.uuid4()}/invitations", headers=sdk_headers)
    assert r.status_code == 401
    assert r.json() == {"success": False, "message": "Unauthorized"}


async def test_rotated_secret_replaces_old_one(client: AsyncClient, tenant_app, owner_headers, sdk_headers):
    r = await client.post(f"/api/v1/apps/{tenant_app['id']}/secret", headers=owner_headers)
    assert r.status_code == 200
    new_secret = r.json()["data"]["apiSecret"]
    assert new_secret != tenant_app["apiSecret"]

    old = await client.get(f"/api/v1/apps/{tenant_app['id']}/invitations", headers=sdk_headers)
    assert old.status_code == 401
    new = await client.get(
        f"/api/v1/apps/{tenant_app['id']}/invitations",
        headers={"Authorization": f"Bearer {new_secret}"},
    )
    assert new.status_code == 200


async def test_other_users_app_is_404(client: AsyncClient, tenant_app, make_headers):
    r = await client.get(
        f"/api/v1/apps/{tenant_app['id']}/invitations",
        headers=make_headers("user-2", "other@example.com"),
    )
    assert r.status_code == 404
    assert r.json()["message"] == "App not found"
