# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Each test gets its own SQLite database and a recording webhook transport."""

import json
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_JWT_AUDIENCE"] = "authenticated"
os.environ["SMTP_HOST"] = ""
os.environ["PAYMENTS_ENABLED"] = "true"
os.environ["QUOTA_FAIL_OPEN"] = "false"

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from reftrack_server import rate_limit
from reftrack_server.api.deps import get_email_sender, get_webhook_dispatcher
from reftrack_server.auth import create_access_token
from reftrack_server.database import get_db
from reftrack_server.main import app as fastapi_app
from reftrack_server.models import Base
from reftrack_server.services.webhook import WebhookDispatcher

WEBHOOK_URL = "https://hooks.example.com/reftrack"


class WebhookRecorder:
    """httpx transport handler that records every webhook POST."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"received": True})

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def dispatcher(self) -> WebhookDispatcher:
        return WebhookDispatcher(timeout=1.0, transport=httpx.MockTransport(self))


class EmailRecorder:
    """Stands in for EmailSender; records what would be sent."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    async def send(self, to, from_name, subject, html_body, reply_to=None) -> None:
        if self.fail:
            raise ConnectionError("SMTP unavailable")
        self.sent.append(
            {"to": to, "from_name": from_name, "subject": subject, "html": html_body, "reply_to": reply_to}
        )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def webhooks() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def emails() -> EmailRecorder:
    return EmailRecorder()


@pytest.fixture(autouse=True)
def reset_rate_limit():
    rate_limit.reset()
    yield
    rate_limit.reset()


@pytest.fixture
async def client(session_maker, webhooks, emails):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_webhook_dispatcher] = webhooks.dispatcher
    fastapi_app.dependency_overrides[get_email_sender] = lambda: emails
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


def auth_headers(user_id: str = "user-1", email: str | None = "owner@example.com") -> dict[str, str]:
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def owner_headers() -> dict[str, str]:
    return auth_headers()


@pytest.fixture
async def tenant_app(client: AsyncClient, owner_headers) -> dict:
    """An app owned by user-1 with a webhook. Includes the one-time ``apiSecret``."""
    r = await client.post(
        "/api/v1/apps",
        json={"name": "Acme", "webhookUrl": WEBHOOK_URL, "authHeader": "Bearer hook-token"},
        headers=owner_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest.fixture
def sdk_headers(tenant_app) -> dict[str, str]:
    return {"Authorization": f"Bearer {tenant_app['apiSecret']}"}


@pytest.fixture
def make_headers():
    return auth_headers
