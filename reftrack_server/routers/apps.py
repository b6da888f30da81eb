# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tenant app API - dashboard management, metrics, webhook tester and inviter erasure."""

import logging
import uuid

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from reftrack_server.api.deps import get_engine, get_store
from reftrack_server.api.schemas import (
    AppCreate,
    AppResponse,
    AppUpdate,
    AppWithSecretResponse,
    MetricsResponse,
    WebhookTestRequest,
)
from reftrack_server.auth import (
    Principal,
    generate_app_secret,
    get_app_caller,
    get_current_user,
    hash_app_secret,
)
from reftrack_server.database import get_db
from reftrack_server.exceptions import AuthorizationError, WebhookDeliveryError
from reftrack_server.models import TenantApp
from reftrack_server.rate_limit import APP_ERASURE, rate_limit_erasure_dep
from reftrack_server.services.lifecycle import InvitationLifecycleEngine
from reftrack_server.services.store import InvitationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/apps", tags=["apps"])


async def get_owned_app(
    app_id: uuid.UUID,
    user: Principal = Depends(get_current_user),
    store: InvitationStore = Depends(get_store),
) -> TenantApp:
    """Dependency: the app in the path, if the dashboard user owns it."""
    app = await store.get_app(app_id, owner_user_id=user.user_id)
    if app is None:
        raise AuthorizationError()
    return app


@router.get("")
async def list_apps(
    user: Principal = Depends(get_current_user),
    store: InvitationStore = Depends(get_store),
) -> dict:
    """List the current user's apps, newest first."""
    apps = await store.list_apps(user.user_id)
    return {"success": True, "data": [AppResponse.from_model(a) for a in apps]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_app(
    body: AppCreate,
    user: Principal = Depends(get_current_user),
    store: InvitationStore = Depends(get_store),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Create an app. The SDK secret is returned here once and only stored hashed."""
    secret = generate_app_secret()
    app = TenantApp(
        name=body.name.strip(),
        user_id=user.user_id,
        webhook_url=body.webhook_url,
        auth_header=body.auth_header,
        ios_app_url=body.ios_app_url,
        android_app_url=body.android_app_url,
        api_secret_hash=hash_app_secret(secret),
    )
    await store.add_app(app)
    await db.commit()
    await db.refresh(app)
    logger.info("App %s created by user %s", app.id, user.user_id)
    data = AppWithSecretResponse(**AppResponse.from_model(app).model_dump(), api_secret=secret)
    return {"success": True, "data": data}


@router.get("/{app_id}")
async def get_app(app: TenantApp = Depends(get_owned_app)) -> dict:
    return {"success": True, "data": AppResponse.from_model(app)}


@router.put("/{app_id}")
async def update_app(
    body: AppUpdate,
    app: TenantApp = Depends(get_owned_app),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Replace the app's name, webhook settings and store links."""
    app.name = body.name.strip()
    app.webhook_url = body.webhook_url
    app.auth_header = body.auth_header
    app.ios_app_url = body.ios_app_url
    app.android_app_url = body.android_app_url
    await db.commit()
    await db.refresh(app)
    return {"success": True, "data": AppResponse.from_model(app)}


@router.delete("/{app_id}")
async def delete_app(
    app: TenantApp = Depends(get_owned_app),
    store: InvitationStore = Depends(get_store),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Delete the app and every invitation it holds."""
    app_id = app.id
    await store.delete_app(app)
    await db.commit()
    logger.info("App %s deleted", app_id)
    return {"success": True, "message": "App deleted"}


@router.post("/{app_id}/secret")
async def rotate_secret(
    app: TenantApp = Depends(get_owned_app),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Issue a new SDK secret; the previous one stops working immediately."""
    secret = generate_app_secret()
    app.api_secret_hash = hash_app_secret(secret)
    await db.commit()
    await db.refresh(app)
    logger.info("SDK secret rotated for app %s", app.id)
    data = AppWithSecretResponse(**AppResponse.from_model(app).model_dump(), api_secret=secret)
    return {"success": True, "data": data}


@router.get("/{app_id}/metrics")
async def get_metrics(
    app_id: uuid.UUID,
    period: int = Query(30, description="Trailing window in days"),
    user: Principal = Depends(get_current_user),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """Funnel aggregates: overall, the trailing period and its daily breakdown."""
    metrics = await engine.get_metrics(user, app_id, period)
    return {"success": True, "data": MetricsResponse.model_validate(metrics)}


@router.get("/{app_id}/stats")
async def get_stats(
    app_id: uuid.UUID,
    user: Principal = Depends(get_current_user),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    return {"success": True, "data": await engine.stats(user, app_id)}


@router.post("/{app_id}/webhooks/test")
async def test_webhook(
    app_id: uuid.UUID,
    body: WebhookTestRequest = Body(...),
    user: Principal = Depends(get_current_user),
    engine: InvitationLifecycleEngine = Depends(get_engine),
):
    """Send a synthetic event to the app's webhook and echo the endpoint's answer."""
    try:
        result = await engine.send_test_webhook(user, app_id, body)
    except WebhookDeliveryError as e:
        logger.warning("Test webhook for app %s failed: %s", app_id, e)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "message": "Failed to send webhook", "error": str(e)},
        )
    return {"success": True, "data": result}


@router.delete("/{app_id}/inviters/{inviter_id}", dependencies=[Depends(rate_limit_erasure_dep(APP_ERASURE))])
async def delete_inviter(
    app_id: uuid.UUID,
    inviter_id: str,
    caller: Principal = Depends(get_app_caller),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """Erase every invitation sent by ``inviter_id`` in this app."""
    deleted = await engine.delete_by_inviter(caller, app_id, inviter_id)
    return {
        "success": True,
        "message": f"Deleted {deleted} invitation(s)",
        "data": {"deleted": deleted},
    }
