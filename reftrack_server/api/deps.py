# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""FastAPI dependencies that assemble the lifecycle engine per request."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reftrack_server.config import Settings, settings
from reftrack_server.database import get_db
from reftrack_server.services.email import EmailSender
from reftrack_server.services.lifecycle import InvitationLifecycleEngine
from reftrack_server.services.quota import UsageQuotaEnforcer
from reftrack_server.services.store import InvitationStore
from reftrack_server.services.subscriptions import SubscriptionService
from reftrack_server.services.webhook import WebhookDispatcher


def get_settings() -> Settings:
    return settings


def get_webhook_dispatcher(cfg: Settings = Depends(get_settings)) -> WebhookDispatcher:
    return WebhookDispatcher(timeout=cfg.webhook_timeout_seconds)


def get_email_sender(cfg: Settings = Depends(get_settings)) -> EmailSender:
    return EmailSender(cfg)


async def get_store(db: AsyncSession = Depends(get_db)) -> InvitationStore:
    return InvitationStore(db)


async def get_engine(
    db: AsyncSession = Depends(get_db),
    store: InvitationStore = Depends(get_store),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
    email_sender: EmailSender = Depends(get_email_sender),
    cfg: Settings = Depends(get_settings),
) -> InvitationLifecycleEngine:
    quota = UsageQuotaEnforcer(
        SubscriptionService(db),
        enabled=cfg.payments_enabled,
        fail_open=cfg.quota_fail_open,
    )
    return InvitationLifecycleEngine(db, store, quota, dispatcher, email_sender, cfg)
