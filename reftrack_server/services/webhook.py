# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Webhook delivery to tenant apps: one POST, no retry."""

import logging
from typing import Any

import httpx

from reftrack_server.api.schemas import WebhookEvent, WebhookEventData, WebhookEventType
from reftrack_server.exceptions import WebhookDeliveryError
from reftrack_server.models import Invitation
from reftrack_server.models.base import as_utc

logger = logging.getLogger(__name__)


def build_event(event_type: WebhookEventType, invitation: Invitation) -> WebhookEvent:
    return WebhookEvent(
        type=event_type,
        data=WebhookEventData(
            invitation_id=invitation.id,
            app_id=invitation.app_id,
            inviter_id=invitation.inviter_id,
            invitee_identifier=invitation.invitee_identifier,
            status=invitation.status,
            metadata=invitation.meta or {},
            created_at=as_utc(invitation.created_at),
            completed_at=as_utc(invitation.completed_at),
            signed_up_at=as_utc(invitation.signed_up_at),
            signed_up_user_id=invitation.signed_up_user_id,
        ),
    )


class WebhookDispatcher:
    """Posts event payloads to a tenant's callback URL.

    At most once: a timeout, connection error or non-2xx answer is reported
    to the caller and never retried.
    """

    def __init__(self, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout = timeout
        self.transport = transport

    async def deliver(
        self,
        url: str,
        auth_header: str | None,
        payload: dict[str, Any],
    ) -> httpx.Response:
        """POST ``payload`` as JSON. ``auth_header`` is sent verbatim as Authorization."""
        if not url:
            raise WebhookDeliveryError("No webhook URL provided")
        headers = {"Content-Type": "application/json"}
        if auth_header:
            headers["Authorization"] = auth_header
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(f"POST {url} failed: {e}") from e

    async def send_event(self, url: str, auth_header: str | None, event: WebhookEvent) -> httpx.Response:
        """Deliver and require a 2xx answer."""
        response = await self.deliver(url, auth_header, event.to_payload())
        if not response.is_success:
            raise WebhookDeliveryError(
                f"{event.type} to {url} answered {response.status_code}"
            )
        logger.info("Webhook %s delivered to %s (%s)", event.type, url, response.status_code)
        return response
