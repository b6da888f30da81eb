# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation lifecycle: create, verify, validate-signup and erasure.

    (none) --create--> pending --verify--> completed --validate-signup--> completed + signed up

Each operation resolves the app for the caller, checks its preconditions,
commits the state change and only then runs its post-commit effects (usage
counter, invitation email, webhook). Effects are independent: one failing is
logged and neither stops the others nor unwinds the commit.
"""

import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from reftrack_server.api.schemas import (
    InvitationEmailOptions,
    WebhookEvent,
    WebhookEventData,
    WebhookEventType,
    WebhookTestCreate,
    WebhookTestVerify,
)
from reftrack_server.auth import Principal
from reftrack_server.config import Settings
from reftrack_server.exceptions import (
    AuthorizationError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from reftrack_server.models import Invitation, InvitationStatus, TenantApp
from reftrack_server.models.base import as_utc, utcnow
from reftrack_server.services import usage as usage_counter
from reftrack_server.services.email import EmailSender, render_invitation_email
from reftrack_server.services.metrics import compute_metrics
from reftrack_server.services.quota import UsageQuotaEnforcer
from reftrack_server.services.store import InvitationStore
from reftrack_server.services.webhook import WebhookDispatcher, build_event

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


@dataclass(frozen=True)
class PostCommitEffect:
    """Best-effort step that runs after the primary state change has committed."""

    name: str
    run: Callable[[], Awaitable[Any]]


async def run_post_commit_effects(effects: Sequence[PostCommitEffect], context: str) -> list[str]:
    """Run ``effects`` in order. Returns the names of the ones that failed."""
    failed = []
    for effect in effects:
        try:
            await effect.run()
        except Exception:
            logger.warning("Post-commit effect %s failed for %s", effect.name, context, exc_info=True)
            failed.append(effect.name)
    return failed


def _depth(value: Any) -> int:
    if isinstance(value, dict):
        return 1 + max((_depth(v) for v in value.values()), default=0)
    if isinstance(value, list):
        return 1 + max((_depth(v) for v in value), default=0)
    return 0


def metadata_problem(metadata: Any, max_bytes: int, max_depth: int) -> str | None:
    """Why ``metadata`` is unacceptable, or None. Only shape is checked, never content."""
    if not isinstance(metadata, dict):
        return "Metadata must be an object"
    try:
        encoded = json.dumps(metadata, separators=(",", ":"), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError):
        return "Metadata must be JSON-compatible"
    if len(encoded) > max_bytes:
        return f"Metadata must be at most {max_bytes} bytes"
    if _depth(metadata) > max_depth:
        return f"Metadata must be nested at most {max_depth} levels deep"
    return None


def is_email(value: str) -> bool:
    try:
        _email_adapter.validate_python(value)
    except PydanticValidationError:
        return False
    return True


class InvitationLifecycleEngine:
    def __init__(
        self,
        db: AsyncSession,
        store: InvitationStore,
        quota: UsageQuotaEnforcer,
        dispatcher: WebhookDispatcher,
        email_sender: EmailSender,
        settings: Settings,
    ) -> None:
        self.db = db
        self.store = store
        self.quota = quota
        self.dispatcher = dispatcher
        self.email_sender = email_sender
        self.settings = settings

    async def resolve_app(self, principal: Principal, app_id: uuid.UUID) -> TenantApp:
        """App the caller may act on. 404 for apps that are absent or not theirs."""
        if principal.kind == "app":
            if principal.app_id != app_id:
                raise AuthorizationError()
            app = await self.store.get_app(app_id)
        else:
            app = await self.store.get_app(app_id, owner_user_id=principal.user_id)
        if app is None:
            raise AuthorizationError()
        return app

    async def current_invite_count(self, owner_user_id: str) -> int:
        if self.settings.quota_count_source == "live":
            return await usage_counter.count_live_invitations(self.db, owner_user_id)
        return await usage_counter.get_invite_count(self.db, owner_user_id)

    # Effects
    def _webhook_effects(
        self, app: TenantApp, event_type: WebhookEventType, invitation: Invitation
    ) -> list[PostCommitEffect]:
        if not app.webhook_url:
            return []
        event = build_event(event_type, invitation)
        url, auth_header = app.webhook_url, app.auth_header
        return [
            PostCommitEffect(
                f"webhook:{event_type}",
                lambda: self.dispatcher.send_event(url, auth_header, event),
            )
        ]

    async def _increment_usage(self, owner_user_id: str) -> None:
        try:
            await usage_counter.increment_invite_count(self.db, owner_user_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _send_invitation_email(
        self, app_name: str, invitation: Invitation, options: InvitationEmailOptions
    ) -> None:
        accept_url = f"{self.settings.app_base_url.rstrip('/')}/invitations/{invitation.id}/accept"
        html_body = render_invitation_email(
            app_name=app_name,
            inviter_name=options.from_name,
            invitee_identifier=invitation.invitee_identifier,
            accept_url=accept_url,
            content=options.content,
        )
        await self.email_sender.send(
            invitation.invitee_identifier,
            options.from_name,
            options.subject,
            html_body,
            reply_to=options.reply_to,
        )

    # Create
    def _validate_create(
        self,
        inviter_id: str,
        invitee_identifier: str,
        metadata: Any,
        email: InvitationEmailOptions | None,
    ) -> None:
        errors = []
        if not inviter_id or not inviter_id.strip():
            errors.append({"field": "inviterId", "message": "Inviter ID is required"})
        if not invitee_identifier or not invitee_identifier.strip():
            errors.append({"field": "inviteeIdentifier", "message": "Invitee identifier is required"})
        elif email is not None and not is_email(invitee_identifier):
            errors.append(
                {"field": "inviteeIdentifier", "message": "Invitee identifier must be an email address to send an email"}
            )
        problem = metadata_problem(
            metadata if metadata is not None else {},
            self.settings.metadata_max_bytes,
            self.settings.metadata_max_depth,
        )
        if problem:
            errors.append({"field": "metadata", "message": problem})
        if email is not None:
            for field, label in (("from_name", "fromName"), ("subject", "subject"), ("content", "content")):
                if not getattr(email, field).strip():
                    errors.append({"field": f"email.{label}", "message": f"Email {label} is required"})
        if errors:
            raise ValidationError(errors=errors)

    async def create(
        self,
        principal: Principal,
        app_id: uuid.UUID,
        inviter_id: str,
        invitee_identifier: str,
        metadata: dict[str, Any] | None = None,
        email: InvitationEmailOptions | None = None,
    ) -> Invitation:
        app = await self.resolve_app(principal, app_id)
        count = await self.current_invite_count(app.user_id)
        if not await self.quota.can_create(app.user_id, count):
            logger.info("Quota reached for user %s (count=%s)", app.user_id, count)
            raise QuotaExceededError()
        self._validate_create(inviter_id, invitee_identifier, metadata, email)

        invitation = await self.store.insert(app.id, inviter_id, invitee_identifier, metadata)
        await self.db.commit()
        # Keep the committed row readable even if a later effect rolls the session back
        self.db.expunge(invitation)
        logger.info("Invitation %s created in app %s", invitation.id, app.id)

        owner, app_name = app.user_id, app.name
        effects = [PostCommitEffect("usage_counter", lambda: self._increment_usage(owner))]
        if email is not None:
            effects.append(
                PostCommitEffect(
                    "invitation_email",
                    lambda: self._send_invitation_email(app_name, invitation, email),
                )
            )
        effects.extend(self._webhook_effects(app, "invitation.created", invitation))
        await run_post_commit_effects(effects, f"invitation {invitation.id}")
        return invitation

    # Verify / accept
    async def _complete(self, app: TenantApp, invitation: Invitation) -> Invitation | None:
        completed = await self.store.mark_completed(invitation, utcnow())
        if completed is None:
            return None
        await self.db.commit()
        logger.info("Invitation %s completed", completed.id)
        await run_post_commit_effects(
            self._webhook_effects(app, "invitation.completed", completed),
            f"invitation {completed.id}",
        )
        return completed

    async def verify(
        self,
        principal: Principal,
        app_id: uuid.UUID,
        invitee_identifier: str,
        invitation_id: uuid.UUID | None = None,
    ) -> Invitation | None:
        """Complete the matching pending invitation. None when nothing is pending."""
        app = await self.resolve_app(principal, app_id)
        invitation = await self.store.find_pending(app.id, invitee_identifier, invitation_id)
        if invitation is None:
            return None
        return await self._complete(app, invitation)

    async def get_public_invitation(
        self, invitation_id: uuid.UUID
    ) -> tuple[Invitation, TenantApp] | None:
        invitation = await self.store.get_pending_by_id(invitation_id)
        if invitation is None:
            return None
        app = await self.store.get_app(invitation.app_id)
        if app is None:
            return None
        return invitation, app

    async def accept(self, invitation_id: uuid.UUID) -> tuple[Invitation, TenantApp] | None:
        """Invitee accepts from the emailed link; no caller identity involved."""
        found = await self.get_public_invitation(invitation_id)
        if found is None:
            return None
        invitation, app = found
        completed = await self._complete(app, invitation)
        if completed is None:
            return None
        return completed, app

    # Validate signup
    async def validate_signup(
        self, principal: Principal, app_id: uuid.UUID, user_that_signed_up_id: str
    ) -> Invitation | None:
        """Stamp signup on the completed invitation for this identifier. None when there is none."""
        app = await self.resolve_app(principal, app_id)
        invitation = await self.store.find_completed_not_signed_up(app.id, user_that_signed_up_id)
        if invitation is None:
            return None
        signed_up = await self.store.mark_signed_up(invitation, user_that_signed_up_id, utcnow())
        if signed_up is None:
            return None
        await self.db.commit()
        logger.info("Invitation %s signup validated", signed_up.id)
        await run_post_commit_effects(
            self._webhook_effects(app, "invitation.signup_completed", signed_up),
            f"invitation {signed_up.id}",
        )
        return signed_up

    # Reads
    async def list_invitations(self, principal: Principal, app_id: uuid.UUID) -> Sequence[Invitation]:
        app = await self.resolve_app(principal, app_id)
        return await self.store.list_by_app(app.id)

    async def get_metrics(
        self,
        principal: Principal,
        app_id: uuid.UUID,
        period_days: int,
        now: datetime | None = None,
    ) -> dict:
        if period_days < 1 or period_days > self.settings.metrics_max_period_days:
            raise ValidationError.for_field(
                "period", f"Period must be between 1 and {self.settings.metrics_max_period_days} days"
            )
        app = await self.resolve_app(principal, app_id)
        rows = await self.store.funnel_rows(app.id)
        metrics = compute_metrics(rows, period_days, now or utcnow())
        return {"app": {"id": str(app.id), "name": app.name}, **metrics}

    async def stats(self, principal: Principal, app_id: uuid.UUID) -> dict:
        app = await self.resolve_app(principal, app_id)
        return {
            "uniqueInvites": await self.store.count_unique_invitees(app.id),
            "completedInvites": await self.store.count_by_app(
                app.id, InvitationStatus.COMPLETED.value
            ),
        }

    async def usage(self, user_id: str) -> dict:
        record = await usage_counter.get_usage(self.db, user_id)
        total = await self.current_invite_count(user_id)
        plan = await self.quota.resolve_plan(user_id)
        limit = plan.invite_limit if plan else None
        return {
            "totalInvites": total,
            "limit": limit,
            "remainingInvites": max(limit - total, 0) if limit is not None else None,
            "planId": plan.id if plan else None,
            "lastUpdated": as_utc(record.updated_at) if record else None,
        }

    # Erasure
    async def delete_invitation(
        self, principal: Principal, app_id: uuid.UUID, invitation_id: uuid.UUID
    ) -> None:
        app = await self.resolve_app(principal, app_id)
        if not await self.store.delete(invitation_id, app.id):
            raise NotFoundError("Invitation not found")
        await self.db.commit()
        logger.info("Invitation %s deleted from app %s", invitation_id, app.id)

    async def delete_by_inviter(self, principal: Principal, app_id: uuid.UUID, inviter_id: str) -> int:
        """Erase every invitation ``inviter_id`` sent in this app. No webhook is sent."""
        app = await self.resolve_app(principal, app_id)
        deleted = await self.store.delete_by_inviter(app.id, inviter_id)
        await self.db.commit()
        logger.info(
            "Erased %s invitation(s) of inviter %r in app %s (caller=%s)",
            deleted,
            inviter_id,
            app.id,
            principal.user_id or principal.kind,
        )
        return deleted

    async def delete_inviter_everywhere(self, user_id: str, inviter_id: str) -> int:
        """Erase ``inviter_id`` across every app the user owns."""
        app_ids = await self.store.list_app_ids(user_id)
        if not app_ids:
            raise AuthorizationError("No apps found for this user", status_code=403)
        deleted = await self.store.delete_by_inviter_in_apps(app_ids, inviter_id)
        await self.db.commit()
        logger.info(
            "Erased %s invitation(s) of inviter %r across %s app(s) of user %s",
            deleted,
            inviter_id,
            len(app_ids),
            user_id,
        )
        return deleted

    # Dashboard webhook tester
    async def send_test_webhook(
        self,
        principal: Principal,
        app_id: uuid.UUID,
        request: WebhookTestCreate | WebhookTestVerify,
    ) -> dict:
        """Deliver a synthetic event and report how the tenant endpoint answered.

        Raises WebhookDeliveryError when the endpoint cannot be reached.
        """
        app = await self.resolve_app(principal, app_id)
        if not app.webhook_url:
            raise ValidationError.for_field("webhookUrl", "No webhook URL configured for this app")
        now = utcnow()
        if isinstance(request, WebhookTestCreate):
            event = WebhookEvent(
                type="invitation.created",
                data=WebhookEventData(
                    invitation_id=uuid.uuid4(),
                    app_id=app.id,
                    inviter_id=request.inviter_id,
                    invitee_identifier=request.invitee_identifier,
                    status=InvitationStatus.PENDING.value,
                    metadata=request.metadata,
                    created_at=now,
                ),
            )
        else:
            event = WebhookEvent(
                type="invitation.completed",
                data=WebhookEventData(
                    invitation_id=request.invitation_id or uuid.uuid4(),
                    app_id=app.id,
                    inviter_id="test-inviter",
                    invitee_identifier=request.invitee_identifier,
                    status=InvitationStatus.COMPLETED.value,
                    created_at=now,
                    completed_at=now,
                ),
            )
        payload = event.to_payload()
        response = await self.dispatcher.deliver(app.webhook_url, app.auth_header, payload)
        return {
            "payload": payload,
            "webhookResponse": {"status": response.status_code, "body": response.text},
        }
