# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response and webhook payloads."""

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from reftrack_server.models import Invitation, TenantApp
from reftrack_server.models.base import as_utc


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, also accepts snake_case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Apps
class AppCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    webhook_url: str | None = None
    auth_header: str | None = None
    ios_app_url: str | None = None
    android_app_url: str | None = None

    @field_validator("webhook_url", "auth_header", "ios_app_url", "android_app_url")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("webhook_url")
    @classmethod
    def _http_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("Webhook URL must start with http:// or https://")
        return v


class AppUpdate(AppCreate):
    pass


class AppResponse(CamelModel):
    id: uuid.UUID
    name: str
    user_id: str
    webhook_url: str | None = None
    auth_header: str | None = None
    ios_app_url: str | None = None
    android_app_url: str | None = None
    has_api_secret: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, app: TenantApp) -> "AppResponse":
        return cls(
            id=app.id,
            name=app.name,
            user_id=app.user_id,
            webhook_url=app.webhook_url,
            auth_header=app.auth_header,
            ios_app_url=app.ios_app_url,
            android_app_url=app.android_app_url,
            has_api_secret=app.api_secret_hash is not None,
            created_at=as_utc(app.created_at),
            updated_at=as_utc(app.updated_at),
        )


class AppWithSecretResponse(AppResponse):
    """Returned once on creation or rotation; the secret is stored hashed."""

    api_secret: str


# Invitations
class InvitationEmailOptions(CamelModel):
    from_name: str = ""
    subject: str = ""
    content: str = ""
    reply_to: str | None = None


class InvitationCreate(CamelModel):
    # Emptiness and email format are checked by the lifecycle engine after the quota check
    inviter_id: str = ""
    invitee_identifier: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    email: InvitationEmailOptions | None = None


class InvitationVerify(CamelModel):
    invitee_identifier: str = Field(min_length=1)
    invitation_id: uuid.UUID | None = None


class ValidateSignupRequest(CamelModel):
    user_that_signed_up_id: str = Field(min_length=1)


class InvitationResponse(CamelModel):
    id: uuid.UUID
    app_id: uuid.UUID
    inviter_id: str
    invitee_identifier: str
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    signed_up_at: datetime | None = None
    signed_up_user_id: str | None = None

    @classmethod
    def from_model(cls, inv: Invitation) -> "InvitationResponse":
        return cls(
            id=inv.id,
            app_id=inv.app_id,
            inviter_id=inv.inviter_id,
            invitee_identifier=inv.invitee_identifier,
            status=inv.status,
            metadata=inv.meta or {},
            created_at=as_utc(inv.created_at),
            updated_at=as_utc(inv.updated_at),
            completed_at=as_utc(inv.completed_at),
            signed_up_at=as_utc(inv.signed_up_at),
            signed_up_user_id=inv.signed_up_user_id,
        )


class PublicInvitationResponse(InvitationResponse):
    app_name: str


# Webhooks
WebhookEventType = Literal[
    "invitation.created",
    "invitation.completed",
    "invitation.signup_completed",
]


class WebhookEventData(CamelModel):
    invitation_id: uuid.UUID
    app_id: uuid.UUID
    inviter_id: str
    invitee_identifier: str
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    completed_at: datetime | None = None
    signed_up_at: datetime | None = None
    signed_up_user_id: str | None = None


class WebhookEvent(BaseModel):
    type: WebhookEventType
    data: WebhookEventData

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready body; optional timestamps are omitted until they are set."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WebhookTestCreate(CamelModel):
    type: Literal["create"]
    inviter_id: str = Field(min_length=1)
    invitee_identifier: EmailStr
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookTestVerify(CamelModel):
    type: Literal["verify"]
    invitee_identifier: EmailStr
    invitation_id: uuid.UUID | None = None


WebhookTestRequest = Annotated[
    WebhookTestCreate | WebhookTestVerify, Field(discriminator="type")
]


# Metrics
class FunnelSummary(CamelModel):
    total_invitations: int
    invitations_accepted: int
    invitations_signed_up: int
    acceptance_rate: float
    signup_rate: float
    conversion_rate: float


class PeriodFunnel(FunnelSummary):
    days: int


class DailyFunnel(FunnelSummary):
    date: str


class AppRef(CamelModel):
    id: uuid.UUID
    name: str


class MetricsResponse(CamelModel):
    app: AppRef
    overall: FunnelSummary
    period: PeriodFunnel
    daily_breakdown: list[DailyFunnel]
