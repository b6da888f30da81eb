# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation model - one referral attempt and its lifecycle state."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reftrack_server.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from reftrack_server.models.tenant_app import TenantApp


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    # Reserved; nothing transitions to it yet
    EXPIRED = "expired"


class Invitation(Base, TimestampMixin):
    """Invitation from an inviter to an invitee inside one tenant app.

    pending --verify--> completed --validate-signup--> completed + signed_up_at
    """

    __tablename__ = "invitations"
    __table_args__ = (
        Index("ix_invitations_app_invitee_status", "app_id", "invitee_identifier", "status"),
        Index("ix_invitations_app_inviter", "app_id", "inviter_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    app_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inviter_id: Mapped[str] = mapped_column(String(255), nullable=False)
    invitee_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=InvitationStatus.PENDING.value
    )
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_up_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_up_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    app: Mapped["TenantApp"] = relationship("TenantApp", back_populates="invitations")
