# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Tenant app model - a third-party application registered by a dashboard user."""

import uuid

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reftrack_server.models.base import Base, TimestampMixin
from reftrack_server.models.invitation import Invitation


class TenantApp(Base, TimestampMixin):
    """One tenant's registration: webhook target, SDK secret and deep links."""

    __tablename__ = "apps"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    webhook_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Sent verbatim as the Authorization header on webhook calls
    auth_header: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Hash of the static secret SDK/mobile callers present as a bearer token
    api_secret_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ios_app_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    android_app_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    invitations: Mapped[list["Invitation"]] = relationship(
        "Invitation",
        back_populates="app",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
