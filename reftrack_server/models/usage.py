# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Per-owner running total of invitations created across all of their apps."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from reftrack_server.models.base import Base, utcnow


class UserInviteUsage(Base):
    """Incremented on every successful create; deletions do not decrement it."""

    __tablename__ = "user_invite_usage"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_invites: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
