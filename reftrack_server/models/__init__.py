# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from reftrack_server.models.base import Base
from reftrack_server.models.invitation import Invitation, InvitationStatus
from reftrack_server.models.tenant_app import TenantApp
from reftrack_server.models.usage import UserInviteUsage
from reftrack_server.models.subscription import UserSubscription

__all__ = [
    "Base",
    "Invitation",
    "InvitationStatus",
    "TenantApp",
    "UserInviteUsage",
    "UserSubscription",
]
