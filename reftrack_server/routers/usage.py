# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invite usage and plan catalog."""

from fastapi import APIRouter, Depends

from reftrack_server.api.deps import get_engine
from reftrack_server.auth import Principal, get_current_user
from reftrack_server.services.lifecycle import InvitationLifecycleEngine
from reftrack_server.services.plans import all_plans

router = APIRouter(tags=["usage"])


@router.get("/invite-usage")
async def get_invite_usage(
    user: Principal = Depends(get_current_user),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """Invitations created so far against the current plan's limit."""
    return {"success": True, "data": await engine.usage(user.user_id)}


@router.get("/plans")
async def list_plans() -> dict:
    return {"success": True, "data": [p.as_dict() for p in all_plans() if p.is_active]}
