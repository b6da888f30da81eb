# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin API - privacy erasure across every app the user owns."""

from fastapi import APIRouter, Depends

from reftrack_server.api.deps import get_engine
from reftrack_server.auth import Principal, get_current_user
from reftrack_server.rate_limit import ADMIN_ERASURE, rate_limit_erasure_dep
from reftrack_server.services.lifecycle import InvitationLifecycleEngine

router = APIRouter(prefix="/admin", tags=["admin"])


@router.delete("/inviters/{inviter_id}", dependencies=[Depends(rate_limit_erasure_dep(ADMIN_ERASURE))])
async def delete_inviter_everywhere(
    inviter_id: str,
    user: Principal = Depends(get_current_user),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """Erase an inviter's invitations from all of the user's apps. 403 if the user has no apps."""
    deleted = await engine.delete_inviter_everywhere(user.user_id, inviter_id)
    return {
        "success": True,
        "message": f"Deleted {deleted} invitation(s) across all apps",
        "data": {"deleted": deleted},
    }
