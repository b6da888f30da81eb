# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Public invite API - invitee opens and accepts an invitation from the email link."""

import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from reftrack_server.api.deps import get_engine
from reftrack_server.api.schemas import InvitationResponse, PublicInvitationResponse
from reftrack_server.models import Invitation, TenantApp
from reftrack_server.services.lifecycle import InvitationLifecycleEngine

router = APIRouter(prefix="/invitations", tags=["invite"])


def _not_found() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "message": "Invitation not found or already used"},
    )


def _public(invitation: Invitation, app: TenantApp) -> PublicInvitationResponse:
    return PublicInvitationResponse(
        **InvitationResponse.from_model(invitation).model_dump(), app_name=app.name
    )


@router.get("/{invitation_id}")
async def get_invitation(
    invitation_id: uuid.UUID,
    engine: InvitationLifecycleEngine = Depends(get_engine),
):
    """Pending invitation with its app name, for the accept page."""
    found = await engine.get_public_invitation(invitation_id)
    if found is None:
        return _not_found()
    return {"success": True, "data": _public(*found)}


@router.post("/{invitation_id}/verify")
async def accept_invitation(
    invitation_id: uuid.UUID,
    engine: InvitationLifecycleEngine = Depends(get_engine),
):
    """Accept the invitation. The id in the emailed link is the only credential."""
    accepted = await engine.accept(invitation_id)
    if accepted is None:
        return _not_found()
    return {
        "success": True,
        "message": "Invitation accepted",
        "data": _public(*accepted),
    }
