# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation API for dashboards and app backends (JWT or app secret)."""

import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from reftrack_server.api.deps import get_engine
from reftrack_server.api.schemas import (
    InvitationCreate,
    InvitationResponse,
    InvitationVerify,
    ValidateSignupRequest,
)
from reftrack_server.auth import Principal, get_app_caller
from reftrack_server.services.lifecycle import InvitationLifecycleEngine

router = APIRouter(prefix="/apps/{app_id}/invitations", tags=["invitations"])


@router.get("")
async def list_invitations(
    app_id: uuid.UUID,
    caller: Principal = Depends(get_app_caller),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """All invitations of the app, newest first."""
    invitations = await engine.list_invitations(caller, app_id)
    return {"success": True, "data": [InvitationResponse.from_model(i) for i in invitations]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_invitation(
    app_id: uuid.UUID,
    body: InvitationCreate,
    caller: Principal = Depends(get_app_caller),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """Create a pending invitation, optionally emailing the invitee.

    403 when the owner's plan limit is reached. The usage counter, email and
    webhook run after the invitation is stored and never fail the request.
    """
    invitation = await engine.create(
        caller,
        app_id,
        inviter_id=body.inviter_id,
        invitee_identifier=body.invitee_identifier,
        metadata=body.metadata,
        email=body.email,
    )
    return {
        "success": True,
        "message": "Invitation created successfully",
        "data": InvitationResponse.from_model(invitation),
    }


@router.post("/verify")
async def verify_invitation(
    app_id: uuid.UUID,
    body: InvitationVerify,
    caller: Principal = Depends(get_app_caller),
    engine: InvitationLifecycleEngine = Depends(get_engine),
):
    """Complete the pending invitation for this invitee, if any."""
    invitation = await engine.verify(
        caller, app_id, body.invitee_identifier, invitation_id=body.invitation_id
    )
    if invitation is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "verified": False, "message": "No valid invitation found"},
        )
    return {
        "success": True,
        "verified": True,
        "message": "Invitation verified successfully",
        "data": InvitationResponse.from_model(invitation),
    }


@router.post("/validate-signup")
async def validate_signup(
    app_id: uuid.UUID,
    body: ValidateSignupRequest,
    caller: Principal = Depends(get_app_caller),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    """Record that the invitee signed up. Always 200; ``validated`` says whether anything matched."""
    invitation = await engine.validate_signup(caller, app_id, body.user_that_signed_up_id)
    if invitation is None:
        return {
            "success": True,
            "validated": False,
            "message": "No completed invitation found for this user",
        }
    return {
        "success": True,
        "validated": True,
        "message": "Signup validated successfully",
        "data": InvitationResponse.from_model(invitation),
    }


@router.delete("/{invitation_id}")
async def delete_invitation(
    app_id: uuid.UUID,
    invitation_id: uuid.UUID,
    caller: Principal = Depends(get_app_caller),
    engine: InvitationLifecycleEngine = Depends(get_engine),
) -> dict:
    await engine.delete_invitation(caller, app_id, invitation_id)
    return {"success": True, "message": "Invitation deleted"}
