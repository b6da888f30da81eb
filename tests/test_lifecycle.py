# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation lifecycle: create, verify, validate-signup and their side effects."""

import pytest
from httpx import AsyncClient

from reftrack_server.models import UserInviteUsage
from reftrack_server.services import usage
from reftrack_server.services.lifecycle import PostCommitEffect, metadata_problem, run_post_commit_effects

from conftest import WEBHOOK_URL

pytestmark = pytest.mark.anyio


@pytest.fixture
def invitations_url(tenant_app) -> str:
    return f"/api/v1/apps/{tenant_app['id']}/invitations"


async def _create(client, url, headers, invitee="bob@y.com", inviter="alice@x.com", **extra):
    body = {"inviterId": inviter, "inviteeIdentifier": invitee, **extra}
    return await client.post(url, json=body, headers=headers)


async def test_scenario_create_verify_signup(client: AsyncClient, invitations_url, sdk_headers, webhooks):
    # Create
    r = await _create(client, invitations_url, sdk_headers)
    assert r.status_code == 201
    created = r.json()["data"]
    assert created["status"] == "pending"
    assert created["completedAt"] is None
    assert created["inviterId"] == "alice@x.com"

    # Verify, then verify again
    r = await client.post(f"{invitations_url}/verify", json={"inviteeIdentifier": "bob@y.com"}, headers=sdk_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["verified"] is True
    assert body["data"]["status"] == "completed"
    assert body["data"]["completedAt"] is not None

    r = await client.post(f"{invitations_url}/verify", json={"inviteeIdentifier": "bob@y.com"}, headers=sdk_headers)
    assert r.status_code == 404
    assert r.json() == {"success": False, "verified": False, "message": "No valid invitation found"}

    # Validate signup, then again
    r = await client.post(
        f"{invitations_url}/validate-signup", json={"userThatSignedUpId": "bob@y.com"}, headers=sdk_headers
    )
    assert r.status_code == 200
    assert r.json()["validated"] is True
    signed_up_at = r.json()["data"]["signedUpAt"]
    assert signed_up_at is not None

    r = await client.post(
        f"{invitations_url}/validate-signup", json={"userThatSignedUpId": "bob@y.com"}, headers=sdk_headers
    )
    assert r.status_code == 200
    assert r.json()["validated"] is False

    listed = (await client.get(invitations_url, headers=sdk_headers)).json()["data"]
    assert listed[0]["signedUpAt"] == signed_up_at

    assert [p["type"] for p in webhooks.payloads] == [
        "invitation.created",
        "invitation.completed",
        "invitation.signup_completed",
    ]


async def test_validate_signup_before_verify_does_nothing(client: AsyncClient, invitations_url, sdk_headers):
    await _create(client, invitations_url, sdk_headers)
    r = await client.post(
        f"{invitations_url}/validate-signup", json={"userThatSignedUpId": "bob@y.com"}, headers=sdk_headers
    )
    assert r.status_code == 200
    assert r.json()["validated"] is False


async def test_verify_by_invitation_id(client: AsyncClient, invitations_url, sdk_headers):
    first = (await _create(client, invitations_url, sdk_headers, inviter="alice")).json()["data"]
    second = (await _create(client, invitations_url, sdk_headers, inviter="carol")).json()["data"]

    r = await client.post(
        f"{invitations_url}/verify",
        json={"inviteeIdentifier": "bob@y.com", "invitationId": second["id"]},
        headers=sdk_headers,
    )
    assert r.status_code == 200
    assert r.json()["data"]["id"] == second["id"]

    statuses = {i["id"]: i["status"] for i in (await client.get(invitations_url, headers=sdk_headers)).json()["data"]}
    assert statuses == {first["id"]: "pending", second["id"]: "completed"}


async def test_verify_is_scoped_to_app(client: AsyncClient, invitations_url, sdk_headers, owner_headers):
    await _create(client, invitations_url, sdk_headers)
    other = await client.post("/api/v1/apps", json={"name": "Other"}, headers=owner_headers)
    other_url = f"/api/v1/apps/{other.json()['data']['id']}/invitations"
    r = await client.post(f"{other_url}/verify", json={"inviteeIdentifier": "bob@y.com"}, headers=owner_headers)
    assert r.status_code == 404
    assert r.json()["verified"] is False


async def test_create_validation_lists_every_field(client: AsyncClient, invitations_url, sdk_headers, session_maker):
    r = await client.post(
        invitations_url,
        json={"inviterId": " ", "inviteeIdentifier": ""},
        headers=sdk_headers,
    )
    assert r.status_code == 400
    fields = {e["field"] for e in r.json()["errors"]}
    assert fields == {"inviterId", "inviteeIdentifier"}
    async with session_maker() as s:
        assert await usage.get_invite_count(s, "user-1") == 0


async def test_email_requires_email_invitee(client: AsyncClient, invitations_url, sdk_headers, emails):
    r = await _create(
        client,
        invitations_url,
        sdk_headers,
        invitee="+15551234567",
        email={"fromName": "Alice", "subject": "Join", "content": "Come"},
    )
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "inviteeIdentifier"
    assert emails.sent == []


async def test_create_sends_invitation_email(client: AsyncClient, invitations_url, sdk_headers, emails):
    r = await _create(
        client,
        invitations_url,
        sdk_headers,
        email={"fromName": "Alice", "subject": "Join Acme", "content": "Come <b>now</b>", "replyTo": "alice@x.com"},
    )
    assert r.status_code == 201
    invitation_id = r.json()["data"]["id"]
    assert len(emails.sent) == 1
    sent = emails.sent[0]
    assert sent["to"] == "bob@y.com"
    assert sent["subject"] == "Join Acme"
    assert sent["reply_to"] == "alice@x.com"
    assert f"/invitations/{invitation_id}/accept" in sent["html"]
    assert "&lt;b&gt;now&lt;/b&gt;" in sent["html"]


async def test_metadata_is_stored_and_echoed(client: AsyncClient, invitations_url, sdk_headers, webhooks):
    meta = {"campaign": "spring", "nested": {"tier": 2, "tags": ["a", "b"]}}
    r = await _create(client, invitations_url, sdk_headers, metadata=meta)
    assert r.json()["data"]["metadata"] == meta
    assert webhooks.payloads[0]["data"]["metadata"] == meta


async def test_oversized_metadata_is_rejected(client: AsyncClient, invitations_url, sdk_headers):
    r = await _create(client, invitations_url, sdk_headers, metadata={"blob": "x" * 20_000})
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "metadata"


def test_metadata_depth_limit():
    assert metadata_problem({"a": {"b": {"c": 1}}}, 1000, 3) is None
    assert metadata_problem({"a": {"b": {"c": {"d": 1}}}}, 1000, 3) is not None
    assert metadata_problem(["not", "a", "map"], 1000, 3) is not None


async def test_webhook_failure_does_not_fail_create(
    client: AsyncClient, invitations_url, sdk_headers, webhooks, session_maker
):
    webhooks.fail = True
    r = await _create(client, invitations_url, sdk_headers)
    assert r.status_code == 201
    async with session_maker() as s:
        assert await usage.get_invite_count(s, "user-1") == 1


async def test_webhook_error_status_does_not_fail_verify(client: AsyncClient, invitations_url, sdk_headers, webhooks):
    await _create(client, invitations_url, sdk_headers)
    webhooks.status_code = 500
    r = await client.post(f"{invitations_url}/verify", json={"inviteeIdentifier": "bob@y.com"}, headers=sdk_headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "completed"


async def test_email_failure_does_not_fail_create(
    client: AsyncClient, invitations_url, sdk_headers, emails, webhooks, session_maker
):
    emails.fail = True
    r = await _create(
        client,
        invitations_url,
        sdk_headers,
        email={"fromName": "Alice", "subject": "Join", "content": "Come"},
    )
    assert r.status_code == 201
    # Later effects still ran
    assert [p["type"] for p in webhooks.payloads] == ["invitation.created"]
    async with session_maker() as s:
        assert await usage.get_invite_count(s, "user-1") == 1


async def test_webhook_wire_format(client: AsyncClient, tenant_app, invitations_url, sdk_headers, webhooks):
    created = (await _create(client, invitations_url, sdk_headers)).json()["data"]
    request = webhooks.requests[0]
    assert str(request.url) == WEBHOOK_URL
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    assert request.headers["authorization"] == "Bearer hook-token"
    payload = webhooks.payloads[0]
    assert payload["type"] == "invitation.created"
    assert payload["data"]["invitationId"] == created["id"]
    assert payload["data"]["appId"] == tenant_app["id"]
    assert payload["data"]["status"] == "pending"
    assert "completedAt" not in payload["data"]


async def test_no_webhook_when_app_has_no_url(client: AsyncClient, owner_headers, webhooks):
    app = (await client.post("/api/v1/apps", json={"name": "Quiet"}, headers=owner_headers)).json()["data"]
    r = await _create(client, f"/api/v1/apps/{app['id']}/invitations", owner_headers)
    assert r.status_code == 201
    assert webhooks.requests == []


async def test_public_accept_by_id(client: AsyncClient, invitations_url, sdk_headers, webhooks):
    created = (await _create(client, invitations_url, sdk_headers)).json()["data"]

    r = await client.get(f"/api/v1/invitations/{created['id']}")
    assert r.status_code == 200
    assert r.json()["data"]["appName"] == "Acme"

    r = await client.post(f"/api/v1/invitations/{created['id']}/verify")
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "completed"
    assert webhooks.payloads[-1]["type"] == "invitation.completed"

    assert (await client.post(f"/api/v1/invitations/{created['id']}/verify")).status_code == 404
    assert (await client.get(f"/api/v1/invitations/{created['id']}")).status_code == 404


async def test_run_post_commit_effects_isolates_failures():
    ran = []

    async def ok():
        ran.append("ok")

    async def boom():
        raise RuntimeError("boom")

    failed = await run_post_commit_effects(
        [PostCommitEffect("first", boom), PostCommitEffect("second", ok)], "test"
    )
    assert failed == ["first"]
    assert ran == ["ok"]


async def test_counter_failure_keeps_invitation(
    client: AsyncClient, invitations_url, sdk_headers, webhooks, monkeypatch
):
    async def broken_increment(db, user_id, now=None):
        raise RuntimeError("counter store down")

    monkeypatch.setattr(usage, "increment_invite_count", broken_increment)
    r = await _create(client, invitations_url, sdk_headers)
    assert r.status_code == 201
    assert r.json()["data"]["inviteeIdentifier"] == "bob@y.com"
    assert [p["type"] for p in webhooks.payloads] == ["invitation.created"]
    listed = (await client.get(invitations_url, headers=sdk_headers)).json()["data"]
    assert len(listed) == 1


async def test_counter_is_not_reset_by_reads(client: AsyncClient, invitations_url, sdk_headers, session_maker):
    async with session_maker() as s:
        s.add(UserInviteUsage(user_id="user-1", total_invites=7))
        await s.commit()
    await _create(client, invitations_url, sdk_headers)
    await client.get(invitations_url, headers=sdk_headers)
    async with session_maker() as s:
        assert await usage.get_invite_count(s, "user-1") == 8
