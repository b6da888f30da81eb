# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Funnel metrics aggregation."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from reftrack_server.services.metrics import compute_metrics, summarize, window_start

pytestmark = pytest.mark.anyio

NOW = datetime(2024, 6, 15, 12, 30, tzinfo=timezone.utc)


def _row(days_ago: float, completed: bool = False, signed_up: bool = False):
    created = NOW - timedelta(days=days_ago)
    return (
        created,
        created + timedelta(hours=1) if completed else None,
        created + timedelta(hours=2) if signed_up else None,
    )


def test_summarize_rates():
    rows = [_row(1, True, True), _row(1, True), _row(2), _row(3)]
    s = summarize(rows)
    assert s["total_invitations"] == 4
    assert s["invitations_accepted"] == 2
    assert s["invitations_signed_up"] == 1
    assert s["acceptance_rate"] == 50.0
    assert s["signup_rate"] == 50.0
    assert s["conversion_rate"] == 25.0


def test_summarize_empty_has_zero_rates():
    s = summarize([])
    assert s["total_invitations"] == 0
    assert s["acceptance_rate"] == 0
    assert s["signup_rate"] == 0
    assert s["conversion_rate"] == 0


def test_rates_round_to_two_decimals():
    s = summarize([_row(0, True), _row(0), _row(0)])
    assert s["acceptance_rate"] == 33.33


def test_window_starts_at_utc_midnight():
    assert window_start(NOW, 1) == datetime(2024, 6, 15, tzinfo=timezone.utc)
    assert window_start(NOW, 7) == datetime(2024, 6, 9, tzinfo=timezone.utc)


def test_daily_breakdown_sums_to_period():
    rows = [_row(d, completed=d % 2 == 0, signed_up=d % 4 == 0) for d in range(0, 40)]
    m = compute_metrics(rows, 30, NOW)
    daily = m["daily_breakdown"]
    assert len(daily) == 30
    assert daily[0]["date"] == "2024-05-17"
    assert daily[-1]["date"] == "2024-06-15"
    for key in ("total_invitations", "invitations_accepted", "invitations_signed_up"):
        assert sum(d[key] for d in daily) == m["period"][key]
    assert m["period"]["days"] == 30
    assert m["period"]["total_invitations"] == 30
    assert m["overall"]["total_invitations"] == 40


def test_naive_timestamps_are_treated_as_utc():
    naive = NOW.replace(tzinfo=None)
    m = compute_metrics([(naive, None, None)], 1, NOW)
    assert m["period"]["total_invitations"] == 1


async def test_metrics_endpoint(client: AsyncClient, tenant_app, owner_headers, sdk_headers):
    url = f"/api/v1/apps/{tenant_app['id']}/invitations"
    await client.post(url, json={"inviterId": "alice", "inviteeIdentifier": "bob@y.com"}, headers=sdk_headers)
    await client.post(url, json={"inviterId": "alice", "inviteeIdentifier": "carol@y.com"}, headers=sdk_headers)
    await client.post(f"{url}/verify", json={"inviteeIdentifier": "bob@y.com"}, headers=sdk_headers)

    r = await client.get(f"/api/v1/apps/{tenant_app['id']}/metrics?period=7", headers=owner_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["app"]["name"] == "Acme"
    assert data["overall"]["totalInvitations"] == 2
    assert data["overall"]["acceptanceRate"] == 50.0
    assert data["period"]["days"] == 7
    assert data["period"]["invitationsAccepted"] == 1
    assert len(data["dailyBreakdown"]) == 7
    assert data["dailyBreakdown"][-1]["totalInvitations"] == 2


async def test_metrics_period_out_of_range(client: AsyncClient, tenant_app, owner_headers):
    r = await client.get(f"/api/v1/apps/{tenant_app['id']}/metrics?period=0", headers=owner_headers)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "period"


async def test_metrics_need_a_dashboard_login(client: AsyncClient, tenant_app, sdk_headers):
    r = await client.get(f"/api/v1/apps/{tenant_app['id']}/metrics", headers=sdk_headers)
    assert r.status_code == 401
