# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation funnel metrics. Pure functions over (created_at, completed_at, signed_up_at) rows."""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta, timezone

from reftrack_server.models.base import as_utc

FunnelRow = tuple[datetime, datetime | None, datetime | None]


def _rate(numerator: int, denominator: int) -> float:
    """Percentage with two decimals; 0 when there is nothing to divide by."""
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator * 100, 2)


def summarize(rows: Iterable[FunnelRow]) -> dict:
    total = accepted = signed_up = 0
    for _created, completed_at, signed_up_at in rows:
        total += 1
        if completed_at is not None:
            accepted += 1
        if signed_up_at is not None:
            signed_up += 1
    return {
        "total_invitations": total,
        "invitations_accepted": accepted,
        "invitations_signed_up": signed_up,
        "acceptance_rate": _rate(accepted, total),
        "signup_rate": _rate(signed_up, accepted),
        "conversion_rate": _rate(signed_up, total),
    }


def window_start(now: datetime, days: int) -> datetime:
    """UTC midnight of the first day of a ``days``-day window ending today."""
    today = as_utc(now).date()
    first = today - timedelta(days=days - 1)
    return datetime.combine(first, time.min, tzinfo=timezone.utc)


def daily_breakdown(rows: Sequence[FunnelRow], days: int, now: datetime) -> list[dict]:
    """One bucket per UTC day, oldest first, covering the same window as ``window_start``."""
    start = window_start(now, days).date()
    buckets: dict[date, list[FunnelRow]] = {start + timedelta(days=i): [] for i in range(days)}
    for row in rows:
        day = as_utc(row[0]).date()
        if day in buckets:
            buckets[day].append(row)
    return [{"date": day.isoformat(), **summarize(buckets[day])} for day in sorted(buckets)]


def compute_metrics(rows: Sequence[FunnelRow], days: int, now: datetime) -> dict:
    """Overall funnel, the trailing ``days`` window and its per-day breakdown."""
    start = window_start(now, days)
    in_window = [r for r in rows if start <= as_utc(r[0]) <= as_utc(now)]
    return {
        "overall": summarize(rows),
        "period": {"days": days, **summarize(in_window)},
        "daily_breakdown": daily_breakdown(in_window, days, now),
    }
