# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory rate limiting for destructive erasure endpoints."""

import time
from collections import defaultdict

from fastapi import Request

from reftrack_server.exceptions import RateLimitedError

# (client_key, route) -> list of request timestamps in window
_buckets: defaultdict[tuple[str, str], list[float]] = defaultdict(list)
# Window seconds; max requests per window per route template
WINDOW = 60
ADMIN_ERASURE = "/api/v1/admin/inviters/{inviter_id}"
APP_ERASURE = "/api/v1/apps/{app_id}/inviters/{inviter_id}"
LIMITS: dict[str, int] = {
    ADMIN_ERASURE: 5,
    APP_ERASURE: 10,
}


def _client_key(request: Request) -> str:
    """Prefer X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host or "unknown"
    return "unknown"


def _clean_old(bucket: list[float], now: float) -> None:
    cutoff = now - WINDOW
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)


def check_rate_limit(request: Request, route: str) -> None:
    """Raise 429 if the client has exceeded the limit for this route."""
    limit = LIMITS.get(route)
    if limit is None:
        return
    now = time.monotonic()
    bucket = _buckets[(_client_key(request), route)]
    _clean_old(bucket, now)
    if len(bucket) >= limit:
        raise RateLimitedError()
    bucket.append(now)


def reset() -> None:
    _buckets.clear()


def rate_limit_erasure_dep(route: str):
    """FastAPI dependency factory: add Depends(rate_limit_erasure_dep(ROUTE)) to erasure routes."""

    async def dep(request: Request) -> None:
        check_rate_limit(request, route)

    return dep
