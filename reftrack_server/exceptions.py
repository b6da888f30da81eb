# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Error taxonomy shared by services and routers.

Services raise these before any mutation; ``main`` renders them as
``{"success": false, "message": ..., "errors": [...]}`` with the matching
HTTP status. Best-effort side effects never raise them to the caller.
"""

from typing import Any


class ReferralError(Exception):
    """Base for errors that map to an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors
        super().__init__(self.message)


class AuthenticationError(ReferralError):
    """Missing or invalid credential."""

    status_code = 401
    default_message = "Unauthorized"


class AuthorizationError(ReferralError):
    """Valid credential, wrong tenant scope. 404 unless a route asks for 403."""

    status_code = 404
    default_message = "App not found"


class ValidationError(ReferralError):
    """Malformed input; ``errors`` holds one ``{field, message}`` per problem."""

    status_code = 400
    default_message = "Validation error"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(errors=[{"field": field, "message": message}])


class QuotaExceededError(ReferralError):
    status_code = 403
    default_message = "Invite limit reached. Please try again later or upgrade your plan."


class NotFoundError(ReferralError):
    status_code = 404
    default_message = "Not found"


class StoreError(Exception):
    """Datastore failure, as opposed to a row simply not matching."""


class PaymentsUnavailableError(Exception):
    """The subscription source could not be read."""


class WebhookDeliveryError(Exception):
    """Network failure or non-2xx answer from a tenant webhook."""


class RateLimitedError(ReferralError):
    status_code = 429
    default_message = "Too many requests. Please try again later."
