# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Usage quota enforcement against the owner's subscription plan."""

import logging

from reftrack_server.exceptions import PaymentsUnavailableError
from reftrack_server.services.plans import SubscriptionPlan, free_plan
from reftrack_server.services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


class UsageQuotaEnforcer:
    """Decides whether an owner may create another invitation.

    ``fail_open`` is for tests and placeholder deployments only. With it off,
    an unreadable plan denies creation and a disabled payments source applies
    the free plan's ceiling.
    """

    def __init__(
        self,
        payments: SubscriptionService | None,
        *,
        enabled: bool = True,
        fail_open: bool = False,
    ) -> None:
        self.payments = payments
        self.enabled = enabled and payments is not None
        self.fail_open = fail_open

    async def resolve_plan(self, owner_user_id: str) -> SubscriptionPlan | None:
        """Owner's plan; None when it cannot be determined and fail-open applies or the source is down."""
        if not self.enabled:
            return None if self.fail_open else free_plan()
        try:
            return await self.payments.get_user_plan(owner_user_id)
        except PaymentsUnavailableError:
            logger.warning(
                "Plan lookup failed for user %s (fail_open=%s)",
                owner_user_id,
                self.fail_open,
                exc_info=True,
            )
            return None

    async def invite_limit(self, owner_user_id: str) -> int | None:
        plan = await self.resolve_plan(owner_user_id)
        return plan.invite_limit if plan else None

    async def can_create(self, owner_user_id: str, current_count: int) -> bool:
        plan = await self.resolve_plan(owner_user_id)
        if plan is None:
            return self.fail_open
        return current_count < plan.invite_limit
