# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Current plan per user, read from the subscription records the payments integration keeps."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reftrack_server.exceptions import PaymentsUnavailableError
from reftrack_server.models import UserSubscription
from reftrack_server.models.subscription import ACTIVE_SUBSCRIPTION_STATUSES
from reftrack_server.services.plans import SubscriptionPlan, free_plan, get_plan

logger = logging.getLogger(__name__)


class SubscriptionService:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_subscription(self, user_id: str) -> UserSubscription | None:
        try:
            result = await self.db.execute(
                select(UserSubscription).where(UserSubscription.user_id == user_id)
            )
        except SQLAlchemyError as e:
            raise PaymentsUnavailableError(f"Could not read subscription for {user_id}") from e
        return result.scalar_one_or_none()

    async def get_user_plan(self, user_id: str) -> SubscriptionPlan:
        """Plan of the user's active subscription, or the free plan when there is none."""
        sub = await self.get_subscription(user_id)
        if sub is None or sub.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            return free_plan()
        plan = get_plan(sub.plan_id)
        if plan is None:
            logger.error("Subscription for user %s references unknown plan %r", user_id, sub.plan_id)
            raise PaymentsUnavailableError(f"Invalid plan ID: {sub.plan_id}")
        return plan
