# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Subscription plan catalog."""

from dataclasses import dataclass, field

FREE_PLAN_ID = "free"


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    description: str
    invite_limit: int
    # Prices in cents
    price_monthly: int
    price_yearly: int
    features: tuple[str, ...] = field(default_factory=tuple)
    is_active: bool = True

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "inviteLimit": self.invite_limit,
            "priceMonthly": self.price_monthly,
            "priceYearly": self.price_yearly,
            "features": list(self.features),
        }


PLANS: dict[str, SubscriptionPlan] = {
    "free": SubscriptionPlan(
        id="free",
        name="Free",
        description="Get started with a small number of invites",
        invite_limit=100,
        price_monthly=0,
        price_yearly=0,
        features=("Dashboard access", "Basic analytics", "API access"),
    ),
    "pro": SubscriptionPlan(
        id="pro",
        name="Pro",
        description="10,000 invites",
        invite_limit=10_000,
        price_monthly=900,
        price_yearly=9000,
        features=("Advanced analytics", "Webhook integrations", "Email support"),
    ),
    "business": SubscriptionPlan(
        id="business",
        name="Business",
        description="100,000 invites",
        invite_limit=100_000,
        price_monthly=2900,
        price_yearly=29000,
        features=("Premium analytics", "Custom webhooks", "Priority support", "Custom branding"),
    ),
}


def get_plan(plan_id: str) -> SubscriptionPlan | None:
    return PLANS.get(plan_id)


def free_plan() -> SubscriptionPlan:
    return PLANS[FREE_PLAN_ID]


def all_plans() -> list[SubscriptionPlan]:
    return [p for p in PLANS.values() if p.is_active]
