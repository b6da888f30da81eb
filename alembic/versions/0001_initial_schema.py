# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later
"""Initial schema: apps, invitations, user_invite_usage, user_subscriptions.

Revision ID: 0001_initial
Revises:
Create Date: 2024-06-01

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "apps",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("webhook_url", sa.Text(), nullable=True),
        sa.Column("auth_header", sa.Text(), nullable=True),
        sa.Column("api_secret_hash", sa.String(255), nullable=True),
        sa.Column("ios_app_url", sa.Text(), nullable=True),
        sa.Column("android_app_url", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_apps_user_id", "apps", ["user_id"])
    op.create_index("ix_apps_created_at", "apps", ["created_at"])

    op.create_table(
        "invitations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("app_id", sa.Uuid(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inviter_id", sa.String(255), nullable=False),
        sa.Column("invitee_identifier", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "metadata",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_up_user_id", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_invitations_app_invitee_status",
        "invitations",
        ["app_id", "invitee_identifier", "status"],
    )
    op.create_index("ix_invitations_app_inviter", "invitations", ["app_id", "inviter_id"])
    op.create_index("ix_invitations_created_at", "invitations", ["created_at"])

    op.create_table(
        "user_invite_usage",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("total_invites", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "user_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("plan_id", sa.String(32), nullable=False, server_default="free"),
        sa.Column("status", sa.String(32), nullable=False, server_default="active"),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_user_subscriptions_user_id", "user_subscriptions", ["user_id"], unique=True)
    op.create_index("ix_user_subscriptions_created_at", "user_subscriptions", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_user_subscriptions_created_at", table_name="user_subscriptions")
    op.drop_index("ix_user_subscriptions_user_id", table_name="user_subscriptions")
    op.drop_table("user_subscriptions")
    op.drop_table("user_invite_usage")
    op.drop_index("ix_invitations_created_at", table_name="invitations")
    op.drop_index("ix_invitations_app_inviter", table_name="invitations")
    op.drop_index("ix_invitations_app_invitee_status", table_name="invitations")
    op.drop_table("invitations")
    op.drop_index("ix_apps_created_at", table_name="apps")
    op.drop_index("ix_apps_user_id", table_name="apps")
    op.drop_table("apps")
