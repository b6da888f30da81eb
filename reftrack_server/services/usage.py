# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Per-owner invite counter (user_invite_usage)."""

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reftrack_server.models import Invitation, TenantApp, UserInviteUsage
from reftrack_server.models.base import utcnow


async def get_usage(db: AsyncSession, user_id: str) -> UserInviteUsage | None:
    result = await db.execute(select(UserInviteUsage).where(UserInviteUsage.user_id == user_id))
    return result.scalar_one_or_none()


async def get_invite_count(db: AsyncSession, user_id: str) -> int:
    """Lifetime invitations created by the owner; 0 before the first one."""
    count = await db.scalar(
        select(UserInviteUsage.total_invites).where(UserInviteUsage.user_id == user_id)
    )
    return count or 0


async def count_live_invitations(db: AsyncSession, user_id: str) -> int:
    """Invitations currently stored across all of the owner's apps."""
    count = await db.scalar(
        select(func.count())
        .select_from(Invitation)
        .join(TenantApp, TenantApp.id == Invitation.app_id)
        .where(TenantApp.user_id == user_id)
    )
    return count or 0


async def increment_invite_count(db: AsyncSession, user_id: str, now: datetime | None = None) -> None:
    """Add one to the owner's counter in a single UPDATE; creates the row on first use.

    The caller commits.
    """
    now = now or utcnow()
    stmt = (
        update(UserInviteUsage)
        .where(UserInviteUsage.user_id == user_id)
        .values(total_invites=UserInviteUsage.total_invites + 1, updated_at=now)
    )
    result = await db.execute(stmt)
    if result.rowcount:
        return
    try:
        async with db.begin_nested():
            db.add(UserInviteUsage(user_id=user_id, total_invites=1, updated_at=now))
    except IntegrityError:
        # Another request inserted the row first
        await db.execute(stmt)


async def set_invite_count(db: AsyncSession, user_id: str, total: int) -> None:
    """Overwrite the counter (reconciliation). The caller commits."""
    usage = await get_usage(db, user_id)
    if usage is None:
        db.add(UserInviteUsage(user_id=user_id, total_invites=total, updated_at=utcnow()))
    else:
        usage.total_invites = total
        usage.updated_at = utcnow()
