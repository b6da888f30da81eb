# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invitation store: typed queries over apps and invitations.

Single-row lookups return None when nothing matches; datastore failures are
raised as StoreError. Nothing here commits; the lifecycle engine owns the
transaction boundary.
"""

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime
from functools import wraps
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from reftrack_server.exceptions import StoreError
from reftrack_server.models import Invitation, InvitationStatus, TenantApp


def _wrap_errors(fn):
    @wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except SQLAlchemyError as e:
            raise StoreError(f"{fn.__name__} failed") from e

    return wrapper


def _sync(obj: Any, **values: Any) -> None:
    # Reflect a Core UPDATE on the loaded object without marking it dirty
    for key, value in values.items():
        set_committed_value(obj, key, value)


class InvitationStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # Apps
    @_wrap_errors
    async def get_app(self, app_id: uuid.UUID, owner_user_id: str | None = None) -> TenantApp | None:
        query = select(TenantApp).where(TenantApp.id == app_id)
        if owner_user_id is not None:
            query = query.where(TenantApp.user_id == owner_user_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    @_wrap_errors
    async def list_apps(self, owner_user_id: str) -> Sequence[TenantApp]:
        result = await self.db.execute(
            select(TenantApp)
            .where(TenantApp.user_id == owner_user_id)
            .order_by(TenantApp.created_at.desc())
        )
        return result.scalars().all()

    @_wrap_errors
    async def list_app_ids(self, owner_user_id: str) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(TenantApp.id).where(TenantApp.user_id == owner_user_id)
        )
        return list(result.scalars().all())

    @_wrap_errors
    async def add_app(self, app: TenantApp) -> TenantApp:
        self.db.add(app)
        await self.db.flush()
        return app

    @_wrap_errors
    async def delete_app(self, app: TenantApp) -> None:
        # Explicit so the cascade does not depend on the backend enforcing foreign keys
        await self.db.execute(delete(Invitation).where(Invitation.app_id == app.id))
        await self.db.delete(app)
        await self.db.flush()

    # Invitations
    @_wrap_errors
    async def insert(
        self,
        app_id: uuid.UUID,
        inviter_id: str,
        invitee_identifier: str,
        metadata: dict[str, Any] | None = None,
    ) -> Invitation:
        invitation = Invitation(
            app_id=app_id,
            inviter_id=inviter_id,
            invitee_identifier=invitee_identifier,
            status=InvitationStatus.PENDING.value,
            meta=metadata or {},
        )
        self.db.add(invitation)
        await self.db.flush()
        return invitation

    @_wrap_errors
    async def get(self, invitation_id: uuid.UUID, app_id: uuid.UUID | None = None) -> Invitation | None:
        query = select(Invitation).where(Invitation.id == invitation_id)
        if app_id is not None:
            query = query.where(Invitation.app_id == app_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    @_wrap_errors
    async def get_pending_by_id(self, invitation_id: uuid.UUID) -> Invitation | None:
        result = await self.db.execute(
            select(Invitation).where(
                Invitation.id == invitation_id,
                Invitation.status == InvitationStatus.PENDING.value,
            )
        )
        return result.scalar_one_or_none()

    @_wrap_errors
    async def list_by_app(self, app_id: uuid.UUID) -> Sequence[Invitation]:
        """Newest first."""
        result = await self.db.execute(
            select(Invitation)
            .where(Invitation.app_id == app_id)
            .order_by(Invitation.created_at.desc(), Invitation.id)
        )
        return result.scalars().all()

    @_wrap_errors
    async def find_pending(
        self,
        app_id: uuid.UUID,
        invitee_identifier: str,
        invitation_id: uuid.UUID | None = None,
    ) -> Invitation | None:
        """Oldest pending invitation for the invitee (or the one with ``invitation_id``)."""
        query = select(Invitation).where(
            Invitation.app_id == app_id,
            Invitation.invitee_identifier == invitee_identifier,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        if invitation_id is not None:
            query = query.where(Invitation.id == invitation_id)
        result = await self.db.execute(query.order_by(Invitation.created_at).limit(1))
        return result.scalar_one_or_none()

    @_wrap_errors
    async def find_completed_not_signed_up(
        self, app_id: uuid.UUID, invitee_identifier: str
    ) -> Invitation | None:
        result = await self.db.execute(
            select(Invitation)
            .where(
                Invitation.app_id == app_id,
                Invitation.invitee_identifier == invitee_identifier,
                Invitation.status == InvitationStatus.COMPLETED.value,
                Invitation.signed_up_at.is_(None),
            )
            .order_by(Invitation.completed_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @_wrap_errors
    async def mark_completed(self, invitation: Invitation, now: datetime) -> Invitation | None:
        """pending -> completed. None if the row left ``pending`` in the meantime."""
        result = await self.db.execute(
            update(Invitation)
            .where(
                Invitation.id == invitation.id,
                Invitation.status == InvitationStatus.PENDING.value,
            )
            .values(status=InvitationStatus.COMPLETED.value, completed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        _sync(invitation, status=InvitationStatus.COMPLETED.value, completed_at=now, updated_at=now)
        return invitation

    @_wrap_errors
    async def mark_signed_up(
        self, invitation: Invitation, signed_up_user_id: str, now: datetime
    ) -> Invitation | None:
        """Stamp signup once, only on a completed row. None if it was already stamped."""
        result = await self.db.execute(
            update(Invitation)
            .where(
                Invitation.id == invitation.id,
                Invitation.status == InvitationStatus.COMPLETED.value,
                Invitation.signed_up_at.is_(None),
            )
            .values(signed_up_at=now, signed_up_user_id=signed_up_user_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        _sync(invitation, signed_up_at=now, signed_up_user_id=signed_up_user_id, updated_at=now)
        return invitation

    @_wrap_errors
    async def delete(self, invitation_id: uuid.UUID, app_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            delete(Invitation).where(Invitation.id == invitation_id, Invitation.app_id == app_id)
        )
        return result.rowcount > 0

    @_wrap_errors
    async def delete_by_inviter(self, app_id: uuid.UUID, inviter_id: str) -> int:
        """Remove every invitation of ``inviter_id`` in one app. 0 is a valid result."""
        result = await self.db.execute(
            delete(Invitation).where(
                and_(Invitation.app_id == app_id, Invitation.inviter_id == inviter_id)
            )
        )
        return result.rowcount or 0

    @_wrap_errors
    async def delete_by_inviter_in_apps(self, app_ids: Iterable[uuid.UUID], inviter_id: str) -> int:
        app_ids = list(app_ids)
        if not app_ids:
            return 0
        result = await self.db.execute(
            delete(Invitation).where(
                Invitation.app_id.in_(app_ids), Invitation.inviter_id == inviter_id
            )
        )
        return result.rowcount or 0

    # Aggregates
    @_wrap_errors
    async def funnel_rows(
        self, app_id: uuid.UUID, since: datetime | None = None
    ) -> list[tuple[datetime, datetime | None, datetime | None]]:
        """(created_at, completed_at, signed_up_at) for the app, optionally created since ``since``."""
        query = select(
            Invitation.created_at, Invitation.completed_at, Invitation.signed_up_at
        ).where(Invitation.app_id == app_id)
        if since is not None:
            query = query.where(Invitation.created_at >= since)
        result = await self.db.execute(query)
        return [tuple(row) for row in result.all()]

    @_wrap_errors
    async def count_by_app(self, app_id: uuid.UUID, status: str | None = None) -> int:
        query = select(func.count()).select_from(Invitation).where(Invitation.app_id == app_id)
        if status is not None:
            query = query.where(Invitation.status == status)
        return await self.db.scalar(query) or 0

    @_wrap_errors
    async def count_unique_invitees(self, app_id: uuid.UUID) -> int:
        return await self.db.scalar(
            select(func.count(func.distinct(Invitation.invitee_identifier))).where(
                Invitation.app_id == app_id
            )
        ) or 0
