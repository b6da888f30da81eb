#!/usr/bin/env python3
# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Recount every app owner's invitations and rewrite their usage counter.

Run: python -m reftrack_server.scripts.reconcile_invite_usage [--dry-run]
"""

import argparse
import asyncio
import logging
import sys

from sqlalchemy import distinct, select

from reftrack_server.database import async_session_maker, init_db
from reftrack_server.models import TenantApp
from reftrack_server.services import usage

logger = logging.getLogger(__name__)


async def reconcile(dry_run: bool = False) -> tuple[int, int]:
    """Returns (owners fixed, owners that failed)."""
    fixed = failed = 0
    async with async_session_maker() as session:
        result = await session.execute(select(distinct(TenantApp.user_id)))
        owners = [u for u in result.scalars().all() if u]
        print(f"Found {len(owners)} app owner(s)")
        for user_id in owners:
            try:
                live = await usage.count_live_invitations(session, user_id)
                current = await usage.get_invite_count(session, user_id)
                if live == current:
                    continue
                print(f"  {user_id}: {current} -> {live}")
                if not dry_run:
                    await usage.set_invite_count(session, user_id, live)
                    await session.commit()
                fixed += 1
            except Exception:
                await session.rollback()
                logger.exception("Failed to reconcile usage for %s", user_id)
                failed += 1
    return fixed, failed


async def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="Report drift without writing")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    await init_db()
    fixed, failed = await reconcile(dry_run=args.dry_run)
    print(f"{'Would fix' if args.dry_run else 'Fixed'} {fixed} owner(s), {failed} error(s)")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
