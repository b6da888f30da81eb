#!/usr/bin/env python3
# Copyright (C) 2024 RefTrack Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Mint a dashboard JWT for local development.

Run: python -m reftrack_server.scripts.issue_token <user_id> [email] [--minutes N]
"""

import argparse
from datetime import timedelta

from reftrack_server.auth import create_access_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Mint a dashboard bearer token")
    parser.add_argument("user_id")
    parser.add_argument("email", nargs="?")
    parser.add_argument("--minutes", type=int, default=None, help="Lifetime (default: JWT_EXPIRE_MINUTES)")
    args = parser.parse_args()
    claims = {"sub": args.user_id}
    if args.email:
        claims["email"] = args.email
    expires = timedelta(minutes=args.minutes) if args.minutes else None
    print(create_access_token(claims, expires_delta=expires))


if __name__ == "__main__":
    main()
