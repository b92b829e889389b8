#!/usr/bin/env python3
"""
Maintenance CLI for the traffic control identity service.

Usage:
  python main.py bootstrap-owner
  python main.py bootstrap-owner --email ops@example.com
  python main.py purge-tokens
  python main.py purge-tokens --older-than-days 30

Environment variables (see core/config.py):
  DATABASE_URL            SQLAlchemy URL of the identity database.
  OWNER_EMAIL             Owner account to promote or create.
  OWNER_DEFAULT_PASSWORD  Password for a newly created owner. Generated and
                          printed once if unset.

The HTTP service runs owner bootstrap on its own at startup; bootstrap-owner
is for provisioning a database before the first deploy.
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone

from auth.bootstrap import bootstrap_owner
from auth.refresh_store import RefreshTokenStore
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("trafficauth.cli")


def _cmd_bootstrap_owner(args: argparse.Namespace) -> int:
    settings = get_settings()
    email = args.email or settings.owner_email
    if not email:
        print("  [!] No owner email. Pass --email or set OWNER_EMAIL.")
        return 1
    store = UserStore(settings.database_url)
    try:
        owner = bootstrap_owner(store, email, settings.owner_default_password)
    finally:
        store.close()
    print(f"  Owner ready: {owner.email} (id={owner.id})")
    return 0


def _cmd_purge_tokens(args: argparse.Namespace) -> int:
    if args.older_than_days < 0:
        print("  [!] --older-than-days must be zero or positive.")
        return 1
    cutoff = datetime.now(timezone.utc) - timedelta(days=args.older_than_days)
    store = RefreshTokenStore(get_settings().database_url)
    try:
        removed = store.purge_expired(before=cutoff)
    finally:
        store.close()
    print(f"  Removed {removed} refresh token(s) expired before {cutoff.date().isoformat()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description="Identity service maintenance commands.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    boot = sub.add_parser("bootstrap-owner", help="Promote or create the owner account.")
    boot.add_argument("--email", help="Owner email (default: OWNER_EMAIL).")
    boot.set_defaults(func=_cmd_bootstrap_owner)

    purge = sub.add_parser("purge-tokens", help="Delete long-expired refresh tokens.")
    purge.add_argument(
        "--older-than-days",
        type=int,
        default=30,
        help="Only remove tokens that expired at least this many days ago (default: 30).",
    )
    purge.set_defaults(func=_cmd_purge_tokens)
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
