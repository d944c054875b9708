#!/usr/bin/env python3
"""
Inspect or migrate the data saved in the durable local store.

Usage:
    PYTHONPATH=. python3 scripts/migrate_local_data.py --dry-run
    PYTHONPATH=. python3 scripts/migrate_local_data.py --token "$TOKEN"
    TRIPSYNC_ACCESS_TOKEN=... PYTHONPATH=. python3 scripts/migrate_local_data.py

Exits 0 when everything migrated (or nothing needed to), 1 on partial or
total failure, 2 on bad arguments.
"""

import argparse
import asyncio
import logging
import os
import sys

from services.tripsync.config import Settings
from services.tripsync.context import build_medium
from services.tripsync.notifications import Notification, NotificationCenter
from services.tripsync.storage.local_store import DurableLocalStore, Namespace
from services.tripsync.storage.migration import MigrationEngine
from services.tripsync.storage.remote_adapter import RemoteStoreAdapter
from services.tripsync.telemetry import setup_sentry

logger = logging.getLogger("migrate_local_data")


async def show_counts(store: DurableLocalStore) -> None:
    info = await store.storage_info()
    print(f"local store: {'available' if info.available else 'UNAVAILABLE'}, {info.used_bytes} bytes used")
    for namespace in Namespace:
        items = await store.get(namespace)
        print(f"  {namespace.value:<16} {len(items):>5}")


async def run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.backend:
        overrides["local_store_backend"] = args.backend
    if args.path:
        overrides["local_store_path"] = args.path
    config = Settings(**overrides)
    if config.local_store_backend == "memory":
        print("ERROR: the memory backend holds no saved data; use file or redis.", file=sys.stderr)
        return 2
    setup_sentry(config)

    medium = build_medium(config)
    store = DurableLocalStore(
        medium,
        trip_retention=config.local_trip_retention,
        key_prefix=config.storage_key_prefix,
    )
    await show_counts(store)
    if args.dry_run:
        return 0

    token = args.token
    if not token:
        print("ERROR: no access token. Pass --token or set TRIPSYNC_ACCESS_TOKEN.", file=sys.stderr)
        return 2

    notifications = NotificationCenter()

    def _echo(notification: Notification) -> None:
        print(f"[{notification.level.value}] {notification.message}")

    notifications.subscribe(_echo)
    remote = RemoteStoreAdapter(config.api_base_url, lambda: token, timeout_s=config.http_timeout_s)
    try:
        result = await MigrationEngine(store, remote, notifications).run()
    finally:
        await remote.aclose()

    counts = result.migrated_items
    print(
        f"migrated: trips={counts.trips} collections={counts.collections} "
        f"places={counts.places} errors={len(result.errors)}"
    )
    for error in result.errors:
        print(f"  - {error}")
    return 0 if not result.errors else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate local trip planner data to your account")
    parser.add_argument("--dry-run", action="store_true", help="Only print per-namespace counts")
    parser.add_argument(
        "--token",
        default=os.environ.get("TRIPSYNC_ACCESS_TOKEN"),
        help="Access token for the remote store (or set TRIPSYNC_ACCESS_TOKEN)",
    )
    parser.add_argument("--backend", choices=["file", "redis"], help="Override the local store backend")
    parser.add_argument("--path", help="Override the local store directory (file backend)")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main() -> None:
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
