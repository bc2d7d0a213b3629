"""
watch_resources.py

Purpose:
    Mount the synced favorites and notifications of the current user (and,
    optionally, the ratings of one restaurant) and log every change until
    interrupted or until --seconds elapse.

Usage:
    python scripts/watch_resources.py --email me@example.com --password ...
    python scripts/watch_resources.py --restaurant <uuid> --seconds 120
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import os
from typing import List

from cuizly_sync.auth import SupabaseSessionProvider
from cuizly_sync.config import SyncSettings, get_supabase_client
from cuizly_sync.core.cache_slot import SlotSnapshot
from cuizly_sync.core.lifetime import ViewScope
from cuizly_sync.core.subscriptions import SubscriptionManager
from cuizly_sync.errors import CuizlySyncError
from cuizly_sync.logging_utils import LOG_RUN_ID, log_error, log_info
from cuizly_sync.resources.base import SyncedResource
from cuizly_sync.resources.favorites import FavoritesResource
from cuizly_sync.resources.notifications import NotificationsResource
from cuizly_sync.resources.ratings import RatingsResource
from cuizly_sync.store.supabase_store import SupabaseRowStore


# ---------------------------------------------------------------------------
# RUN BANNER
# ---------------------------------------------------------------------------
def print_run_banner(resources: List[str]) -> None:
    now = datetime.datetime.now(datetime.timezone.utc)
    banner = [
        "\n===============================================================",
        "  CUIZLY-SYNC WATCH",
        f"  Run ID       : {LOG_RUN_ID}",
        f"  UTC Time     : {now.strftime('%Y-%m-%d %H:%M:%S')}",
        "  Resources:",
    ]
    for name in resources:
        banner.append(f"    • {name}")
    banner.append("===============================================================\n")
    print("\n".join(banner))


def _describe(resource: SyncedResource, snapshot: SlotSnapshot) -> str:
    value = snapshot.value
    size = len(value) if isinstance(value, (list, dict)) else int(value is not None)
    status = "loading" if snapshot.is_loading else "idle"
    error = f" error={snapshot.last_error}" if snapshot.last_error else ""
    return f"{resource.identity.key} v{snapshot.version} items={size} {status}{error}"


def _watch(resource: SyncedResource) -> None:
    def _on_change(snapshot: SlotSnapshot) -> None:
        log_info(
            _describe(resource, snapshot),
            invoking_function="watch",
            invoking_purpose="Log synced resource changes",
        )

    resource.slot.add_listener(_on_change)


async def run_watch(args: argparse.Namespace) -> int:
    settings = SyncSettings.from_env(language=args.language)
    client = await get_supabase_client()

    if args.email and args.password:
        try:
            await client.auth.sign_in_with_password({"email": args.email, "password": args.password})
        except Exception as exc:  # noqa: BLE001
            log_error(
                "Sign-in failed",
                invoking_function="run_watch",
                invoking_purpose="Open a user session",
                next_step="Abort",
                resolution="Check CUIZLY_EMAIL / CUIZLY_PASSWORD",
                exc=exc,
            )
            return 1

    store = SupabaseRowStore(client)
    sessions = SupabaseSessionProvider(client)
    subscriptions = SubscriptionManager(store)
    common = {"settings": settings, "subscriptions": subscriptions}

    resources: List[SyncedResource] = [
        FavoritesResource(store, sessions, **common),
        NotificationsResource(store, sessions, **common),
    ]
    if args.restaurant:
        resources.append(RatingsResource(store, sessions, args.restaurant, **common))

    print_run_banner([r.resource_type for r in resources])

    async with ViewScope("watch") as scope:
        for resource in resources:
            try:
                await resource.mount(scope)
            except CuizlySyncError as exc:
                log_error(
                    f"Could not mount {resource.resource_type}",
                    invoking_function="run_watch",
                    invoking_purpose="Mount synced resources",
                    next_step="Continue with remaining resources",
                    exc=exc,
                )
                continue
            _watch(resource)
            log_info(
                _describe(resource, resource.read()),
                invoking_function="run_watch",
                invoking_purpose="Mount synced resources",
                next_step="Wait for changes",
            )

        if args.seconds > 0:
            await asyncio.sleep(args.seconds)
        else:
            await asyncio.Event().wait()

    log_info(
        f"Watch finished; channels still open: {subscriptions.open_count}",
        invoking_function="run_watch",
        invoking_purpose="Release synced resources",
    )
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch Cuizly synced resources for the current user")
    parser.add_argument("--email", default=os.environ.get("CUIZLY_EMAIL"))
    parser.add_argument("--password", default=os.environ.get("CUIZLY_PASSWORD"))
    parser.add_argument("--restaurant", help="also watch this restaurant's ratings")
    parser.add_argument("--seconds", type=float, default=0, help="stop after N seconds (0 = until Ctrl+C)")
    parser.add_argument("--language", choices=("fr", "en"), default=None)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        return asyncio.run(run_watch(args))
    except KeyboardInterrupt:
        log_info("Interrupted", invoking_function="main", invoking_purpose="Watch synced resources")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
