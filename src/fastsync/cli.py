#!/usr/bin/env python3
"""Command-line interface for fastsync.

This module provides CLI commands for recording fasts, weights and water
locally and syncing them with the backend. Local changes are written to the
Local Store first, then pushed best-effort; `sync` runs a full sync.

Commands:
    login <email>           Sign in and store the bearer token
    logout                  Forget the stored token
    status                  Show sign-in and sync status
    sync [--force]          Run a full sync now
    watch                   Keep syncing periodically until interrupted
    start-fast              Start a new fast
    end-fast                End the active fast
    list-fasts              List recorded fasts
    delete-fast <id>        Delete a fast
    add-weight <weight>     Record a weight reading
    list-weights            List weight readings
    profile                 Show or update the profile
    water                   Show or set cups of water for a day
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .auth import CredentialStore
from .config import Config
from .local_store import LocalStore, LocalStoreError
from .models import Fast, WeightEntry, generate_id
from .remote_client import RemoteClient
from .sync import FullSyncResult, SyncOrchestrator
from .sync_manager import SyncManager, SyncStatus
from .timestamp_utils import current_timestamp_ms, format_timestamp, today
from .validation import (
    ValidationError,
    validate_cups,
    validate_date,
    validate_entity_id,
    validate_target_duration,
    validate_weight,
    validate_weight_unit,
)

logger = logging.getLogger(__name__)

MS_PER_HOUR = 60 * 60 * 1000


@dataclass
class App:
    """Everything a command needs, built once per invocation."""

    config: Config
    store: LocalStore
    credentials: CredentialStore
    client: RemoteClient
    orchestrator: SyncOrchestrator

    @classmethod
    def create(cls, config: Config) -> "App":
        db_path = config.get_database_file()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        store = LocalStore(db_path)
        credentials = CredentialStore(store)
        client = RemoteClient(
            config.get_api_base_url(), credentials, timeout=config.get_request_timeout()
        )
        orchestrator = SyncOrchestrator(
            store,
            client,
            credentials,
            tombstone_ttl_days=config.get_sync_config()["tombstone_ttl_days"],
        )
        return cls(config, store, credentials, client, orchestrator)

    def close(self) -> None:
        self.store.close()


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def format_fast(fast: Fast) -> str:
    """Format a fast as one line of text."""
    if fast.is_active:
        state = "active"
    else:
        state = "completed" if fast.completed else "ended early"
    line = (
        f"{fast.id} | {fast.plan_name} ({fast.target_duration:g}h) | "
        f"{format_timestamp(fast.start_time)} -> {format_timestamp(fast.end_time) or '...'} "
        f"| {state}"
    )
    if fast.note:
        line += f"\n    {fast.note}"
    return line


def report_push(pushed: bool, what: str) -> None:
    if not pushed:
        print(f"Note: {what} saved locally; it will be uploaded on the next sync.", file=sys.stderr)


# ===== Account =====


async def cmd_login(app: App, args: argparse.Namespace) -> int:
    """Sign in and store the returned token."""
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    response = await app.client.login(args.email, password)
    if not response["success"]:
        print(f"Login failed: {response['error']}", file=sys.stderr)
        return 1

    data = response.get("data")
    token = data.get("token") if isinstance(data, dict) else None
    if not isinstance(token, str) or not token:
        print("Login failed: server did not return a token", file=sys.stderr)
        return 1

    await app.credentials.set_token(token, email=args.email)
    print(f"Signed in as {args.email}")
    return 0


async def cmd_logout(app: App, args: argparse.Namespace) -> int:
    await app.credentials.clear_token()
    print("Signed out.")
    return 0


async def cmd_status(app: App, args: argparse.Namespace) -> int:
    """Show sign-in state, last sync and local counts."""
    last_sync = await app.orchestrator.get_last_sync_time()
    fasts, weights, pending, active = await asyncio.gather(
        app.store.get_fasts(),
        app.store.get_weights(),
        app.store.get_deleted_fasts(),
        app.store.get_active_fast(),
    )
    status = {
        "authenticated": await app.credentials.is_authenticated(),
        "user": await app.credentials.get_user_email(),
        "api_base_url": app.config.get_api_base_url(),
        "last_sync_timestamp": last_sync,
        "fasts": len(fasts),
        "weights": len(weights),
        "pending_deletions": len(pending),
        "active_fast": active.id if active else None,
    }

    if args.format == "json":
        print_json(status)
    else:
        if not status["authenticated"]:
            print("Signed in: no")
        elif status["user"]:
            print(f"Signed in: yes ({status['user']})")
        else:
            print("Signed in: yes")
        print(f"Backend: {status['api_base_url']}")
        print(f"Last sync: {format_timestamp(last_sync) if last_sync else 'never'}")
        print(f"Fasts: {status['fasts']}")
        print(f"Weights: {status['weights']}")
        if status["pending_deletions"]:
            print(f"Pending deletions: {status['pending_deletions']}")
        if active:
            print(f"Active fast: {format_fast(active)}")
    return 0


# ===== Sync =====


def print_sync_result(result: FullSyncResult, format_type: str) -> None:
    if format_type == "json":
        output: Dict[str, Any] = {"success": result.success}
        if result.success and result.data:
            output.update({
                "fasts": len(result.data.fasts),
                "weights": len(result.data.weights),
                "water": len(result.data.water),
                "results": result.data.results,
                "synced_at": result.data.synced_at,
            })
        elif result.error:
            output["error"] = {"kind": result.error.kind.value, "message": result.error.message}
        print_json(output)
    elif result.success and result.data:
        print("Sync completed:")
        print(f"  Fasts: {len(result.data.fasts)}")
        print(f"  Weights: {len(result.data.weights)}")
    else:
        message = result.error.message if result.error else "unknown error"
        print(f"Sync failed: {message}", file=sys.stderr)


async def cmd_sync(app: App, args: argparse.Namespace) -> int:
    """Run one full sync, unless the last one was too recent and --force is not given."""
    if not args.force:
        last_sync = await app.orchestrator.get_last_sync_time()
        min_interval_ms = app.config.get_sync_config()["min_interval_seconds"] * 1000
        if last_sync is not None and current_timestamp_ms() - last_sync < min_interval_ms:
            print("Skipped: last sync is too recent. Use --force to sync anyway.")
            return 0

    result = await app.orchestrator.perform_full_sync()
    print_sync_result(result, args.format)
    return 0 if result.success else 1


async def cmd_watch(app: App, args: argparse.Namespace) -> int:
    """Sync periodically until interrupted."""
    sync_config = app.config.get_sync_config()
    manager = SyncManager(
        app.orchestrator,
        interval_seconds=args.interval or sync_config["interval_seconds"],
        min_interval_seconds=sync_config["min_interval_seconds"],
        status_reset_seconds=sync_config["status_reset_seconds"],
    )

    def show(status: SyncStatus) -> None:
        if status is SyncStatus.ERROR:
            print(f"[{status.value}] {manager.last_error}")
        elif status is not SyncStatus.IDLE:
            print(f"[{status.value}]")

    manager.add_listener(show)
    manager.start()
    try:
        while manager.is_running:
            await asyncio.sleep(1)
    finally:
        await manager.stop()
    return 0


# ===== Fasts =====


async def cmd_start_fast(app: App, args: argparse.Namespace) -> int:
    active = await app.store.get_active_fast()
    if active is not None:
        print(f"Error: a fast is already active ({active.id})", file=sys.stderr)
        return 1

    fast = Fast(
        id=generate_id(),
        start_time=current_timestamp_ms(),
        target_duration=validate_target_duration(args.hours),
        plan_id=args.plan_id,
        plan_name=args.plan_name or args.plan_id,
        note=args.note,
    )
    await app.store.save_fast(fast)
    await app.store.set_active_fast(fast)

    if args.format == "json":
        print_json(fast.to_dict())
    else:
        print(f"Started fast {fast.id}")
    report_push(await app.orchestrator.sync_single_fast(fast), "fast")
    return 0


async def cmd_end_fast(app: App, args: argparse.Namespace) -> int:
    active = await app.store.get_active_fast()
    if active is None:
        print("Error: no active fast", file=sys.stderr)
        return 1

    end_time = current_timestamp_ms()
    reached_target = end_time - active.start_time >= active.target_duration * MS_PER_HOUR
    completed = reached_target and not args.incomplete
    fast = active.with_end(end_time, completed)
    if args.note is not None:
        fast = replace(fast, note=args.note)

    await app.store.save_fast(fast)
    await app.store.set_active_fast(None)

    if args.format == "json":
        print_json(fast.to_dict())
    else:
        print(f"Ended fast {fast.id} ({'completed' if completed else 'ended early'})")
    report_push(await app.orchestrator.sync_single_fast(fast), "fast")
    return 0


async def cmd_list_fasts(app: App, args: argparse.Namespace) -> int:
    fasts = await app.store.get_fasts()
    if args.format == "json":
        print_json([fast.to_dict() for fast in fasts])
        return 0
    if not fasts:
        print("No fasts found.")
        return 0
    for fast in fasts:
        print(format_fast(fast))
    return 0


async def cmd_delete_fast(app: App, args: argparse.Namespace) -> int:
    fast_id = validate_entity_id(args.fast_id, "fast_id")
    existed = await app.store.delete_fast(fast_id, deleted_at=current_timestamp_ms())
    active = await app.store.get_active_fast()
    if active is not None and active.id == fast_id:
        await app.store.set_active_fast(None)

    if not existed:
        print(f"Fast {fast_id} not found locally; requesting remote deletion anyway.")
    else:
        print(f"Deleted fast {fast_id}")
    report_push(await app.orchestrator.delete_fast_remote(fast_id), "deletion")
    return 0


# ===== Weights =====


async def cmd_add_weight(app: App, args: argparse.Namespace) -> int:
    entry = WeightEntry(
        id=generate_id(),
        date=validate_date(args.date) if args.date else today(),
        weight=validate_weight(args.weight),
    )
    await app.store.save_weight(entry)

    if args.format == "json":
        print_json(entry.to_dict())
    else:
        profile = await app.store.get_profile()
        print(f"Recorded {entry.weight:g} {profile.weight_unit} on {entry.date}")
    report_push(await app.orchestrator.sync_weight(entry), "weight")
    return 0


async def cmd_list_weights(app: App, args: argparse.Namespace) -> int:
    weights = await app.store.get_weights()
    if args.format == "json":
        print_json([entry.to_dict() for entry in weights])
        return 0
    if not weights:
        print("No weights recorded.")
        return 0
    unit = (await app.store.get_profile()).weight_unit
    for entry in weights:
        print(f"{entry.date}  {entry.weight:g} {unit}  ({entry.id})")
    return 0


# ===== Profile and water =====


async def cmd_profile(app: App, args: argparse.Namespace) -> int:
    """Show the profile, or update the fields given on the command line."""
    profile = await app.store.get_profile()
    changes: Dict[str, Any] = {}
    if args.display_name is not None:
        changes["display_name"] = args.display_name
    if args.avatar_id is not None:
        changes["avatar_id"] = args.avatar_id
    if args.weight_unit is not None:
        changes["weight_unit"] = validate_weight_unit(args.weight_unit)
    if args.notifications is not None:
        changes["notifications_enabled"] = args.notifications == "on"

    updated = profile
    if changes:
        updated = replace(profile, **changes)
    for badge in args.unlock_badge or []:
        updated = updated.with_badge(badge)

    if updated != profile:
        await app.store.save_profile(updated)

    if args.format == "json":
        print_json(updated.to_dict())
    else:
        print(f"Display name: {updated.display_name or '(not set)'}")
        print(f"Avatar: {updated.avatar_id}")
        print(f"Weight unit: {updated.weight_unit}")
        print(f"Notifications: {'on' if updated.notifications_enabled else 'off'}")
        print(f"Badges: {', '.join(updated.unlocked_badges) or '(none)'}")

    if updated != profile:
        report_push(await app.orchestrator.sync_profile(updated), "profile")
    return 0


async def cmd_water(app: App, args: argparse.Namespace) -> int:
    date = validate_date(args.date) if args.date else today()
    if args.cups is not None:
        await app.store.save_water_for_date(date, validate_cups(args.cups))
    cups = await app.store.get_water_for_date(date)
    if args.format == "json":
        print_json({"date": date, "cups": cups})
    else:
        print(f"{date}: {cups} cup(s) of water")
    return 0


COMMANDS = {
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "sync": cmd_sync,
    "watch": cmd_watch,
    "start-fast": cmd_start_fast,
    "end-fast": cmd_end_fast,
    "list-fasts": cmd_list_fasts,
    "delete-fast": cmd_delete_fast,
    "add-weight": cmd_add_weight,
    "list-weights": cmd_list_weights,
    "profile": cmd_profile,
    "water": cmd_water,
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        prog="fastsync",
        description="Offline-first fasting tracker data sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Custom configuration directory (default: ~/.config/fastsync)",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    login_parser = subparsers.add_parser("login", help="Sign in and store the token")
    login_parser.add_argument("email", help="Account email")
    login_parser.add_argument("--password", default=None, help="Password (prompted if omitted)")

    subparsers.add_parser("logout", help="Forget the stored token")
    subparsers.add_parser("status", help="Show sign-in and sync status")

    sync_parser = subparsers.add_parser("sync", help="Run a full sync now")
    sync_parser.add_argument(
        "--force", action="store_true", help="Sync even if the last sync was very recent"
    )

    watch_parser = subparsers.add_parser("watch", help="Sync periodically until interrupted")
    watch_parser.add_argument(
        "--interval", type=float, default=None, help="Seconds between syncs (default: from config)"
    )

    start_parser = subparsers.add_parser("start-fast", help="Start a new fast")
    start_parser.add_argument("--plan-id", default="16-8", help="Plan identifier (default: 16-8)")
    start_parser.add_argument("--plan-name", default=None, help="Plan display name")
    start_parser.add_argument("--hours", type=float, default=16.0, help="Target hours (default: 16)")
    start_parser.add_argument("--note", default=None, help="Optional note")

    end_parser = subparsers.add_parser("end-fast", help="End the active fast")
    end_parser.add_argument(
        "--incomplete", action="store_true", help="Mark as ended early even if the target was met"
    )
    end_parser.add_argument("--note", default=None, help="Replace the fast's note")

    subparsers.add_parser("list-fasts", help="List recorded fasts")

    delete_parser = subparsers.add_parser("delete-fast", help="Delete a fast")
    delete_parser.add_argument("fast_id", help="ID of the fast to delete")

    weight_parser = subparsers.add_parser("add-weight", help="Record a weight reading")
    weight_parser.add_argument("weight", type=float, help="Weight in the profile's unit")
    weight_parser.add_argument("--date", default=None, help="Day (YYYY-MM-DD, default: today)")

    subparsers.add_parser("list-weights", help="List weight readings")

    profile_parser = subparsers.add_parser("profile", help="Show or update the profile")
    profile_parser.add_argument("--display-name", default=None)
    profile_parser.add_argument("--avatar-id", type=int, default=None)
    profile_parser.add_argument("--weight-unit", default=None, help="lbs or kg")
    profile_parser.add_argument("--notifications", choices=["on", "off"], default=None)
    profile_parser.add_argument(
        "--unlock-badge", action="append", default=None, help="Badge id to unlock (repeatable)"
    )

    water_parser = subparsers.add_parser("water", help="Show or set cups of water for a day")
    water_parser.add_argument("--date", default=None, help="Day (YYYY-MM-DD, default: today)")
    water_parser.add_argument("--cups", type=int, default=None, help="Cups to record")

    return parser


async def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run one CLI command.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have command attribute)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if not getattr(args, "command", None):
        print("Error: No command specified. Use --help for available commands.", file=sys.stderr)
        return 1

    handler = COMMANDS.get(args.command)
    if handler is None:
        print(f"Error: Unknown command '{args.command}'", file=sys.stderr)
        return 1

    config = Config(config_dir=config_dir)
    try:
        app = App.create(config)
    except LocalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return await handler(app, args)
    except ValidationError as e:
        print(f"Error: Invalid {e.field} - {e.message}", file=sys.stderr)
        return 1
    except LocalStoreError as e:
        print(f"Error: local storage failed - {e}", file=sys.stderr)
        return 1
    finally:
        app.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Console entry point."""
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(args.config_dir, args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
