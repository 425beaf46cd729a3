#!/usr/bin/env python3
"""
Operator CLI for the Abacus sync engine.

Runs the same orchestrator entry points as the cron endpoints, plus
identity-mapping maintenance:

    sync_cli.py sync cursor
    sync_cli.py backfill claude_code --target 2025-01-01
    sync_cli.py unmapped github
    sync_cli.py assign claude_code ci-key dev@example.com
"""

import argparse
import asyncio
import sys
from datetime import date

from dotenv import load_dotenv

load_dotenv()

from abacus.database import async_session_maker, init_db  # noqa: E402
from abacus.services.adapters import PROVIDERS  # noqa: E402
from abacus.services.identity import IdentityResolver  # noqa: E402
from abacus.services.mapping_sync import MappingSyncService  # noqa: E402
from abacus.services.orchestrator import SyncOrchestrator  # noqa: E402


def log(msg):
    """Print with flush for immediate output."""
    print(msg, flush=True)


def log_errors(errors: list[str]) -> None:
    for error in errors:
        log(f"  ! {error}")


async def run_init_db(args) -> bool:
    await init_db()
    log("Created missing tables")
    return True


async def run_sync(args) -> bool:
    async with async_session_maker() as db:
        result = await SyncOrchestrator(db).run_forward_sync(args.provider)
        if result.skipped:
            log(f"{args.provider}: not configured, skipped")
        elif not result.did_sync and result.success:
            log(f"{args.provider}: already synced through {result.previous_cursor}")
        else:
            log(f"{args.provider}: imported {result.records_imported:,}, skipped {result.records_skipped:,}")
            if result.synced_range:
                log(f"  range: {result.synced_range[0]} .. {result.synced_range[1]}")
        log_errors(result.errors)

        if args.mappings and not result.skipped:
            mappings = await MappingSyncService(db).sync_mappings(args.provider)
            log(f"  mappings: {mappings.mappings_resolved} resolved")
        return result.success


async def run_backfill(args) -> bool:
    async with async_session_maker() as db:
        orchestrator = SyncOrchestrator(db)
        for batch in range(args.batches):
            result = await orchestrator.run_backfill(args.provider, args.target)
            log(
                f"{args.provider} batch {batch + 1}: {result.status}, "
                f"oldest={result.oldest_backfilled_date}, imported {result.records_imported:,}"
            )
            log_errors(result.errors)
            if result.status != "in_progress" or not result.success:
                return result.success
        return True


async def run_reset_backfill(args) -> bool:
    async with async_session_maker() as db:
        snapshot = await SyncOrchestrator(db).reset_backfill(args.provider)
        log(f"{args.provider}: backfill reset (oldest={snapshot.oldest_backfilled_date})")
        return True


async def run_mappings(args) -> bool:
    async with async_session_maker() as db:
        result = await MappingSyncService(db).sync_mappings(args.provider, full=args.full)
        if result.skipped:
            log(f"{args.provider}: skipped")
        else:
            log(
                f"{args.provider}: {result.entries_found} directory entries, "
                f"{result.mappings_resolved} resolved, {result.mappings_created} created"
            )
        log_errors(result.errors)
        return result.success


async def run_status(args) -> bool:
    providers = [args.provider] if args.provider else PROVIDERS
    async with async_session_maker() as db:
        orchestrator = SyncOrchestrator(db)
        for provider in providers:
            state = await orchestrator.get_status(provider)
            if state is None:
                log(f"{provider}: never synced")
                continue
            log(
                f"{provider}: cursor={state.last_forward_cursor} "
                f"oldest={state.oldest_backfilled_date} complete={state.backfill_complete} "
                f"records={state.record_count:,} last_sync={state.last_sync_at}"
            )
    return True


async def run_unmapped(args) -> bool:
    async with async_session_maker() as db:
        resolver = IdentityResolver(db)
        for mapping in await resolver.list_unmapped(args.provider):
            log(f"{mapping.provider:<12} {mapping.external_id:<40} {mapping.occurrence_count:>6}")
        summary = await resolver.unmapped_summary(args.provider)
        log(summary["message"])
    return True


async def run_assign(args) -> bool:
    async with async_session_maker() as db:
        await IdentityResolver(db).assign(args.provider, args.external_id, args.email)
        await db.commit()
        log(f"{args.provider}: {args.external_id} -> {args.email.lower()}")
    return True


COMMANDS = {
    "init-db": run_init_db,
    "sync": run_sync,
    "backfill": run_backfill,
    "reset-backfill": run_reset_backfill,
    "mappings": run_mappings,
    "status": run_status,
    "unmapped": run_unmapped,
    "assign": run_assign,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Abacus sync engine operator tool")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create missing tables from the models (local development)")

    sync = commands.add_parser("sync", help="Forward sync a provider")
    sync.add_argument("provider", choices=PROVIDERS)
    sync.add_argument("--mappings", action="store_true", help="Reconcile identity mappings afterwards")

    backfill = commands.add_parser("backfill", help="Run backfill batches for a provider")
    backfill.add_argument("provider", choices=PROVIDERS)
    backfill.add_argument("--target", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    backfill.add_argument("--batches", type=int, default=1, help="Batches to run (stops when not in progress)")

    reset = commands.add_parser("reset-backfill", help="Clear the backfill completed flag")
    reset.add_argument("provider", choices=PROVIDERS)

    mappings = commands.add_parser("mappings", help="Reconcile identity mappings with the provider directory")
    mappings.add_argument("provider", choices=PROVIDERS)
    mappings.add_argument("--full", action="store_true", help="Create mappings for every directory entry")

    status = commands.add_parser("status", help="Show sync state")
    status.add_argument("provider", nargs="?", choices=PROVIDERS)

    unmapped = commands.add_parser("unmapped", help="List unmapped identifiers")
    unmapped.add_argument("provider", nargs="?", choices=PROVIDERS)

    assign = commands.add_parser("assign", help="Map an identifier to an email")
    assign.add_argument("provider", choices=PROVIDERS)
    assign.add_argument("external_id")
    assign.add_argument("email")

    return parser


if __name__ == "__main__":
    args = build_parser().parse_args()
    ok = asyncio.run(COMMANDS[args.command](args))
    sys.exit(0 if ok else 1)
