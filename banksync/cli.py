"""
Command-line entry point.

Loads configuration, performs the startup checks and runs the
scheduler, a single cycle, or prints ledger statistics.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from banksync.core.config import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DATA_DIR,
    ConfigError,
    Settings,
    load_settings,
)
from banksync.core.logging import configure_logging
from banksync.sync.clients.base import APIError, RouteNotFoundError
from banksync.sync.clients.invoice_ninja import InvoiceNinjaClient
from banksync.sync.clients.mercury import MercuryClient
from banksync.sync.engine import ReconciliationEngine
from banksync.sync.ledger import LedgerCorruptError, LedgerStore
from banksync.sync.metrics import CycleRunMetrics, CycleStatus
from banksync.sync.scheduler import SyncScheduler

logger = structlog.get_logger()

STARTUP_ERRORS = (LedgerCorruptError, RouteNotFoundError, APIError)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="banksync",
        description="Sync settled Mercury transactions into Invoice Ninja.",
    )
    parser.add_argument(
        "-c", dest="config", type=Path, default=DEFAULT_CONFIG_PATH,
        help="Path to config file",
    )
    parser.add_argument(
        "-d", dest="data_dir", type=Path, default=None,
        help=f"Directory for storing state (default: {DEFAULT_DATA_DIR})",
    )
    parser.add_argument(
        "-i", dest="invoice_ninja_url", default=None,
        help="InvoiceNinja URL (used when the config file has none)",
    )
    parser.add_argument(
        "command", nargs="?", default="run", choices=["run", "once", "ledger"],
        help="run: sync forever (default); once: a single cycle; ledger: show ledger stats",
    )
    return parser


def print_cycle(run: CycleRunMetrics):
    """Pretty print a finished cycle."""
    print("\n=== Sync Cycle ===\n")
    print(f"Run ID: {run.run_id}")
    print(f"Status: {run.status.value}")
    print(f"Duration: {run.duration_seconds:.2f}s")
    print(f"Accounts: {run.accounts_processed}/{run.accounts_total}")
    if run.accounts_skipped:
        print(f"Skipped accounts: {', '.join(run.accounts_skipped)}")
    print(f"Fetched: {run.transactions_fetched}")
    print(f"Posted: {run.transactions_posted}")
    print(f"Already synced: {run.transactions_already_synced}")
    print(f"Ledger entries: {run.ledger_size} ({run.ledger_pruned} pruned)")
    if run.error_count:
        print(f"Errors: {run.error_count}")
    print()


def ledger_command(settings: Settings) -> int:
    """Show ledger statistics without contacting any API."""
    store = LedgerStore(settings.state_file_path)
    try:
        ledger = store.load()
    except LedgerCorruptError as e:
        print(f"Error loading state: {e}", file=sys.stderr)
        return 1

    seen = sorted(ledger.entries().values())
    print("\n=== Ledger ===\n")
    print(f"Path: {store.path}")
    print(f"Entries: {len(ledger)}")
    print(f"Oldest: {seen[0].isoformat() if seen else '-'}")
    print(f"Newest: {seen[-1].isoformat() if seen else '-'}")
    print(f"Retention: {settings.RETENTION_DAYS} days")
    print()
    return 0


async def sync_command(settings: Settings, once: bool = False) -> int:
    """Run the startup checks, then one cycle or the scheduler."""
    retry = settings.to_retry_config()
    source = MercuryClient.create(
        settings.MERCURY_API_KEY.get_secret_value(),
        base_url=settings.MERCURY_BASE_URL,
        timeout=settings.REQUEST_TIMEOUT,
        retry=retry,
    )
    destination = InvoiceNinjaClient.create(
        settings.INVOICE_NINJA_TOKEN.get_secret_value(),
        settings.INVOICE_NINJA_URL,
        timeout=settings.REQUEST_TIMEOUT,
        retry=retry,
    )

    try:
        try:
            engine = await ReconciliationEngine.bootstrap(
                source,
                destination,
                LedgerStore(settings.state_file_path),
                provider_name=settings.INVOICE_NINJA_BANK_PROVIDER,
                config=settings.to_sync_config(),
            )
        except STARTUP_ERRORS as e:
            logger.error("startup.failed", error=str(e), error_type=type(e).__name__)
            return 1

        scheduler = SyncScheduler(engine)
        if once:
            await scheduler.run_forever(max_cycles=1)
            run = engine.metrics.get_last_run()
            if run is None:
                return 1
            print_cycle(run)
            return 1 if run.status == CycleStatus.FAILED else 0

        await scheduler.run_forever()
        return 0
    finally:
        await source.transport.aclose()
        await destination.transport.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config, args.data_dir, args.invoice_ninja_url)
    except ConfigError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.LOG_LEVEL)

    try:
        if args.command == "ledger":
            return ledger_command(settings)
        return asyncio.run(sync_command(settings, once=args.command == "once"))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
