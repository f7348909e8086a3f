"""
CLI runner for stock-sync.

Usage:
    python -m stock_sync.run [OPTIONS]

    # Run one coordinate reconciliation pass
    python -m stock_sync.run --once

    # Run as daemon: cache cleanup plus hourly reconciliation
    python -m stock_sync.run --daemon

    # Show which coordinates would change without writing
    python -m stock_sync.run --once --dry-run
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import SyncConfig
from .context import AppContext
from .errors import StockSyncError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("stock-sync")


async def run_once(config: SyncConfig, dry_run: bool = False) -> bool:
    """Run a single reconciliation pass. Returns True on success."""
    context = AppContext.from_config(config)

    try:
        report = await context.reconciler.run_pass(dry_run=dry_run)
    except StockSyncError:
        logger.exception("Reconciliation pass failed")
        return False

    logger.info(f"Pass complete: {report.to_dict()}")
    if dry_run:
        for update in report.updates:
            values = "clear" if update.is_clear else f"{update.latitude}, {update.longitude}"
            logger.info(f"  - row {update.row_number}: {values}")
    return True


async def run_daemon(config: SyncConfig) -> None:
    """Run background cache cleanup and scheduled reconciliation until cancelled."""
    logger.info("Starting stock-sync daemon")
    context = AppContext.from_config(config)
    context.start()
    try:
        await asyncio.Event().wait()
    finally:
        await context.stop()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="stock-sync: store coordinate reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Reconcile coordinates once
    python -m stock_sync.run --once

    # Run as daemon
    python -m stock_sync.run --daemon

    # Use a specific config file
    python -m stock_sync.run --config datasette.yaml --once
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("datasette.yaml"),
        help="Path to config file (default: datasette.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one reconciliation pass and exit",
    )
    parser.add_argument(
        "--daemon",
        action="store_true",
        help="Run as a daemon, reconciling on schedule",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show coordinate updates without writing them",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = SyncConfig.from_yaml(args.config)
    logger.info(f"Config loaded from {args.config}")
    logger.info(f"Settings: {config.to_dict()}")

    if not config.sheets.get_spreadsheet_id():
        logger.error("Spreadsheet id is not set (SHEET_ID)")
        return 1

    if args.once:
        success = asyncio.run(run_once(config, dry_run=args.dry_run))
        return 0 if success else 1

    if args.daemon:
        try:
            asyncio.run(run_daemon(config))
        except KeyboardInterrupt:
            logger.info("Daemon stopped by user")
        return 0

    # Default: show help
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
