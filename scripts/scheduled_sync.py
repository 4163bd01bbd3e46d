#!/usr/bin/env python3
"""
Scheduled synchronization script for the change-tracking sync service.

This script replicates source changes to the destination database:
- Lists every change-tracked table on the source
- Applies inserts, updates and deletes since each table's last sync
- Records the run and any table failures in the destination SyncLog

Designed to be run on a schedule (e.g., via cron, Windows Task Scheduler or
Airflow), or to loop by itself with --interval.

Usage:
    python scripts/scheduled_sync.py [--config CONFIG_PATH] [--interval]

Exit codes:
    0: Last run succeeded
    1: Last run was partial or failed
"""

import argparse
import sys
import time

import structlog

from ctsync.providers import get_sync_orchestrator
from ctsync.sync.errors import SyncInProgressError
from ctsync.sync.models import RunReport
from ctsync.sync.orchestrator import SyncOrchestrator
from ctsync.utils.config_loader import ConfigLoader
from ctsync.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def print_summary(report: RunReport) -> None:
    """Print a human-readable summary of one run."""
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)

    status_symbol = {"Success": "✓", "Partial": "⚠", "Failed": "✗"}.get(report.status.value, "?")
    print(f"Status: {status_symbol} {report.status.value.upper()}")
    if report.run_id is not None:
        print(f"Run ID: {report.run_id}")
    print(f"Rows Inserted: {report.totals.inserted}")
    print(f"Rows Updated: {report.totals.updated}")
    print(f"Rows Deleted: {report.totals.deleted}")
    print(f"Tables: {len(report.tables)} ({len(report.failed_tables)} failed)")
    print(f"Duration: {report.duration_seconds:.2f} seconds")

    for result in report.failed_tables:
        print(f"  ✗ {result.table}: {result.reason}")
    if report.error:
        print(f"Error: {report.error}")

    print("=" * 60)


def run_once(orchestrator: SyncOrchestrator) -> bool:
    """Run one sync and print its summary; True when the run succeeded."""
    try:
        report = orchestrator.run()
    except SyncInProgressError as e:
        log.warning("sync_run_skipped", reason=str(e))
        return False

    print_summary(report)
    return report.success


def main():
    """Main entry point for scheduled sync script."""
    parser = argparse.ArgumentParser(
        description="Replicate change-tracked SQL Server tables to the destination"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--interval",
        action="store_true",
        help="Keep running, waiting sync.interval_minutes between runs",
    )

    args = parser.parse_args()

    try:
        config = ConfigLoader().load_config(args.config)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(
        log_level=config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
        retention_days=config.logging.retention_days,
    )

    try:
        orchestrator = get_sync_orchestrator(config)
    except Exception as e:
        log.error("sync_setup_failed", error=str(e))
        sys.exit(1)

    success = run_once(orchestrator)

    if args.interval:
        delay = config.sync.interval_minutes * 60
        log.info("sync_scheduler_started", interval_minutes=config.sync.interval_minutes)
        try:
            while True:
                time.sleep(delay)
                success = run_once(orchestrator)
        except KeyboardInterrupt:
            log.info("sync_scheduler_stopped")

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
