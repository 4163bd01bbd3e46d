#!/usr/bin/env python3
"""
Health check script for the change-tracking sync service.

This script checks the pieces a sync run depends on:
- Configuration validation
- Source connectivity with change tracking enabled
- Destination connectivity with the control tables present

Can be used for monitoring, alerting, or pre-deployment validation.

Usage:
    python scripts/health_check.py [--config CONFIG_PATH] [--json]

Exit codes:
    0: All checks passed
    1: One or more checks failed
"""

import argparse
import json
import sys
from datetime import datetime

import structlog

from ctsync.models.config import AppConfig
from ctsync.providers import get_connection_provider
from ctsync.sync.control_store import SyncControlStore
from ctsync.sync.schema_inspector import SchemaInspector
from ctsync.sync.version_tracker import VersionTracker
from ctsync.utils.config_loader import ConfigLoader

log = structlog.stdlib.get_logger()


class HealthChecker:
    """Performs health checks on the source, destination and configuration."""

    def __init__(self, config_path: str | None = None):
        """
        Initialize health checker.

        Args:
            config_path: Optional path to configuration file
        """
        self.config_path = config_path
        self.config: AppConfig | None = None
        self.results: dict[str, dict] = {}

    def check_configuration(self) -> bool:
        """
        Check if configuration is valid.

        Returns:
            True if configuration is valid, False otherwise
        """
        check_name = "configuration"
        log.info("checking_configuration")

        try:
            config_loader = ConfigLoader()
            self.config = config_loader.load_config(self.config_path)
            warnings = config_loader.validate_config(self.config)

            self.results[check_name] = {
                "status": "warn" if warnings else "pass",
                "message": "Configuration loaded successfully",
                "details": {
                    "source": f"{self.config.source.server}/{self.config.source.database}",
                    "destination": (
                        f"{self.config.destination.server}/{self.config.destination.database}"
                    ),
                    "control_schema": self.config.sync.control_schema,
                    "warnings": warnings,
                },
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Configuration error: {str(e)}",
                "details": {},
            }
            return False

    def check_source(self) -> bool:
        """
        Check that the source is reachable and reports a change-tracking version.

        Returns:
            True if the source is usable, False otherwise
        """
        check_name = "source"
        log.info("checking_source")

        if self.config is None:
            return self._skip(check_name)

        try:
            source = get_connection_provider(self.config.source, "source")
            destination = get_connection_provider(self.config.destination, "destination")
            tracker = VersionTracker(
                source, SyncControlStore(destination, schema=self.config.sync.control_schema)
            )
            tables = SchemaInspector(source).list_tracked_tables()
            current_version = tracker.get_current_version()

            self.results[check_name] = {
                "status": "pass" if tables else "warn",
                "message": (
                    "Change tracking is readable"
                    if tables
                    else "Connected, but no change-tracked tables were found"
                ),
                "details": {
                    "current_version": current_version,
                    "tracked_tables": len(tables),
                },
            }
            return True

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Source check failed: {str(e)}",
                "details": {},
            }
            return False

    def check_destination(self) -> bool:
        """
        Check that the destination is reachable and holds the control tables.

        Returns:
            True if the control tables are present, False otherwise
        """
        check_name = "destination"
        log.info("checking_destination")

        if self.config is None:
            return self._skip(check_name)

        try:
            destination = get_connection_provider(self.config.destination, "destination")
            store = SyncControlStore(destination, schema=self.config.sync.control_schema)
            present = store.control_tables_exist()

            self.results[check_name] = {
                "status": "pass" if present else "fail",
                "message": (
                    "Control tables are present"
                    if present
                    else "Control tables are missing; run scripts/setup_control_tables.py"
                ),
                "details": {"control_schema": self.config.sync.control_schema},
            }
            return present

        except Exception as e:
            self.results[check_name] = {
                "status": "fail",
                "message": f"Destination check failed: {str(e)}",
                "details": {},
            }
            return False

    def _skip(self, check_name: str) -> bool:
        self.results[check_name] = {
            "status": "skip",
            "message": "Skipped because configuration could not be loaded",
            "details": {},
        }
        return False

    def run_all_checks(self) -> bool:
        """
        Run all health checks.

        Returns:
            True if all checks passed, False otherwise
        """
        checks = [
            self.check_configuration,
            self.check_source,
            self.check_destination,
        ]

        all_passed = True
        for check in checks:
            try:
                if not check():
                    all_passed = False
            except Exception as e:
                log.error("health_check_crashed", check=check.__name__, error=str(e))
                all_passed = False

        return all_passed

    def get_summary(self) -> dict:
        """
        Get summary of all health check results.

        Returns:
            Dictionary with summary information
        """
        statuses = [r["status"] for r in self.results.values()]
        failed = statuses.count("fail")

        return {
            "timestamp": datetime.now().isoformat(),
            "overall_status": "healthy" if failed == 0 and "skip" not in statuses else "unhealthy",
            "total_checks": len(statuses),
            "passed": statuses.count("pass"),
            "failed": failed,
            "warnings": statuses.count("warn"),
            "skipped": statuses.count("skip"),
            "checks": self.results,
        }


def main():
    """Main entry point for health check script."""
    parser = argparse.ArgumentParser(
        description="Health check for the change-tracking sync service"
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results in JSON format",
    )

    args = parser.parse_args()

    checker = HealthChecker(config_path=args.config)
    all_passed = checker.run_all_checks()
    summary = checker.get_summary()

    if args.json:
        print(json.dumps(summary, indent=2, default=str))
    else:
        print("\n" + "=" * 60)
        print("HEALTH CHECK SUMMARY")
        print("=" * 60)
        print(f"Timestamp: {summary['timestamp']}")
        print(f"Overall Status: {summary['overall_status'].upper()}")
        print(f"Passed: {summary['passed']}  Failed: {summary['failed']}  "
              f"Warnings: {summary['warnings']}  Skipped: {summary['skipped']}")
        print("-" * 60)

        for check_name, result in summary["checks"].items():
            status_symbol = {
                "pass": "✓",
                "fail": "✗",
                "warn": "⚠",
                "skip": "○",
            }.get(result["status"], "?")

            print(f"\n{status_symbol} {check_name.title()}")
            print(f"  Message: {result['message']}")
            for key, value in result["details"].items():
                print(f"    - {key}: {value}")

        print("\n" + "=" * 60)

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
