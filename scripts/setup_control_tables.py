#!/usr/bin/env python3
"""
Create the SyncControl and SyncLog tables on the destination database.

Safe to run repeatedly; existing tables are left untouched.

Usage:
    python scripts/setup_control_tables.py [--config CONFIG_PATH]
"""

import argparse
import sys

import structlog

from ctsync.providers import get_connection_provider
from ctsync.sync.control_store import SyncControlStore
from ctsync.utils.config_loader import ConfigLoader
from ctsync.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def main():
    """Main entry point for control table setup."""
    parser = argparse.ArgumentParser(description="Create sync control tables on the destination")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    args = parser.parse_args()

    try:
        config = ConfigLoader().load_config(args.config)
        configure_logging(log_level=config.logging.log_level, json_logs=config.logging.json_logs)

        destination = get_connection_provider(config.destination, "destination")
        store = SyncControlStore(destination, schema=config.sync.control_schema)
        store.create_control_tables()
    except Exception as e:
        log.error("control_table_setup_failed", error=str(e))
        print(f"✗ Control table setup failed: {e}")
        sys.exit(1)

    print(f"✓ Control tables ready in schema [{config.sync.control_schema}]")
    sys.exit(0)


if __name__ == "__main__":
    main()
