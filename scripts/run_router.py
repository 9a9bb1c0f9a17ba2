#!/usr/bin/env python3
"""
Hermes Router CLI
=================

Command line surface for the record router.

Usage:
    # Import a CSV as the source table
    python scripts/run_router.py import-csv responses.csv --name "Form Responses 1"

    # Configure: route table <id> by its 3rd column
    python scripts/run_router.py setup <table_id> 3

    # Route every existing row (batched)
    python scripts/run_router.py run-existing

    # Route a single row (as an event would)
    python scripts/run_router.py route 42

    # Watch for new rows
    python scripts/run_router.py watch --poll-interval 10

    # Inspect / reset
    python scripts/run_router.py show-config
    python scripts/run_router.py partitions
    python scripts/run_router.py reset --yes
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config.config import HermesConfig, load_config
from routing.errors import ConfigurationMissing, RoutingError
from routing.factory import create_router_from_config
from routing.service import RouterService
from routing.watcher import SourceWatcher
from storage.tables import load_csv_table

logger = logging.getLogger(__name__)


def _load_config(config_path):
    """Load the config file, or defaults when none is found and no path was given."""
    # Logging is not configured yet
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        if config_path:
            raise
        print(f"{e}. Using defaults.", file=sys.stderr)
        return HermesConfig()


def cmd_import_csv(service: RouterService, args) -> int:
    table_id = load_csv_table(service.table_backend, args.csv_path, name=args.name, form_url=args.form_url)
    print(table_id)
    return 0


def cmd_setup(service: RouterService, args) -> int:
    config = service.setup(
        args.table_id,
        args.field_index,
        has_submit_trigger=args.has_submit_trigger,
    )
    print(f"Configured: table={config.source_table_id} field={config.designated_field_index}")
    return 0


def cmd_run_existing(service: RouterService, args) -> int:
    routed = service.run_existing(args.first, args.last, args.batch_size)
    stats = service.batch_driver.last_stats
    print(json.dumps(stats.to_dict() if stats else {"routed": routed}, indent=2))
    return 0


def cmd_route(service: RouterService, args) -> int:
    outcome = service.route_position(args.position)
    print(outcome)
    return 0


def cmd_show_config(service: RouterService, args) -> int:
    info = service.show_configuration()
    if info is None:
        print("Not configured")
        return 1
    print(json.dumps(info, indent=2, default=str))
    return 0


def cmd_partitions(service: RouterService, args) -> int:
    for partition in service.list_partitions():
        print(f"{partition['key']:<40} {partition['rows']:>8} rows  ({partition['table_id']})")
    return 0


def cmd_reset(service: RouterService, args) -> int:
    if not args.yes:
        print("Reset clears the processed set and configuration; pass --yes to confirm")
        return 1
    service.reset()
    print("Reset complete")
    return 0


def cmd_watch(service: RouterService, args) -> int:
    interval = args.poll_interval or service.settings.watch_poll_seconds
    watcher = SourceWatcher(service, poll_interval=interval)

    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        watcher.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    watcher.run()
    print(json.dumps(watcher.get_stats(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hermes Record Router")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to config file (default: config/config.yaml)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("import-csv", help="Import a CSV file as a table")
    p.add_argument("csv_path", type=Path)
    p.add_argument("--name", type=str, help="Table name (default: file name)")
    p.add_argument("--form-url", type=str, help="Originating form URL")
    p.set_defaults(func=cmd_import_csv)

    p = subparsers.add_parser("setup", help="Configure source table and designated field")
    p.add_argument("table_id", type=str)
    p.add_argument("field_index", type=int, help="1-based column index")
    p.add_argument(
        "--has-submit-trigger",
        action="store_true",
        help="A form-submit trigger already targets this file"
    )
    p.set_defaults(func=cmd_setup)

    p = subparsers.add_parser("run-existing", help="Route existing rows in batches")
    p.add_argument("--first", type=int, help="First row (default: first data row)")
    p.add_argument("--last", type=int, help="Last row (default: last occupied row)")
    p.add_argument("--batch-size", type=int, help="Rows per chunk")
    p.set_defaults(func=cmd_run_existing)

    p = subparsers.add_parser("route", help="Route a single row")
    p.add_argument("position", type=int)
    p.set_defaults(func=cmd_route)

    p = subparsers.add_parser("watch", help="Route new rows as they arrive")
    p.add_argument("--poll-interval", type=float, help="Seconds between polls")
    p.set_defaults(func=cmd_watch)

    subparsers.add_parser("show-config", help="Show configuration").set_defaults(func=cmd_show_config)
    subparsers.add_parser("partitions", help="List partitions").set_defaults(func=cmd_partitions)

    p = subparsers.add_parser("reset", help="Clear processed set and configuration")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_reset)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = _load_config(args.config)
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format=config.log_format
    )

    service = create_router_from_config(config)

    try:
        return args.func(service, args)
    except ConfigurationMissing as e:
        print(f"Not configured: {e}", file=sys.stderr)
        return 2
    except (RoutingError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
