# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.



"""
Command-line interface for the ParaStat collector.

This module contains the main entry point and command-line argument handling,
plus the logging, port and signal helpers shared with parastat-agent.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from datetime import timezone, tzinfo
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from parastat.display import REFRESH_INTERVAL_SECONDS, display_worker
from parastat.host_table import MAX_HOSTS, HostTable
from parastat.server import DEFAULT_BIND_ADDRESS, CollectorServer
from parastat.stats import build_summary_line, compute_table_summary
from parastat.trace_logger import init_trace_logger, shutdown_trace_logger
from parastat.ui_render import build_table_lines, prepare_terminal_for_exit

logger = logging.getLogger(__name__)

MIN_REFRESH_INTERVAL = 0.1
MAX_REFRESH_INTERVAL = 60.0
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_logging(log_level: str, log_file: Optional[str]) -> None:
    """Configure logging handlers for CLI execution."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )


def port_number(value: str) -> int:
    """argparse type for a TCP port number."""
    try:
        port = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port number: '{value}'") from exc
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port must be between 1 and 65535, got {port}")
    return port


def handle_options(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="parastat",
        description="ParaStat - Collect CPU and memory telemetry from many hosts over TCP and display it live",
        epilog="Agents send lines of the form 'CPU;<host>;<usage>;<user>;<sys>;<idle>' "
        "or 'MEM;<host>;<used_MB>;<free_MB>;<swap_total_MB>;<swap_free_MB>'.",
    )
    parser.add_argument("port", type=port_number, help="TCP port to listen on (all interfaces)")
    parser.add_argument(
        "-r",
        "--refresh-interval",
        type=float,
        default=REFRESH_INTERVAL_SECONDS,
        help="Seconds between display refreshes (default: 2.0, range: 0.1-60.0)",
    )
    parser.add_argument(
        "-n",
        "--max-hosts",
        type=int,
        default=MAX_HOSTS,
        help=f"Maximum number of distinct hosts tracked (default: {MAX_HOSTS})",
    )
    parser.add_argument(
        "-b",
        "--bind",
        type=str,
        default=DEFAULT_BIND_ADDRESS,
        help=f"Local address to listen on (default: {DEFAULT_BIND_ADDRESS})",
    )
    parser.add_argument(
        "-C",
        "--color",
        action="store_true",
        help="Enable colored CPU usage (yellow >= 75%%, red >= 90%%)",
    )
    parser.add_argument(
        "-z",
        "--timezone",
        type=str,
        default=None,
        help="Display timezone (IANA name, e.g. Asia/Tokyo). Defaults to UTC.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file path for persistent logging",
    )
    parser.add_argument(
        "--trace-file",
        type=str,
        default=None,
        help="Write every received line and connection event to this file as JSON lines",
    )

    args = parser.parse_args(argv)

    if not MIN_REFRESH_INTERVAL <= args.refresh_interval <= MAX_REFRESH_INTERVAL:
        parser.error("--refresh-interval must be between 0.1 and 60.0 seconds.")
    if args.max_hosts < 1:
        parser.error("--max-hosts must be a positive integer.")
    if args.timezone:
        try:
            ZoneInfo(args.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            parser.error(f"Unknown timezone '{args.timezone}'. Use an IANA name like 'Asia/Tokyo'.")
    return args


def install_signal_handlers(stop_event: threading.Event) -> Dict[int, Any]:
    """Route SIGINT/SIGTERM to the stop event. Returns the previous handlers."""
    previous: Dict[int, Any] = {}
    if threading.current_thread() is not threading.main_thread():
        return previous

    def _request_stop(signum, _frame):
        logger.info("Received signal %d, shutting down", signum)
        stop_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _request_stop)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    """Reinstall handlers returned by install_signal_handlers()."""
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def _print_summary(table: HostTable) -> None:
    """Print the final table once the collector has stopped."""
    records, last_updates = table.snapshot_with_times()
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    for line in build_table_lines(records, last_updates=last_updates):
        print(line)
    print(build_summary_line(compute_table_summary(records), table.capacity))


def run(args: argparse.Namespace) -> None:
    """Run the collector until SIGINT/SIGTERM, then drain connections and print a summary."""
    configure_logging(args.log_level, args.log_file)

    display_tz: tzinfo = ZoneInfo(args.timezone) if args.timezone else timezone.utc
    table = HostTable(capacity=args.max_hosts)
    stop_event = threading.Event()
    server = CollectorServer(args.port, table, stop_event, bind_address=args.bind)

    try:
        server.bind()
    except OSError as e:
        logger.error("Error: cannot listen on %s:%d: %s", args.bind, args.port, e)
        sys.exit(1)

    if args.trace_file:
        init_trace_logger(os.path.expanduser(args.trace_file))

    previous_handlers = install_signal_handlers(stop_event)
    display_thread = threading.Thread(
        target=display_worker,
        args=(table, stop_event, args.refresh_interval),
        kwargs={
            "connection_counter": server.active_connections,
            "display_tz": display_tz,
            "use_color": args.color and sys.stdout.isatty(),
        },
        name="parastat-display",
        daemon=True,
    )
    display_thread.start()

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        stop_event.set()
    finally:
        stop_event.set()
        server.shutdown()
        display_thread.join(timeout=args.refresh_interval + 1.0)
        restore_signal_handlers(previous_handlers)
        shutdown_trace_logger()

    prepare_terminal_for_exit()
    _print_summary(table)


def main() -> None:
    """Main entrypoint for the CLI - parses arguments and runs the collector."""
    args = handle_options()
    run(args)
