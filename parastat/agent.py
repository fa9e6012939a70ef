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
Metric agent for ParaStat.

An agent samples one metric family on the local machine and streams it to a
collector as protocol lines, one per interval:

- cpu: aggregate CPU times sampled twice, one second apart; the deltas give
  usage, user, system and idle percentages
- mem: used (total minus available), free, swap total and swap free, in MB

The host id is whatever the operator passes on the command line; the collector
trusts it. If the collector is unreachable or a send fails, the agent drops the
connection and tries again on its next tick.
"""

import argparse
import logging
import socket
import threading
import time
from typing import Dict, Optional

import psutil

from parastat.cli import LOG_LEVELS, configure_logging, install_signal_handlers, port_number, restore_signal_handlers
from parastat.protocol import format_cpu_line, format_mem_line

logger = logging.getLogger(__name__)

SEND_INTERVAL_SECONDS = 2.0
CPU_SAMPLE_GAP_SECONDS = 1.0
CONNECT_TIMEOUT_SECONDS = 5.0
BYTES_PER_MB = 1024 * 1024


def read_cpu_times() -> Dict[str, float]:
    """Read aggregate CPU times (seconds) for user, nice, system and idle."""
    times = psutil.cpu_times()
    return {
        "user": times.user,
        "nice": getattr(times, "nice", 0.0),
        "system": times.system,
        "idle": times.idle,
    }


def compute_cpu_percentages(prev: Dict[str, float], curr: Dict[str, float]) -> Dict[str, float]:
    """
    Compute CPU percentages from two cumulative samples.

    Args:
        prev: Earlier sample from read_cpu_times()
        curr: Later sample from read_cpu_times()

    Returns:
        Dict with usage, user_pct, system_pct and idle_pct
    """
    delta_user = curr["user"] - prev["user"]
    delta_nice = curr["nice"] - prev["nice"]
    delta_system = curr["system"] - prev["system"]
    delta_idle = curr["idle"] - prev["idle"]
    total = delta_user + delta_nice + delta_system + delta_idle
    if total <= 0:
        # No CPU time elapsed between samples.
        return {"usage": 0.0, "user_pct": 0.0, "system_pct": 0.0, "idle_pct": 0.0}
    return {
        "usage": 100.0 * (total - delta_idle) / total,
        "user_pct": 100.0 * delta_user / total,
        "system_pct": 100.0 * delta_system / total,
        "idle_pct": 100.0 * delta_idle / total,
    }


def read_memory_mb() -> Dict[str, float]:
    """Read memory and swap figures in MB."""
    memory = psutil.virtual_memory()
    swap = psutil.swap_memory()
    return {
        "used_mb": (memory.total - memory.available) / BYTES_PER_MB,
        "free_mb": memory.free / BYTES_PER_MB,
        "swap_total_mb": swap.total / BYTES_PER_MB,
        "swap_free_mb": swap.free / BYTES_PER_MB,
    }


def sample_line(
    kind: str,
    host_id: str,
    stop_event: Optional[threading.Event] = None,
    sample_gap: float = CPU_SAMPLE_GAP_SECONDS,
) -> Optional[str]:
    """
    Take one sample and format it as a protocol line.

    Args:
        kind: "cpu" or "mem"
        host_id: Host id placed in the line
        stop_event: Optional event; a CPU sample is abandoned if it is set
        sample_gap: Seconds between the two CPU samples

    Returns:
        Newline-terminated protocol line, or None if stopped mid-sample
    """
    if kind == "cpu":
        prev = read_cpu_times()
        if stop_event is not None:
            if stop_event.wait(sample_gap):
                return None
        else:
            time.sleep(sample_gap)
        percentages = compute_cpu_percentages(prev, read_cpu_times())
        return format_cpu_line(
            host_id,
            percentages["usage"],
            percentages["user_pct"],
            percentages["system_pct"],
            percentages["idle_pct"],
        )
    if kind == "mem":
        memory = read_memory_mb()
        return format_mem_line(
            host_id,
            memory["used_mb"],
            memory["free_mb"],
            memory["swap_total_mb"],
            memory["swap_free_mb"],
        )
    raise ValueError(f"Unknown metric kind: {kind!r}")


def connect_to_collector(host: str, port: int, timeout: float = CONNECT_TIMEOUT_SECONDS) -> Optional[socket.socket]:
    """Open a TCP connection to the collector, or return None if it fails."""
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        logger.warning("Could not connect to %s:%d: %s", host, port, e)
        return None
    logger.info("Connected to %s:%d", host, port)
    return sock


def run_agent(
    kind: str,
    collector_host: str,
    port: int,
    host_id: str,
    stop_event: threading.Event,
    interval: float = SEND_INTERVAL_SECONDS,
    sample_gap: float = CPU_SAMPLE_GAP_SECONDS,
) -> int:
    """
    Sample and send until stop_event is set.

    Args:
        kind: "cpu" or "mem"
        collector_host: Collector hostname or IP address
        port: Collector TCP port
        host_id: Host id reported in every line
        stop_event: Shutdown event
        interval: Seconds to wait after each send attempt
        sample_gap: Seconds between the two CPU samples

    Returns:
        Number of lines sent successfully
    """
    sock = connect_to_collector(collector_host, port)
    sent = 0
    try:
        while not stop_event.is_set():
            try:
                line = sample_line(kind, host_id, stop_event, sample_gap)
            except (psutil.Error, OSError) as e:
                logger.warning("Could not sample %s metrics: %s", kind, e)
                stop_event.wait(interval)
                continue
            if line is None:
                break

            if sock is None:
                sock = connect_to_collector(collector_host, port)
                if sock is None:
                    stop_event.wait(interval)
                    continue

            try:
                sock.sendall(line.encode("ascii"))
            except OSError as e:
                logger.warning("Error sending to collector, closing connection: %s", e)
                sock.close()
                sock = None
            else:
                sent += 1
                logger.debug("Sent: %s", line.rstrip("\n"))

            stop_event.wait(interval)
    finally:
        if sock is not None:
            sock.close()
    logger.info("Agent stopped after %d line(s)", sent)
    return sent


def handle_options(argv=None) -> argparse.Namespace:
    """Parse and validate agent command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="parastat-agent",
        description="ParaStat agent - Send CPU or memory metrics of this machine to a collector",
    )
    parser.add_argument("kind", choices=["cpu", "mem"], help="Metric family to send")
    parser.add_argument("collector", help="Collector hostname or IP address")
    parser.add_argument("port", type=port_number, help="Collector TCP port")
    parser.add_argument("host_id", help="Host id to report (usually this machine's address)")
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=SEND_INTERVAL_SECONDS,
        help="Seconds between samples (default: 2.0)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default="INFO",
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )
    args = parser.parse_args(argv)
    if not args.host_id or ";" in args.host_id:
        parser.error("host_id must be non-empty and must not contain ';'.")
    if args.interval <= 0:
        parser.error("--interval must be positive.")
    return args


def main() -> None:
    """Entrypoint for parastat-agent."""
    args = handle_options()
    configure_logging(args.log_level, None)
    stop_event = threading.Event()
    previous_handlers = install_signal_handlers(stop_event)
    try:
        run_agent(args.kind, args.collector, args.port, args.host_id, stop_event, interval=args.interval)
    finally:
        restore_signal_handlers(previous_handlers)


if __name__ == "__main__":
    main()
