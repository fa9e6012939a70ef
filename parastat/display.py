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
Periodic snapshot rendering for the ParaStat collector.

display_worker() runs in its own thread: every refresh interval it copies the
host table and renders the copy. The table lock is held only for the copy, so a
slow terminal never delays connection handlers.
"""

import logging
import threading
import time
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional, Sequence

from parastat.host_table import HostTable
from parastat.stats import build_summary_line, compute_table_summary
from parastat.ui_render import build_display_lines, format_timestamp, render_display

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_SECONDS = 2.0


def build_frame(
    records: Sequence[Dict[str, Any]],
    capacity: int,
    connections: Optional[int] = None,
    display_tz: tzinfo = timezone.utc,
    use_color: bool = False,
    now: Optional[float] = None,
    last_updates: Optional[Dict[str, float]] = None,
) -> List[str]:
    """
    Build the lines of one frame from a snapshot.

    Args:
        records: Host records from HostTable.snapshot()
        capacity: Host table capacity, shown on the status line
        connections: Active connection count, or None to omit it
        display_tz: Timezone for the title timestamp
        use_color: Whether to colorize high CPU usage
        now: Current time in seconds (defaults to time.time())
        last_updates: Host id -> last update time for the age column

    Returns:
        Lines ready for render_display()
    """
    if now is None:
        now = time.time()
    timestamp = format_timestamp(datetime.fromtimestamp(now, timezone.utc), display_tz)
    status_line = build_summary_line(compute_table_summary(records), capacity, connections)
    return build_display_lines(records, timestamp, status_line, now=now, use_color=use_color, last_updates=last_updates)


def render_tick(
    table: HostTable,
    sink: Callable[[List[str]], None] = render_display,
    connection_counter: Optional[Callable[[], int]] = None,
    display_tz: tzinfo = timezone.utc,
    use_color: bool = False,
) -> List[str]:
    """
    Snapshot the table and emit one frame.

    Returns:
        The lines handed to the sink
    """
    records, last_updates = table.snapshot_with_times()
    connections = connection_counter() if connection_counter is not None else None
    lines = build_frame(records, table.capacity, connections, display_tz, use_color, last_updates=last_updates)
    try:
        sink(lines)
    except OSError as e:
        logger.warning("Could not write display frame: %s", e)
    return lines


def display_worker(
    table: HostTable,
    stop_event: threading.Event,
    refresh_interval: float = REFRESH_INTERVAL_SECONDS,
    sink: Callable[[List[str]], None] = render_display,
    connection_counter: Optional[Callable[[], int]] = None,
    display_tz: tzinfo = timezone.utc,
    use_color: bool = False,
) -> None:
    """
    Render the host table every refresh_interval seconds until stop_event is set.

    Args:
        table: Shared host table
        stop_event: Process-wide shutdown event
        refresh_interval: Seconds between frames
        sink: Callable receiving each frame's lines
        connection_counter: Optional callable returning the active connection count
        display_tz: Timezone for the title timestamp
        use_color: Whether to colorize high CPU usage
    """
    while not stop_event.wait(refresh_interval):
        render_tick(table, sink, connection_counter, display_tz, use_color)
    logger.debug("Display worker stopped")
