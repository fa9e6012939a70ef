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
ParaStat UI Rendering Module

This module turns host table snapshots into terminal lines and writes them:
ANSI text utilities, metric column formatting, the table/status layout,
timestamp formatting and terminal utilities.
"""

import os
import re
import sys
import time
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple

# ANSI and display constants
ANSI_RESET = "\x1b[0m"
ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*m")
STATUS_COLORS = {
    "warn": "\x1b[33m",  # Yellow
    "high": "\x1b[31m",  # Red
}
CPU_WARN_THRESHOLD = 75.0
CPU_HIGH_THRESHOLD = 90.0
UNAVAILABLE = "--"
MIN_LABEL_WIDTH = 12
MAX_LABEL_WIDTH = 40
CPU_COLUMN_WIDTH = 6
MEM_COLUMN_WIDTH = 9
AGE_COLUMN_WIDTH = 6

# Global state for rendering
LAST_RENDER_LINES: Optional[List[str]] = None


# ============================================================================
# ANSI/Text Utility Functions
# ============================================================================


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return ANSI_ESCAPE_RE.sub("", text)


def visible_len(text: str) -> int:
    """Get the visible length of text (excluding ANSI codes)."""
    return len(strip_ansi(text))


def truncate_visible(text: str, width: int) -> Tuple[str, int]:
    """
    Truncate text to a visible width, preserving ANSI codes.

    Returns:
        Tuple of (truncated_text, visible_count)
    """
    result = []
    visible_count = 0
    index = 0
    while index < len(text) and visible_count < width:
        if text[index] == "\x1b":
            match = ANSI_ESCAPE_RE.match(text, index)
            if match:
                result.append(match.group(0))
                index = match.end()
                continue
        result.append(text[index])
        index += 1
        visible_count += 1
    truncated = "".join(result)
    if "\x1b[" in truncated and not truncated.endswith(ANSI_RESET):
        truncated += ANSI_RESET
    return truncated, visible_count


def pad_visible(text: str, width: int) -> str:
    """Pad text to a visible width, preserving ANSI codes."""
    truncated, visible_count = truncate_visible(text, width)
    if visible_count < width:
        truncated += " " * (width - visible_count)
    return truncated


def colorize_text(text: str, status: Optional[str], use_color: bool) -> str:
    """Apply color to text based on status."""
    if not use_color or not status:
        return text
    color = STATUS_COLORS.get(status)
    if not color:
        return text
    return f"{color}{text}{ANSI_RESET}"


# ============================================================================
# Metric Formatting Functions
# ============================================================================


def cpu_status(usage: float) -> Optional[str]:
    """Classify a CPU usage percentage as 'high', 'warn' or None."""
    if usage >= CPU_HIGH_THRESHOLD:
        return "high"
    if usage >= CPU_WARN_THRESHOLD:
        return "warn"
    return None


def format_cpu_columns(record: Dict[str, Any], use_color: bool = False) -> str:
    """Format the usage/user/system/idle columns, or placeholders if no CPU data yet."""
    if not record["has_cpu"]:
        return " ".join(f"{UNAVAILABLE:>{CPU_COLUMN_WIDTH}}" for _ in range(4))
    cpu = record["cpu"]
    usage_text = colorize_text(f"{cpu['usage']:{CPU_COLUMN_WIDTH}.1f}", cpu_status(cpu["usage"]), use_color)
    rest = [f"{cpu[key]:{CPU_COLUMN_WIDTH}.1f}" for key in ("user_pct", "system_pct", "idle_pct")]
    return " ".join([usage_text] + rest)


def format_mem_columns(record: Dict[str, Any]) -> str:
    """Format memory and swap columns in MB, or placeholders if no memory data yet."""
    if not record["has_mem"]:
        return " ".join(f"{UNAVAILABLE:>{MEM_COLUMN_WIDTH}}" for _ in range(4))
    mem = record["mem"]
    return " ".join(
        f"{mem[key]:{MEM_COLUMN_WIDTH}.1f}" for key in ("used_mb", "free_mb", "swap_total_mb", "swap_free_mb")
    )


def format_age(last_update: Optional[float], now: float) -> str:
    """Format time since the last update as a compact label (e.g. 5s, 3m, 2h)."""
    if last_update is None:
        return UNAVAILABLE
    age = max(0.0, now - last_update)
    if age < 60:
        return f"{int(age)}s"
    if age < 3600:
        return f"{int(age // 60)}m"
    return f"{int(age // 3600)}h"


def compute_label_width(records: Sequence[Dict[str, Any]]) -> int:
    """Width of the host column: the longest id, clamped to a sane range."""
    longest = max((len(record["id"]) for record in records), default=0)
    return min(MAX_LABEL_WIDTH, max(MIN_LABEL_WIDTH, longest))


def format_host_label(host_id: str, width: int) -> str:
    """Left-align a host id in its column, truncating over-long ids."""
    if len(host_id) > width:
        return host_id[: width - 1] + "~"
    return host_id.ljust(width)


def build_table_header(label_width: int) -> List[str]:
    """Build the column header and its underline."""
    cpu_titles = " ".join(f"{title:>{CPU_COLUMN_WIDTH}}" for title in ("CPU", "usr", "sys", "idle"))
    mem_titles = " ".join(f"{title:>{MEM_COLUMN_WIDTH}}" for title in ("MemUsed", "MemFree", "SwapTot", "SwapFree"))
    header = f"{'Host':<{label_width}} {cpu_titles} {mem_titles} {'Age':>{AGE_COLUMN_WIDTH}}"
    return [header, "-" * len(header)]


def build_host_line(
    record: Dict[str, Any],
    label_width: int,
    now: float,
    use_color: bool = False,
    last_update: Optional[float] = None,
) -> str:
    """Build one table row for a host record; the age column shows -- without a last_update."""
    return (
        f"{format_host_label(record['id'], label_width)} "
        f"{format_cpu_columns(record, use_color)} "
        f"{format_mem_columns(record)} "
        f"{format_age(last_update, now):>{AGE_COLUMN_WIDTH}}"
    )


def build_table_lines(
    records: Sequence[Dict[str, Any]],
    now: Optional[float] = None,
    use_color: bool = False,
    last_updates: Optional[Dict[str, float]] = None,
) -> List[str]:
    """
    Build the header and one row per record, in snapshot order.

    Args:
        records: Host records from HostTable.snapshot()
        now: Reference time for the age column (defaults to time.time())
        use_color: Whether to colorize high CPU usage
        last_updates: Host id -> last update time, from HostTable.snapshot_with_times()

    Returns:
        List of lines
    """
    if now is None:
        now = time.time()
    label_width = compute_label_width(records)
    lines = build_table_header(label_width)
    if not records:
        lines.append("(waiting for agents)")
        return lines
    if last_updates is None:
        last_updates = {}
    lines.extend(
        build_host_line(record, label_width, now, use_color, last_updates.get(record["id"])) for record in records
    )
    return lines


def build_display_lines(
    records: Sequence[Dict[str, Any]],
    timestamp: str,
    status_line: str,
    now: Optional[float] = None,
    use_color: bool = False,
    last_updates: Optional[Dict[str, float]] = None,
) -> List[str]:
    """
    Build a complete frame: title, table and status line.

    Args:
        records: Host records from HostTable.snapshot()
        timestamp: Preformatted timestamp for the title line
        status_line: Summary text shown under the table
        now: Reference time for the age column
        use_color: Whether to colorize high CPU usage
        last_updates: Host id -> last update time for the age column

    Returns:
        List of lines making up the frame
    """
    lines = [f"ParaStat - {timestamp}", ""]
    lines.extend(build_table_lines(records, now=now, use_color=use_color, last_updates=last_updates))
    lines.append("")
    lines.append(status_line)
    return lines


# ============================================================================
# Layout/Geometry Functions
# ============================================================================


def get_terminal_size(fallback: Tuple[int, int] = (80, 24)) -> os.terminal_size:
    """
    Get the terminal size by directly querying the terminal.

    os.get_terminal_size() queries the actual terminal instead of checking
    COLUMNS/LINES environment variables first (like shutil does), so the size
    follows terminal resizes.

    Args:
        fallback: Tuple of (columns, lines) to use if terminal size
                  cannot be determined

    Returns:
        os.terminal_size with columns and lines attributes
    """
    for stream in (sys.stdout, sys.stderr, sys.stdin):
        try:
            if stream.isatty():
                return os.get_terminal_size(stream.fileno())
        except (AttributeError, ValueError, OSError):
            continue
    return os.terminal_size(fallback)


def fit_lines_to_width(lines: Sequence[str], width: int) -> List[str]:
    """Truncate each line to the terminal width, preserving ANSI codes."""
    return [truncate_visible(line, width)[0] for line in lines]


# ============================================================================
# Rendering
# ============================================================================


def reset_render_state() -> None:
    """Forget the previous frame so the next render redraws the full screen."""
    global LAST_RENDER_LINES
    LAST_RENDER_LINES = None


def render_display(lines: Sequence[str], stream: Optional[TextIO] = None) -> None:
    """
    Write a frame to the terminal.

    On a TTY only lines that changed since the previous frame are rewritten
    (the first frame clears the screen). Other streams get the frame as a plain
    text block followed by a blank line.
    """
    global LAST_RENDER_LINES
    if stream is None:
        stream = sys.stdout
    if not lines:
        return

    if not stream.isatty():
        stream.write("\n".join(strip_ansi(line) for line in lines) + "\n\n")
        stream.flush()
        return

    combined_lines = fit_lines_to_width(lines, get_terminal_size(fallback=(80, 24)).columns)
    if LAST_RENDER_LINES is None:
        output_chunks = ["\x1b[2J\x1b[H"]
        for index, line in enumerate(combined_lines):
            output_chunks.append(f"\x1b[{index + 1};1H\x1b[2K{line}")
        stream.write("".join(output_chunks))
        stream.flush()
        LAST_RENDER_LINES = combined_lines
        return

    max_lines = max(len(LAST_RENDER_LINES), len(combined_lines))
    output_chunks = []
    for index in range(max_lines):
        previous_line = LAST_RENDER_LINES[index] if index < len(LAST_RENDER_LINES) else None
        current_line = combined_lines[index] if index < len(combined_lines) else ""
        if previous_line == current_line and index < len(combined_lines):
            continue
        output_chunks.append(f"\x1b[{index + 1};1H\x1b[2K{current_line}")

    if output_chunks:
        stream.write("".join(output_chunks))
        stream.flush()

    LAST_RENDER_LINES = combined_lines


# ============================================================================
# Formatting Functions
# ============================================================================


def format_timezone_label(now_utc: datetime, display_tz: tzinfo) -> str:
    """Format the timezone label for display."""
    tzinfo_value = now_utc.astimezone(display_tz).tzinfo
    tz_name = tzinfo_value.tzname(now_utc) if tzinfo_value else None
    if tz_name:
        return tz_name
    tz_key = getattr(display_tz, "key", None)
    if isinstance(tz_key, str):
        return tz_key
    return "UTC"


def format_timestamp(now_utc: datetime, display_tz: tzinfo = timezone.utc) -> str:
    """Format a timestamp with timezone label."""
    timestamp = now_utc.astimezone(display_tz).strftime("%Y-%m-%d %H:%M:%S")
    tz_label = format_timezone_label(now_utc, display_tz)
    return f"{timestamp} ({tz_label})"


# ============================================================================
# Terminal Utilities
# ============================================================================


def prepare_terminal_for_exit(stream: Optional[TextIO] = None) -> None:
    """Move the cursor below the last frame so exit output does not overwrite it."""
    if stream is None:
        stream = sys.stdout
    if not stream.isatty():
        return
    frame_height = len(LAST_RENDER_LINES) if LAST_RENDER_LINES else 0
    stream.write(f"\x1b[{frame_height + 1};1H\n")
    stream.flush()
