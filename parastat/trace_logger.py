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
Protocol trace logging for troubleshooting agents.

When enabled with --trace-file, every received line and every connection
open/close is written as one JSON object per line, flushed immediately, so an
operator can see exactly what an agent sent and what the collector did with it
(applied, discarded as malformed, or dropped because the host table is full).

Tracing is best effort: write errors are swallowed and never change how the
collector handles a connection.
"""

import json
import os
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from parastat import __version__


class ProtocolTraceLogger:
    """
    JSON-lines logger shared by all connection handler threads.

    Events written:
    - SESSION_START / SESSION_END around the collector run
    - CONNECTION_OPEN / CONNECTION_CLOSE per accepted peer
    - LINE for every complete line read from a peer
    """

    def __init__(self, log_file_path: str = "parastat_trace.log"):
        """
        Initialize trace logger.

        Args:
            log_file_path: Path to log file for writing trace events
        """
        self.log_file_path = log_file_path
        self.session_start = time.monotonic()
        self.event_count = 0
        self.log_file = None
        self._lock = threading.Lock()

    def start_session(self) -> None:
        """Open the trace file and write the session header."""
        try:
            # pylint: disable=consider-using-with
            self.log_file = open(self.log_file_path, "w", encoding="utf-8")
        except (IOError, OSError) as e:
            print(f"Warning: Could not open trace log file: {e}", file=sys.stderr)
            self.log_file = None
            return
        self._write_event(
            {
                "event_type": "SESSION_START",
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
                "timestamp_monotonic": time.monotonic(),
                "python_version": sys.version,
                "platform": sys.platform,
                "pid": os.getpid(),
                "parastat_version": __version__,
                "log_format_version": "1.0",
            }
        )

    def log_connection_open(self, peer: str) -> None:
        """Record a newly accepted connection."""
        self._write_event(
            {
                "event_type": "CONNECTION_OPEN",
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
                "elapsed_seconds": time.monotonic() - self.session_start,
                "peer": peer,
            }
        )

    def log_connection_close(self, peer: str, reason: str, lines: int) -> None:
        """
        Record the end of a connection.

        Args:
            peer: Peer address label
            reason: Why the handler stopped ("eof", "error", "shutdown")
            lines: Number of complete lines read on this connection
        """
        self._write_event(
            {
                "event_type": "CONNECTION_CLOSE",
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
                "elapsed_seconds": time.monotonic() - self.session_start,
                "peer": peer,
                "reason": reason,
                "lines": lines,
            }
        )

    def log_line(self, peer: str, raw_line: str, result: str, update: Optional[Dict[str, Any]]) -> None:
        """
        Record one received line and its outcome.

        Args:
            peer: Peer address label
            raw_line: The line as received (without newline)
            result: "applied", "discarded" or "dropped"
            update: Parsed update, or None if the line was discarded
        """
        self._write_event(
            {
                "event_type": "LINE",
                "timestamp_monotonic": time.monotonic(),
                "peer": peer,
                "raw": raw_line,
                "result": result,
                "kind": update["kind"] if update else None,
                "host_id": update["host_id"] if update else None,
            }
        )

    def _write_event(self, event: Dict[str, Any]) -> None:
        """Write event to log file as JSON."""
        with self._lock:
            if not self.log_file:
                return
            try:
                self.log_file.write(json.dumps(event) + "\n")
                self.log_file.flush()
                self.event_count += 1
            except (IOError, OSError, ValueError):
                pass  # Tracing must never disturb connection handling

    def close(self) -> None:
        """Write the session footer and close the trace file."""
        if not self.log_file:
            return
        self._write_event(
            {
                "event_type": "SESSION_END",
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
                "timestamp_monotonic": time.monotonic(),
                "total_events": self.event_count,
            }
        )
        with self._lock:
            self.log_file.close()
            self.log_file = None


# Global trace logger instance (None when tracing is disabled)
# pylint: disable=invalid-name
_trace_logger: Optional[ProtocolTraceLogger] = None


def init_trace_logger(log_file_path: str = "parastat_trace.log") -> None:
    """
    Initialize global trace logger.

    Args:
        log_file_path: Path to trace log file
    """
    # pylint: disable=global-statement
    global _trace_logger
    _trace_logger = ProtocolTraceLogger(log_file_path)
    _trace_logger.start_session()


def get_trace_logger() -> Optional[ProtocolTraceLogger]:
    """Get the global trace logger instance."""
    return _trace_logger


def shutdown_trace_logger() -> None:
    """Shutdown and close trace logger."""
    # pylint: disable=global-statement
    global _trace_logger
    if _trace_logger:
        _trace_logger.close()
        _trace_logger = None


def is_trace_enabled() -> bool:
    """Check if protocol tracing is enabled."""
    return _trace_logger is not None
