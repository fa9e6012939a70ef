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
Per-connection handling for the ParaStat collector.

Each accepted agent connection runs handle_connection() in its own thread:
read a chunk, split it into complete lines, parse each line and apply the
result to the shared HostTable, then read again. The handler ends when the
peer closes, a read fails, or the process-wide stop event is set.
"""

import logging
import socket
import threading
from typing import Optional

from parastat.host_table import HostTable
from parastat.line_buffer import MAX_LINE_LENGTH, LineBuffer
from parastat.protocol import parse_line
from parastat.trace_logger import ProtocolTraceLogger, get_trace_logger

logger = logging.getLogger(__name__)

READ_SIZE = 4096  # Bytes requested per recv()
POLL_INTERVAL_SECONDS = 0.5  # How often a blocked read re-checks the stop event

# Handler states
STATE_READING = "reading"
STATE_APPLYING = "applying"
STATE_CLOSED = "closed"

# Close reasons
CLOSE_EOF = "eof"
CLOSE_ERROR = "error"
CLOSE_SHUTDOWN = "shutdown"


def format_peer(address) -> str:
    """Format a socket address tuple as ``host:port``."""
    try:
        host, port = address[0], address[1]
    except (TypeError, IndexError):
        return str(address)
    if ":" in str(host):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def apply_line(table: HostTable, line: str, peer: str, trace: Optional[ProtocolTraceLogger] = None) -> str:
    """
    Parse one line and apply it to the table.

    Malformed lines and updates for hosts that do not fit in the table are
    ignored; nothing is reported back to the peer.

    Returns:
        "applied", "discarded" or "dropped"
    """
    update = parse_line(line)
    if update is None:
        result = "discarded"
        logger.debug("Discarded malformed line from %s: %r", peer, line)
    elif table.apply_update(update):
        result = "applied"
    else:
        result = "dropped"
        logger.debug("Host table full, dropped update for %s from %s", update["host_id"], peer)
    if trace is not None:
        trace.log_line(peer, line, result, update)
    return result


def handle_connection(
    conn: socket.socket,
    peer: str,
    table: HostTable,
    stop_event: threading.Event,
    read_size: int = READ_SIZE,
    poll_interval: float = POLL_INTERVAL_SECONDS,
    max_line_length: int = MAX_LINE_LENGTH,
) -> str:
    """
    Read protocol lines from one connection until it closes.

    The socket is closed on every exit path.

    Args:
        conn: Connected socket
        peer: Peer address label for logs
        table: Shared host table
        stop_event: Process-wide shutdown event, checked between reads
        read_size: Maximum bytes per read
        poll_interval: Read timeout used to observe the stop event
        max_line_length: Longest line accepted before it is dropped

    Returns:
        Why the connection ended: "eof", "error" or "shutdown"
    """
    trace = get_trace_logger()
    buffer = LineBuffer(max_line_length=max_line_length)
    line_count = 0
    reason = CLOSE_SHUTDOWN
    state = STATE_READING

    if trace is not None:
        trace.log_connection_open(peer)
    logger.debug("Connection opened: %s", peer)

    try:
        conn.settimeout(poll_interval)
        while not stop_event.is_set():
            state = STATE_READING
            try:
                data = conn.recv(read_size)
            except socket.timeout:
                continue
            except OSError as e:
                logger.debug("Read error on %s: %s", peer, e)
                reason = CLOSE_ERROR
                break
            if not data:
                reason = CLOSE_EOF
                break

            state = STATE_APPLYING
            for line in buffer.feed(data):
                line_count += 1
                apply_line(table, line, peer, trace)
    finally:
        dropped = buffer.discard()
        if dropped:
            logger.debug("Dropped %d unterminated bytes from %s", dropped, peer)
        try:
            conn.close()
        except OSError:
            pass
        if trace is not None:
            trace.log_connection_close(peer, reason, line_count)
        logger.debug("Connection %s: %s -> %s (%s, %d lines)", peer, state, STATE_CLOSED, reason, line_count)

    return reason
