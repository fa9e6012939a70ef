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
Newline-aware buffering for protocol byte streams.

TCP delivers a byte stream, not records: one read may carry several lines, and
a line may arrive split across two or more reads. LineBuffer accumulates bytes,
hands back every complete line, and keeps the unterminated tail for the next
read.

A tail that grows past max_line_length without a newline is dropped, along
with everything up to the next newline, so a misbehaving peer cannot grow the
buffer without bound.
"""

from typing import List

MAX_LINE_LENGTH = 512  # Longest accepted record, in bytes, excluding the newline
NEWLINE = b"\n"


class LineBuffer:
    """Reassemble newline-terminated ASCII lines from arbitrary byte chunks."""

    def __init__(self, max_line_length: int = MAX_LINE_LENGTH) -> None:
        self.max_line_length = max_line_length
        self._pending = bytearray()
        # True while skipping the remainder of an over-long line
        self._discarding = False

    @property
    def pending_bytes(self) -> int:
        """Number of buffered bytes that do not yet form a complete line."""
        return len(self._pending)

    def feed(self, data: bytes) -> List[str]:
        """
        Add a chunk of bytes and return the lines it completes.

        Args:
            data: Bytes as read from the socket

        Returns:
            Complete lines in arrival order, without the newline and without a
            trailing carriage return
        """
        lines: List[str] = []
        start = 0
        while True:
            end = data.find(NEWLINE, start)
            if end == -1:
                break
            segment = data[start:end]
            start = end + 1
            if self._discarding:
                # End of an over-long line; resume normal parsing after it.
                self._discarding = False
                self._pending.clear()
                continue
            self._pending.extend(segment)
            if len(self._pending) <= self.max_line_length:
                lines.append(_decode(bytes(self._pending)))
            self._pending.clear()

        tail = data[start:]
        if tail and not self._discarding:
            self._pending.extend(tail)
            if len(self._pending) > self.max_line_length:
                self._pending.clear()
                self._discarding = True
        return lines

    def discard(self) -> int:
        """
        Drop any unterminated tail.

        Returns:
            Number of bytes dropped
        """
        dropped = len(self._pending)
        self._pending.clear()
        self._discarding = False
        return dropped


def _decode(raw: bytes) -> str:
    """Decode one line as ASCII, stripping a trailing carriage return."""
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("ascii", errors="replace")
