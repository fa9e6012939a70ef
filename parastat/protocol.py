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
Wire protocol for ParaStat.

Agents send one newline-terminated ASCII record per sample::

    CPU;<host_id>;<cpu_usage_pct>;<user_pct>;<system_pct>;<idle_pct>
    MEM;<host_id>;<mem_used_MB>;<mem_free_MB>;<swap_total_MB>;<swap_free_MB>

Parsing is lenient in the same way the deployed senders expect: numeric fields
that do not parse degrade to 0.0, while a record with a missing field, an empty
host id or an unknown prefix is discarded as a whole.
"""

import re
from typing import Any, Dict, Optional

CPU_PREFIX = "CPU;"
MEM_PREFIX = "MEM;"
FIELD_SEPARATOR = ";"

CPU_FIELDS = ("usage", "user_pct", "system_pct", "idle_pct")
MEM_FIELDS = ("used_mb", "free_mb", "swap_total_mb", "swap_free_mb")

# Longest leading number the way C atof() reads it: hex float, inf/nan or decimal.
_LEADING_NUMBER_RE = re.compile(
    r"\s*(?:"
    r"(?P<hex>[+-]?0x(?:[0-9a-f]+\.?[0-9a-f]*|\.[0-9a-f]+)(?:p[+-]?\d+)?)"
    r"|(?P<special>[+-]?(?:inf(?:inity)?|nan))"
    r"|(?P<decimal>[+-]?(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?)"
    r")",
    re.IGNORECASE,
)

_FIELDS_BY_PREFIX = {
    CPU_PREFIX: ("CPU", CPU_FIELDS),
    MEM_PREFIX: ("MEM", MEM_FIELDS),
}


def parse_number(text: str) -> float:
    """
    Convert a numeric protocol field to float.

    Leading whitespace is skipped and the longest valid numeric prefix is used,
    so ``"55.00\\r"`` reads as 55.0, ``"12abc"`` as 12.0 and ``"0x10"`` as 16.0.
    ``inf``, ``infinity`` and ``nan`` are accepted in any case. Anything without
    a numeric prefix reads as 0.0.
    """
    match = _LEADING_NUMBER_RE.match(text)
    if not match:
        return 0.0
    if match.group("hex"):
        try:
            return float.fromhex(match.group("hex"))
        except OverflowError:
            return float("-inf") if match.group("hex").startswith("-") else float("inf")
    return float(match.group("special") or match.group("decimal"))


def parse_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Parse one protocol line (without its terminating newline).

    Args:
        line: Raw line text

    Returns:
        Dict with ``kind`` ("CPU" or "MEM"), ``host_id`` and the four metric
        fields of that kind, or None if the line must be discarded
    """
    prefix = line[: len(CPU_PREFIX)]
    if prefix not in _FIELDS_BY_PREFIX:
        return None
    kind, field_names = _FIELDS_BY_PREFIX[prefix]

    parts = line[len(prefix) :].split(FIELD_SEPARATOR)
    # host id plus one value per metric field; extra trailing fields are ignored
    if len(parts) < 1 + len(field_names):
        return None
    host_id = parts[0]
    if not host_id:
        return None

    update: Dict[str, Any] = {"kind": kind, "host_id": host_id}
    for name, raw_value in zip(field_names, parts[1:]):
        update[name] = parse_number(raw_value)
    return update


def format_cpu_line(host_id: str, usage: float, user_pct: float, system_pct: float, idle_pct: float) -> str:
    """Build a newline-terminated CPU record with two fractional digits per value."""
    return f"CPU;{host_id};{usage:.2f};{user_pct:.2f};{system_pct:.2f};{idle_pct:.2f}\n"


def format_mem_line(host_id: str, used_mb: float, free_mb: float, swap_total_mb: float, swap_free_mb: float) -> str:
    """Build a newline-terminated MEM record with two fractional digits per value."""
    return f"MEM;{host_id};{used_mb:.2f};{free_mb:.2f};{swap_total_mb:.2f};{swap_free_mb:.2f}\n"
