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
Bounded per-host metrics table for ParaStat.

This module provides a HostTable class holding the latest CPU and memory
figures reported for each host id. It ensures:
- A fixed number of slots; ids arriving after the table is full are dropped
- Records are created on first successful update and never removed
- Records hold only the reported figures; receive times are kept beside
  them, so re-sending an identical line leaves the record unchanged
- Every update and every snapshot runs under one lock, so a snapshot never
  observes a half-written CPU or memory record
"""

import copy
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

MAX_HOSTS = 64  # Default number of host slots


def _new_record(host_id: str) -> Dict[str, Any]:
    """Build a zero-initialized host record."""
    return {
        "id": host_id,
        "has_cpu": False,
        "cpu": {"usage": 0.0, "user_pct": 0.0, "system_pct": 0.0, "idle_pct": 0.0},
        "has_mem": False,
        "mem": {"used_mb": 0.0, "free_mb": 0.0, "swap_total_mb": 0.0, "swap_free_mb": 0.0},
    }


class HostTable:
    """
    Thread-safe table of the latest metrics per reporting host.

    Slots are filled in arrival order. The slot list and the id index are
    private; callers interact through the apply_* methods and snapshot().
    """

    def __init__(self, capacity: int = MAX_HOSTS) -> None:
        """
        Initialize the HostTable.

        Args:
            capacity: Maximum number of distinct host ids (default: 64)
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1.")
        self._capacity = capacity
        self._lock = threading.Lock()
        self._slots: List[Optional[Dict[str, Any]]] = [None] * capacity
        # host id -> slot index
        self._index: Dict[str, int] = {}
        # host id -> time.time() of the last applied update
        self._last_update: Dict[str, float] = {}

    @property
    def capacity(self) -> int:
        """Maximum number of host records."""
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def _get_or_create_locked(self, host_id: str) -> Optional[Dict[str, Any]]:
        slot = self._index.get(host_id)
        if slot is not None:
            return self._slots[slot]
        # Records are never removed, so the first free slot follows the last used one.
        position = len(self._index)
        if position >= self._capacity:
            return None
        record = _new_record(host_id)
        self._slots[position] = record
        self._index[host_id] = position
        return record

    def get_or_create(self, host_id: str) -> Optional[Dict[str, Any]]:
        """
        Return the record for a host, creating it if a slot is free.

        Args:
            host_id: The reporting host identifier

        Returns:
            The live record, or None if the table is full and the id is unseen.
            The record must only be modified through the apply_* methods.
        """
        with self._lock:
            return self._get_or_create_locked(host_id)

    def apply_cpu_update(self, host_id: str, usage: float, user: float, system: float, idle: float) -> bool:
        """
        Overwrite the CPU figures of a host.

        Returns:
            True if applied, False if the id was dropped for lack of capacity
        """
        with self._lock:
            record = self._get_or_create_locked(host_id)
            if record is None:
                return False
            record["cpu"] = {"usage": usage, "user_pct": user, "system_pct": system, "idle_pct": idle}
            record["has_cpu"] = True
            self._last_update[host_id] = time.time()
            return True

    def apply_mem_update(self, host_id: str, used: float, free: float, swap_total: float, swap_free: float) -> bool:
        """
        Overwrite the memory figures of a host.

        Returns:
            True if applied, False if the id was dropped for lack of capacity
        """
        with self._lock:
            record = self._get_or_create_locked(host_id)
            if record is None:
                return False
            record["mem"] = {
                "used_mb": used,
                "free_mb": free,
                "swap_total_mb": swap_total,
                "swap_free_mb": swap_free,
            }
            record["has_mem"] = True
            self._last_update[host_id] = time.time()
            return True

    def apply_update(self, update: Dict[str, Any]) -> bool:
        """
        Apply a parsed protocol update (see parastat.protocol.parse_line).

        Returns:
            True if applied, False if dropped
        """
        if update["kind"] == "CPU":
            return self.apply_cpu_update(
                update["host_id"],
                update["usage"],
                update["user_pct"],
                update["system_pct"],
                update["idle_pct"],
            )
        if update["kind"] == "MEM":
            return self.apply_mem_update(
                update["host_id"],
                update["used_mb"],
                update["free_mb"],
                update["swap_total_mb"],
                update["swap_free_mb"],
            )
        raise ValueError(f"Unknown update kind: {update['kind']!r}")

    def snapshot(self) -> List[Dict[str, Any]]:
        """
        Take a consistent copy of all live records.

        Returns:
            Deep copies of the records in slot (arrival) order
        """
        with self._lock:
            return self._snapshot_locked()

    def snapshot_with_times(self) -> Tuple[List[Dict[str, Any]], Dict[str, float]]:
        """
        Take a snapshot together with the last update time of each host.

        Both are read under the same lock, so every record has its time.

        Returns:
            Tuple of (records in slot order, host id -> last update time)
        """
        with self._lock:
            return self._snapshot_locked(), dict(self._last_update)

    def last_update(self, host_id: str) -> Optional[float]:
        """Time of the last update applied for a host, or None if unknown."""
        with self._lock:
            return self._last_update.get(host_id)

    def _snapshot_locked(self) -> List[Dict[str, Any]]:
        return [copy.deepcopy(record) for record in self._slots if record is not None]
