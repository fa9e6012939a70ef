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
Statistics computation for ParaStat.

This module aggregates a host table snapshot into the figures shown on the
status line and in the exit summary.
"""


def compute_table_summary(records):
    """
    Compute aggregate statistics for a snapshot.

    Args:
        records: List of host records from HostTable.snapshot()

    Returns:
        Dict with host counts, average/peak CPU usage and total memory used.
        Averages and totals are None when no host reported that metric.
    """
    cpu_records = [record for record in records if record["has_cpu"]]
    mem_records = [record for record in records if record["has_mem"]]

    avg_cpu_usage = None
    peak_cpu_host = None
    peak_cpu_usage = None
    if cpu_records:
        avg_cpu_usage = sum(record["cpu"]["usage"] for record in cpu_records) / len(cpu_records)
        peak = max(cpu_records, key=lambda record: record["cpu"]["usage"])
        peak_cpu_host = peak["id"]
        peak_cpu_usage = peak["cpu"]["usage"]

    total_mem_used_mb = None
    if mem_records:
        total_mem_used_mb = sum(record["mem"]["used_mb"] for record in mem_records)

    return {
        "hosts": len(records),
        "cpu_hosts": len(cpu_records),
        "mem_hosts": len(mem_records),
        "avg_cpu_usage": avg_cpu_usage,
        "peak_cpu_host": peak_cpu_host,
        "peak_cpu_usage": peak_cpu_usage,
        "total_mem_used_mb": total_mem_used_mb,
    }


def build_summary_line(summary, capacity, connections=None):
    """
    Build the status line text for a table summary.

    Args:
        summary: Dict from compute_table_summary()
        capacity: Host table capacity
        connections: Number of active connections, or None to omit the field

    Returns:
        String like "Hosts: 3/64 | Connections: 2 | Avg CPU: 41.0% | ..."
    """
    avg_cpu = f"{summary['avg_cpu_usage']:.1f}%" if summary["avg_cpu_usage"] is not None else "n/a"
    peak = "n/a"
    if summary["peak_cpu_host"] is not None:
        peak = f"{summary['peak_cpu_host']} ({summary['peak_cpu_usage']:.1f}%)"
    mem_used = f"{summary['total_mem_used_mb']:.1f} MB" if summary["total_mem_used_mb"] is not None else "n/a"
    parts = [f"Hosts: {summary['hosts']}/{capacity}"]
    if connections is not None:
        parts.append(f"Connections: {connections}")
    parts.extend([f"Avg CPU: {avg_cpu}", f"Peak: {peak}", f"Mem used: {mem_used}"])
    return " | ".join(parts)
