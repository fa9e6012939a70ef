#!/usr/bin/env python3
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
Unit tests for parastat.connection module.

This module tests the per-connection read loop: line application, partial
reads, close reasons and cooperative shutdown.
"""

import logging
import os
import socket
import sys
import threading
import unittest
from unittest.mock import MagicMock, patch

# Add parent directory to path to import parastat
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from parastat.connection import (  # noqa: E402  # pylint: disable=wrong-import-position
    CLOSE_EOF,
    CLOSE_ERROR,
    CLOSE_SHUTDOWN,
    apply_line,
    format_peer,
    handle_connection,
)
from parastat.host_table import HostTable  # noqa: E402  # pylint: disable=wrong-import-position

CPU_LINE = b"CPU;1.2.3.4;55.00;20.00;10.00;25.00\n"
MEM_LINE = b"MEM;1.2.3.4;2048.00;1024.00;4096.00;4000.00\n"


class TestFormatPeer(unittest.TestCase):
    """Test cases for peer label formatting"""

    def test_ipv4(self):
        """Test IPv4 address tuples"""
        self.assertEqual(format_peer(("192.0.2.1", 5000)), "192.0.2.1:5000")

    def test_ipv6(self):
        """Test IPv6 address tuples are bracketed"""
        self.assertEqual(format_peer(("2001:db8::1", 5000, 0, 0)), "[2001:db8::1]:5000")

    def test_non_tuple(self):
        """Test that a missing address falls back to str()"""
        self.assertEqual(format_peer(None), "None")


class TestApplyLine(unittest.TestCase):
    """Test cases for apply_line()"""

    def test_applied(self):
        """Test that a valid line updates the table"""
        table = HostTable()
        self.assertEqual(apply_line(table, CPU_LINE.decode().rstrip("\n"), "peer"), "applied")
        self.assertEqual(table.snapshot()[0]["cpu"]["usage"], 55.0)

    def test_discarded(self):
        """Test that a malformed line leaves the table untouched"""
        table = HostTable()
        with logging.captured_logs("parastat.connection", logging.DEBUG) as records:
            self.assertEqual(apply_line(table, "garbage", "peer"), "discarded")
        self.assertEqual(len(table), 0)
        self.assertTrue(any("malformed" in r.getMessage() for r in records))

    def test_dropped_when_full(self):
        """Test that updates for unseen ids are dropped when the table is full"""
        table = HostTable(capacity=1)
        apply_line(table, "CPU;a;1;1;1;1", "peer")
        self.assertEqual(apply_line(table, "CPU;b;1;1;1;1", "peer"), "dropped")
        self.assertEqual([r["id"] for r in table.snapshot()], ["a"])

    def test_repeated_line_leaves_record_unchanged(self):
        """Test that the same MEM line applied twice gives the same record as once"""
        table = HostTable()
        apply_line(table, "MEM;h;1.00;2.00;3.00;4.00", "peer")
        after_one = table.snapshot()
        self.assertEqual(apply_line(table, "MEM;h;1.00;2.00;3.00;4.00", "peer"), "applied")
        self.assertEqual(table.snapshot(), after_one)

    def test_trace_receives_outcome(self):
        """Test that the trace logger sees each line and its outcome"""
        trace = MagicMock()
        table = HostTable()
        apply_line(table, "MEM;h;1;2;3;4", "peer", trace)
        apply_line(table, "nope", "peer", trace)
        first, second = trace.log_line.call_args_list
        self.assertEqual(first.args[0], "peer")
        self.assertEqual(first.args[2], "applied")
        self.assertEqual(first.args[3]["kind"], "MEM")
        self.assertEqual(second.args[2], "discarded")
        self.assertIsNone(second.args[3])


class TestHandleConnection(unittest.TestCase):
    """Test cases for handle_connection()"""

    def setUp(self):
        self.server_sock, self.client_sock = socket.socketpair()
        self.table = HostTable()
        self.stop_event = threading.Event()

    def tearDown(self):
        self.client_sock.close()
        self.server_sock.close()

    def test_reads_until_eof(self):
        """Test that lines are applied and EOF ends the connection"""
        self.client_sock.sendall(CPU_LINE + MEM_LINE)
        self.client_sock.shutdown(socket.SHUT_WR)
        reason = handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
        self.assertEqual(reason, CLOSE_EOF)
        record = self.table.snapshot()[0]
        self.assertEqual(record["id"], "1.2.3.4")
        self.assertTrue(record["has_cpu"])
        self.assertTrue(record["has_mem"])
        self.assertEqual(record["mem"]["used_mb"], 2048.0)

    def test_socket_closed_on_exit(self):
        """Test that the handler closes its socket"""
        self.client_sock.shutdown(socket.SHUT_WR)
        handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
        self.assertEqual(self.server_sock.fileno(), -1)

    def test_small_reads_reassemble_lines(self):
        """Test that lines split across many reads are still applied"""
        self.client_sock.sendall(CPU_LINE + MEM_LINE)
        self.client_sock.shutdown(socket.SHUT_WR)
        handle_connection(self.server_sock, "peer", self.table, self.stop_event, read_size=7, poll_interval=0.05)
        record = self.table.snapshot()[0]
        self.assertEqual(record["cpu"]["idle_pct"], 25.0)
        self.assertEqual(record["mem"]["swap_free_mb"], 4000.0)

    def test_unterminated_tail_is_discarded(self):
        """Test that a partial line at EOF is not applied"""
        self.client_sock.sendall(CPU_LINE + b"MEM;1.2.3.4;1;2;3;4")
        self.client_sock.shutdown(socket.SHUT_WR)
        handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
        record = self.table.snapshot()[0]
        self.assertTrue(record["has_cpu"])
        self.assertFalse(record["has_mem"])

    def test_malformed_lines_do_not_end_connection(self):
        """Test that garbage between valid lines is skipped"""
        self.client_sock.sendall(b"hello\nCPU;x\n" + CPU_LINE)
        self.client_sock.shutdown(socket.SHUT_WR)
        reason = handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
        self.assertEqual(reason, CLOSE_EOF)
        self.assertEqual(len(self.table), 1)

    def test_stop_event_set_before_start(self):
        """Test that a pre-set stop event closes without reading"""
        self.stop_event.set()
        self.client_sock.sendall(CPU_LINE)
        reason = handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
        self.assertEqual(reason, CLOSE_SHUTDOWN)
        self.assertEqual(len(self.table), 0)

    def test_stop_event_interrupts_idle_read(self):
        """Test that an idle connection notices shutdown within the poll interval"""
        results = []
        thread = threading.Thread(
            target=lambda: results.append(
                handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
            )
        )
        thread.start()
        self.stop_event.set()
        thread.join(timeout=2.0)
        self.assertFalse(thread.is_alive())
        self.assertEqual(results, [CLOSE_SHUTDOWN])

    def test_read_error(self):
        """Test that a read error ends the connection with reason error"""
        conn = MagicMock()
        conn.recv.side_effect = ConnectionResetError("reset by peer")
        reason = handle_connection(conn, "peer", self.table, self.stop_event)
        self.assertEqual(reason, CLOSE_ERROR)
        conn.close.assert_called_once()

    def test_timeout_keeps_reading(self):
        """Test that a read timeout is not treated as a close"""
        conn = MagicMock()
        conn.recv.side_effect = [socket.timeout(), b"MEM;h;1;2;3;4\n", b""]
        reason = handle_connection(conn, "peer", self.table, self.stop_event, poll_interval=0.01)
        self.assertEqual(reason, CLOSE_EOF)
        conn.settimeout.assert_called_once_with(0.01)
        self.assertTrue(self.table.snapshot()[0]["has_mem"])

    def test_trace_records_open_and_close(self):
        """Test that connection lifecycle reaches the trace logger"""
        trace = MagicMock()
        self.client_sock.sendall(CPU_LINE)
        self.client_sock.shutdown(socket.SHUT_WR)
        with patch("parastat.connection.get_trace_logger", return_value=trace):
            handle_connection(self.server_sock, "peer", self.table, self.stop_event, poll_interval=0.05)
        trace.log_connection_open.assert_called_once_with("peer")
        trace.log_connection_close.assert_called_once_with("peer", CLOSE_EOF, 1)
        self.assertEqual(trace.log_line.call_count, 1)


if __name__ == "__main__":
    unittest.main()
