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
Unit tests for parastat.protocol module.

This module tests record parsing, numeric field conversion and line formatting.
"""

import math
import os
import sys
import unittest

# Add parent directory to path to import parastat
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from parastat.protocol import (  # noqa: E402  # pylint: disable=wrong-import-position
    format_cpu_line,
    format_mem_line,
    parse_line,
    parse_number,
)


class TestParseNumber(unittest.TestCase):
    """Test cases for numeric field conversion"""

    def test_plain_decimal(self):
        """Test that plain decimals convert exactly"""
        self.assertEqual(parse_number("55.00"), 55.0)
        self.assertEqual(parse_number("0"), 0.0)
        self.assertEqual(parse_number("-3.5"), -3.5)

    def test_leading_prefix_is_used(self):
        """Test that trailing garbage after a number is ignored"""
        self.assertEqual(parse_number("12abc"), 12.0)
        self.assertEqual(parse_number("25.00\r"), 25.0)
        self.assertEqual(parse_number("  7.25 "), 7.25)
        self.assertEqual(parse_number("1e3x"), 1000.0)

    def test_special_values(self):
        """Test infinity and NaN spellings in any case"""
        self.assertEqual(parse_number("inf"), float("inf"))
        self.assertEqual(parse_number("-Infinity"), float("-inf"))
        self.assertEqual(parse_number("INFx"), float("inf"))
        self.assertTrue(math.isnan(parse_number("nan")))
        self.assertTrue(math.isnan(parse_number(" NaN;")))

    def test_hex_values(self):
        """Test hexadecimal integers and hex floats"""
        self.assertEqual(parse_number("0x10"), 16.0)
        self.assertEqual(parse_number("-0X1f"), -31.0)
        self.assertEqual(parse_number("0x1.8p3"), 12.0)
        self.assertEqual(parse_number("0x10zz"), 16.0)
        # No hex digits after the prefix: only the leading zero is numeric
        self.assertEqual(parse_number("0x"), 0.0)
        self.assertEqual(parse_number("0x1p99999"), float("inf"))

    def test_non_numeric_is_zero(self):
        """Test that fields without a numeric prefix read as zero"""
        self.assertEqual(parse_number(""), 0.0)
        self.assertEqual(parse_number("abc"), 0.0)
        self.assertEqual(parse_number("."), 0.0)
        self.assertEqual(parse_number("-"), 0.0)


class TestParseLine(unittest.TestCase):
    """Test cases for protocol line parsing"""

    def test_cpu_line(self):
        """Test a well-formed CPU record"""
        update = parse_line("CPU;1.2.3.4;55.00;20.00;10.00;25.00")
        self.assertEqual(
            update,
            {
                "kind": "CPU",
                "host_id": "1.2.3.4",
                "usage": 55.0,
                "user_pct": 20.0,
                "system_pct": 10.0,
                "idle_pct": 25.0,
            },
        )

    def test_mem_line(self):
        """Test a well-formed MEM record"""
        update = parse_line("MEM;db-1;2048.50;1024.00;4096.00;4000.00")
        self.assertEqual(update["kind"], "MEM")
        self.assertEqual(update["host_id"], "db-1")
        self.assertEqual(update["used_mb"], 2048.5)
        self.assertEqual(update["free_mb"], 1024.0)
        self.assertEqual(update["swap_total_mb"], 4096.0)
        self.assertEqual(update["swap_free_mb"], 4000.0)

    def test_unknown_prefix_is_discarded(self):
        """Test that lines with other prefixes are discarded"""
        self.assertIsNone(parse_line("DSK;h;1;2;3;4"))
        self.assertIsNone(parse_line("cpu;h;1;2;3;4"))
        self.assertIsNone(parse_line(""))
        self.assertIsNone(parse_line("CPU"))

    def test_too_few_fields_is_discarded(self):
        """Test that records missing metric fields are discarded"""
        self.assertIsNone(parse_line("CPU;h;1;2;3"))
        self.assertIsNone(parse_line("MEM;h"))
        self.assertIsNone(parse_line("CPU;"))

    def test_empty_host_id_is_discarded(self):
        """Test that an empty host id is rejected"""
        self.assertIsNone(parse_line("CPU;;1;2;3;4"))

    def test_extra_fields_are_ignored(self):
        """Test that fields after the fourth value do not matter"""
        update = parse_line("CPU;h;1;2;3;4;5;junk")
        self.assertEqual(update["idle_pct"], 4.0)
        self.assertNotIn("extra", update)

    def test_bad_numbers_read_as_zero(self):
        """Test that malformed numeric fields still produce an update"""
        update = parse_line("MEM;h;abc;;12x;7")
        self.assertEqual(update["used_mb"], 0.0)
        self.assertEqual(update["free_mb"], 0.0)
        self.assertEqual(update["swap_total_mb"], 12.0)
        self.assertEqual(update["swap_free_mb"], 7.0)


class TestFormatLines(unittest.TestCase):
    """Test cases for building protocol lines"""

    def test_format_cpu_line(self):
        """Test CPU line formatting"""
        line = format_cpu_line("1.2.3.4", 55, 20.004, 10.5, 25)
        self.assertEqual(line, "CPU;1.2.3.4;55.00;20.00;10.50;25.00\n")

    def test_format_mem_line(self):
        """Test MEM line formatting"""
        line = format_mem_line("web", 1.0, 2.0, 3.0, 4.125)
        self.assertTrue(line.endswith("\n"))
        self.assertEqual(line, "MEM;web;1.00;2.00;3.00;4.12\n")

    def test_formatted_line_parses(self):
        """Test that a formatted line is accepted by the parser"""
        update = parse_line(format_cpu_line("h", 1.5, 2.5, 3.5, 4.5).rstrip("\n"))
        self.assertEqual(update["usage"], 1.5)
        self.assertEqual(update["idle_pct"], 4.5)


if __name__ == "__main__":
    unittest.main()
