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
Pytest configuration helpers for ParaStat tests.

Provides ``logging.captured_logs`` for unittest-style tests and resets the
module-level renderer and trace logger state around every test.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List

import pytest

from parastat import trace_logger, ui_render


@contextmanager
def captured_logs(
    logger_name: str = "parastat",
    level: int = logging.DEBUG,
) -> Iterator[List[logging.LogRecord]]:
    """Collect records emitted at or above level by a parastat logger."""
    records: List[logging.LogRecord] = []

    class ListHandler(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    logger = logging.getLogger(logger_name)
    handler = ListHandler(level)
    saved = (logger.level, logger.propagate)
    logger.setLevel(level)
    logger.propagate = False
    logger.addHandler(handler)
    try:
        yield records
    finally:
        logger.removeHandler(handler)
        logger.setLevel(saved[0])
        logger.propagate = saved[1]


logging.captured_logs = captured_logs


@pytest.fixture(autouse=True)
def isolated_globals() -> Iterator[None]:
    """Start each test with no previous frame and no active trace file."""
    ui_render.reset_render_state()
    yield
    trace_logger.shutdown_trace_logger()
    ui_render.reset_render_state()
