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
ParaStat package - Concurrent CPU/memory telemetry collector with a live terminal view.
"""

import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"
