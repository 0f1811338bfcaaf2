# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""Verification and transport internals of ``anchorage.client``."""
