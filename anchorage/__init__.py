# Copyright the anchorage contributors
# SPDX-License-Identifier: MIT OR Apache-2.0

"""anchorage: client side trust verification for signed repositories."""

# This value is used in the requests user agent.
__version__ = "0.1.0"
