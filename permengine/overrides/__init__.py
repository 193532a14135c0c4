# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package overrides stores individual grant, revoke, elevate and restrict
instructions.
"""

from .store import EMERGENCY_CONTEXT_PREFIX, OverrideStore, override_sort_key, parse_override_type

__all__ = ["EMERGENCY_CONTEXT_PREFIX", "OverrideStore", "override_sort_key", "parse_override_type"]
