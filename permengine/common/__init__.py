# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Common package providing shared helpers for the permission engine:
identifiers, the injectable clock, and duration parsing.
"""

from .utils import (
    Clock,
    generate_id,
    get_current_time,
    to_unix_ms,
    isoformat_or_none,
    parse_datetime,
    parse_duration_string,
    coerce_duration,
    normalize_name,
    unique_sorted,
)

__all__ = [
    'Clock', 'generate_id', 'get_current_time', 'to_unix_ms',
    'isoformat_or_none', 'parse_datetime',
    'parse_duration_string', 'coerce_duration',
    'normalize_name', 'unique_sorted',
]
