# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package inheritance derives base permissions from identity-provider claims
and resolves the effective permission set.
"""

from .mapping import GroupPermissionMapper
from .resolver import InheritanceResolver, SINK_SOURCE

__all__ = ["GroupPermissionMapper", "InheritanceResolver", "SINK_SOURCE"]
