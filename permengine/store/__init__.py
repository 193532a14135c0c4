# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package store provides record storage backends for overrides, delegations,
inheritance snapshots and audit records.
"""

from .types import (
    RecordStore,
    StorageStatus,
    OVERRIDES,
    DELEGATIONS,
    MASTER_RECORDS,
    AUDIT_RECORDS,
    REVIEW_TASKS,
    COMPLIANCE_RECORDS,
    SCHEDULED_EXPIRATIONS,
)
from .memory import MemoryRecordStore
from .redis_store import RedisRecordStore
from .factory import create_store, register_implementation

__all__ = [
    "RecordStore",
    "StorageStatus",
    "MemoryRecordStore",
    "RedisRecordStore",
    "create_store",
    "register_implementation",
    "OVERRIDES",
    "DELEGATIONS",
    "MASTER_RECORDS",
    "AUDIT_RECORDS",
    "REVIEW_TASKS",
    "COMPLIANCE_RECORDS",
    "SCHEDULED_EXPIRATIONS",
]
