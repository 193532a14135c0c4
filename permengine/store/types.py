# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Storage interfaces for the permission engine.

A record store keeps plain ``dict`` documents grouped in named collections.
Filtering is limited to equality matches; time-bound filters are applied by
the callers, which own the semantics of ``expires_at`` and friends.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional


OVERRIDES = "permission_overrides"
DELEGATIONS = "permission_delegations"
MASTER_RECORDS = "inheritance_master_records"
AUDIT_RECORDS = "permission_audit"
REVIEW_TASKS = "audit_review_tasks"
COMPLIANCE_RECORDS = "compliance_audit"
SCHEDULED_EXPIRATIONS = "scheduled_expirations"

COLLECTIONS = (
    OVERRIDES,
    DELEGATIONS,
    MASTER_RECORDS,
    AUDIT_RECORDS,
    REVIEW_TASKS,
    COMPLIANCE_RECORDS,
    SCHEDULED_EXPIRATIONS,
)


class StorageStatus(Enum):
    """Status of a storage backend."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RecordStore(ABC):
    """
    Abstract base class for record storage.
    """

    @abstractmethod
    async def put(self, collection: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a document."""
        pass

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return a document, or None when absent."""
        pass

    @abstractmethod
    async def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        """Return every document whose fields equal all given filters."""
        pass

    async def count(self, collection: str, **filters: Any) -> int:
        return len(await self.find(collection, **filters))

    async def health_check(self) -> StorageStatus:
        return StorageStatus.HEALTHY

    async def close(self) -> None:
        """Release backend resources."""
        pass


def matches(document: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in filters.items())
