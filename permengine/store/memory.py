# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
In-memory record store for development, tests and single-process embedding.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional

from .types import RecordStore, StorageStatus, matches


class MemoryRecordStore(RecordStore):
    """
    In-memory record store implementation.

    Documents are deep-copied on the way in and out, so callers never share
    mutable state with the store. All data is lost when the process ends.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self._operations_count = 0

    async def put(self, collection: str, record_id: str, data: Dict[str, Any]) -> None:
        async with self._lock:
            self._collections.setdefault(collection, {})[record_id] = copy.deepcopy(data)
            self._operations_count += 1

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            self._operations_count += 1
            document = self._collections.get(collection, {}).get(record_id)
            return copy.deepcopy(document) if document is not None else None

    async def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        async with self._lock:
            self._operations_count += 1
            return [
                copy.deepcopy(document)
                for document in self._collections.get(collection, {}).values()
                if matches(document, filters)
            ]

    async def health_check(self) -> StorageStatus:
        return StorageStatus.HEALTHY

    async def close(self) -> None:
        async with self._lock:
            self._collections.clear()

    # Memory-specific methods
    def size(self, collection: str) -> int:
        """Number of documents in a collection. Useful for testing."""
        return len(self._collections.get(collection, {}))

    @property
    def operations_count(self) -> int:
        return self._operations_count
