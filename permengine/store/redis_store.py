# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Redis-backed record store for multi-node deployments.

Each collection is one Redis hash keyed by record id with JSON-encoded
documents. Any node can run the reconciliation sweep against the same data.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import StorageError
from .types import RecordStore, StorageStatus, matches


logger = logging.getLogger(__name__)


class RedisRecordStore(RecordStore):
    """
    Redis-based record store implementation.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", key_prefix: str = "permengine:",
                 client: Optional["redis.Redis"] = None):
        """
        Initialize the Redis record store.

        Args:
            url: Redis connection URL, used when no client is given
            key_prefix: Prefix for every collection key
            client: Pre-built asyncio Redis client
        """
        self.url = url
        self.key_prefix = key_prefix
        self._redis = client
        self._lock = asyncio.Lock()

    async def _client(self) -> "redis.Redis":
        if self._redis is None:
            async with self._lock:
                if self._redis is None:
                    self._redis = redis.from_url(self.url, decode_responses=True)
                    logger.info("Connected to Redis at %s", self.url)
        return self._redis

    def _key(self, collection: str) -> str:
        return f"{self.key_prefix}{collection}"

    async def put(self, collection: str, record_id: str, data: Dict[str, Any]) -> None:
        client = await self._client()
        try:
            await client.hset(self._key(collection), record_id, json.dumps(data))
        except RedisError as e:
            logger.error("Failed to store %s/%s: %s", collection, record_id, e)
            raise StorageError("put", f"Failed to store record in {collection}", cause=e)

    async def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        client = await self._client()
        try:
            raw = await client.hget(self._key(collection), record_id)
        except RedisError as e:
            raise StorageError("get", f"Failed to read record from {collection}", cause=e)
        return json.loads(raw) if raw is not None else None

    async def find(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        client = await self._client()
        try:
            values = await client.hvals(self._key(collection))
        except RedisError as e:
            raise StorageError("find", f"Failed to scan {collection}", cause=e)

        documents = (json.loads(raw) for raw in values)
        return [document for document in documents if matches(document, filters)]

    async def health_check(self) -> StorageStatus:
        try:
            client = await self._client()
            await client.ping()
            return StorageStatus.HEALTHY
        except RedisError:
            return StorageStatus.UNHEALTHY

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Disconnected from Redis")
