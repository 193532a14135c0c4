# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Factory for creating record store implementations.
"""

from typing import Any, Callable, Dict, Optional

from ..errors import ConfigurationError
from .memory import MemoryRecordStore
from .redis_store import RedisRecordStore
from .types import RecordStore


def _create_redis(config) -> RecordStore:
    return RedisRecordStore(url=config.redis_url, key_prefix=config.redis_key_prefix)


def _create_memory(config) -> RecordStore:
    return MemoryRecordStore()


# Registry of available storage implementations
_STORAGE_IMPLEMENTATIONS: Dict[str, Callable[[Any], RecordStore]] = {
    'memory': _create_memory,
    'redis': _create_redis,
}


def create_store(store_type: str, config: Optional[Any] = None) -> RecordStore:
    """
    Create a record store instance.

    Args:
        store_type: Type of storage ('memory' or 'redis')
        config: EngineConfig supplying backend settings

    Returns:
        RecordStore instance

    Raises:
        ConfigurationError: If store_type is not supported
    """
    if config is None:
        from ..core.config import EngineConfig
        config = EngineConfig()

    implementation = _STORAGE_IMPLEMENTATIONS.get(store_type.lower())
    if not implementation:
        raise ConfigurationError(f"Unsupported storage type: {store_type}")

    return implementation(config)


def register_implementation(name: str, implementation: Callable[[Any], RecordStore]) -> None:
    """Register a new storage implementation under ``name``."""
    _STORAGE_IMPLEMENTATIONS[name.lower()] = implementation
