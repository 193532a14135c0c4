# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Persistence and retrieval of individual permission overrides.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from ..common.utils import Clock, get_current_time
from ..core.config import EngineConfig
from ..core.types import OverrideType, PermissionOverride
from ..errors import ErrorCode, ValidationError
from ..store import OVERRIDES, RecordStore


logger = logging.getLogger(__name__)

# Overdue overrides in these contexts are left active for the audited emergency expiry.
EMERGENCY_CONTEXT_PREFIX = "emergency_"


def override_sort_key(override: PermissionOverride) -> Tuple[int, int, float, str]:
    """
    Ordering in which overrides are considered: priority descending, then
    removing types before adding types, then newest first, then id.
    """
    return (
        -override.priority,
        1 if override.type.adds else 0,
        -override.created_at.timestamp(),
        override.id,
    )


def is_emergency_context(context: Optional[str]) -> bool:
    return bool(context) and context.startswith(EMERGENCY_CONTEXT_PREFIX)


def parse_override_type(value: Union[OverrideType, str]) -> OverrideType:
    if isinstance(value, OverrideType):
        return value
    try:
        return OverrideType(str(value).lower())
    except ValueError:
        raise ValidationError(f"Unknown override type: {value}",
                              code=ErrorCode.UNKNOWN_OVERRIDE_TYPE, field="type")


class OverrideStore:
    """Stores user-scoped overrides and hands out the ones currently in force."""

    def __init__(self, store: RecordStore, config: Optional[EngineConfig] = None,
                 clock: Optional[Clock] = None):
        self.store = store
        self.config = config or EngineConfig()
        self.clock = clock or get_current_time

    async def create(
        self,
        user_id: str,
        type: Union[OverrideType, str],
        permission: str,
        reason: str = "",
        granted_by: str = "",
        context: str = "",
        priority: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> str:
        """
        Persist a new active override and return its id.

        Raises:
            ValidationError: unknown type, missing permission, or an expiry already in the past
        """
        override_type = parse_override_type(type)
        if not user_id:
            raise ValidationError("user_id is required", code=ErrorCode.MISSING_PARAMETER, field="user_id")
        if not permission:
            raise ValidationError("permission is required", code=ErrorCode.MISSING_PARAMETER, field="permission")

        now = self.clock()
        if expires_at is not None and expires_at <= now:
            raise ValidationError("Override expiry is already in the past",
                                  code=ErrorCode.EXPIRED_GRANT, field="expires_at")

        override = PermissionOverride(
            user_id=user_id,
            type=override_type,
            permission=permission,
            reason=reason,
            granted_by=granted_by,
            context=context,
            priority=self.config.default_priority(override_type) if priority is None else priority,
            expires_at=expires_at,
            created_at=now,
        )
        await self.store.put(OVERRIDES, override.id, override.to_dict())

        logger.info(
            "PERMISSION_OVERRIDE_CREATED override_id=%s user=%s type=%s permission=%s priority=%d context=%s",
            override.id, user_id, override_type.value, permission, override.priority, context,
        )
        return override.id

    async def get(self, override_id: str) -> Optional[PermissionOverride]:
        data = await self.store.get(OVERRIDES, override_id)
        return PermissionOverride.from_dict(data) if data else None

    async def list_active(self, user_id: str) -> List[PermissionOverride]:
        """
        Overrides in force for a user, in consideration order. Expired ones are
        deactivated, except emergency ones, which are only excluded until the
        emergency expiry audits them.
        """
        now = self.clock()
        active = []
        for override in self._load_all(await self.store.find(OVERRIDES, user_id=user_id, active=True)):
            if override.is_expired(now):
                if is_emergency_context(override.context):
                    continue
                await self._deactivate(override, "expired", now)
                logger.info("PERMISSION_OVERRIDE_EXPIRED override_id=%s user=%s permission=%s",
                            override.id, user_id, override.permission)
                continue
            active.append(override)

        active.sort(key=override_sort_key)
        return active

    async def list_by_context(self, context: str, active_only: bool = False) -> List[PermissionOverride]:
        filters = {"context": context}
        if active_only:
            filters["active"] = True
        overrides = self._load_all(await self.store.find(OVERRIDES, **filters))
        overrides.sort(key=override_sort_key)
        return overrides

    async def deactivate(self, override_id: str, reason: str) -> bool:
        """Deactivate one override. Returns False if it was already inactive or unknown."""
        override = await self.get(override_id)
        if override is None or not override.active:
            return False
        await self._deactivate(override, reason, self.clock())
        return True

    async def deactivate_by_context(self, context: str, reason: str) -> int:
        """Deactivate every active override sharing ``context``."""
        now = self.clock()
        count = 0
        for override in self._load_all(await self.store.find(OVERRIDES, context=context, active=True)):
            await self._deactivate(override, reason, now)
            count += 1

        if count:
            logger.info("PERMISSION_OVERRIDES_DEACTIVATED context=%s count=%d reason=%s", context, count, reason)
        return count

    async def expire_overdue(self) -> List[PermissionOverride]:
        """
        Deactivate every active override past its expiry; returns what was
        expired. Emergency overrides are left to ``expire_elevation``.
        """
        now = self.clock()
        expired = []
        for override in self._load_all(await self.store.find(OVERRIDES, active=True)):
            if not override.is_expired(now) or is_emergency_context(override.context):
                continue
            await self._deactivate(override, "expired", now)
            expired.append(override)

        if expired:
            logger.info("PERMISSION_OVERRIDES_EXPIRED count=%d", len(expired))
        return expired

    async def overdue_emergency_contexts(self) -> List[str]:
        """Contexts of emergency elevations with an active override past its expiry."""
        now = self.clock()
        contexts = {
            override.context
            for override in self._load_all(await self.store.find(OVERRIDES, active=True))
            if override.is_expired(now) and is_emergency_context(override.context)
        }
        return sorted(contexts)

    @staticmethod
    def _load_all(documents: List[Dict[str, Any]]) -> List[PermissionOverride]:
        overrides = []
        for data in documents:
            try:
                overrides.append(PermissionOverride.from_dict(data))
            except ValueError:
                logger.warning("Skipping override %s with unrecognized type %r", data.get("id"), data.get("type"))
        return overrides

    async def _deactivate(self, override: PermissionOverride, reason: str, now: datetime) -> None:
        override.active = False
        override.deactivated_at = now
        override.deactivation_reason = reason
        await self.store.put(OVERRIDES, override.id, override.to_dict())
