# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Resolution of a user's effective permission set.

Resolution steps:

1. Union the identity-provider and department permissions.
2. Walk overrides highest priority first. The first override seen for a
   permission decides it: grant/elevate add it, revoke/restrict remove it.
   Lower-priority overrides for the same permission are shadowed.
3. Collapse permissions that a co-present, higher-ranked permission includes.
4. Persist a snapshot, push the set to the permission sink and audit it.
"""

import logging
from typing import List, Optional, Sequence, Set

from ..common.utils import Clock, get_current_time
from ..core.config import EngineConfig
from ..core.types import (
    AuditAction, AuditEvent, FinalResult, InheritanceMasterRecord, OverrideType, PermissionOverride, User,
)
from ..directory import PermissionSink
from ..hierarchy import PermissionHierarchy
from ..metrics import EngineMetrics
from ..overrides import override_sort_key
from ..store import MASTER_RECORDS, RecordStore


logger = logging.getLogger(__name__)

SINK_SOURCE = "oauth_inherited_with_overrides"


class InheritanceResolver:
    """Merges permission sources under the override policy and records the outcome."""

    def __init__(
        self,
        store: RecordStore,
        hierarchy: PermissionHierarchy,
        sink: PermissionSink,
        audit,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.store = store
        self.hierarchy = hierarchy
        self.sink = sink
        self.audit = audit
        self.config = config or EngineConfig()
        self.clock = clock or get_current_time
        self.metrics = metrics

    def apply_overrides(self, permissions: Set[str], overrides: Sequence[PermissionOverride]):
        """
        Apply overrides to a permission set in consideration order.

        Returns ``(working_set, considered, skipped_ids)``.
        """
        working = set(permissions)
        decided: Set[str] = set()
        considered: List[PermissionOverride] = []
        skipped: List[str] = []

        valid = []
        for override in overrides:
            if not isinstance(override.type, OverrideType):
                logger.warning("Unknown override type %r on override %s; skipping", override.type, override.id)
                skipped.append(override.id)
                continue
            valid.append(override)

        for override in sorted(valid, key=override_sort_key):
            considered.append(override)
            if override.permission in decided:
                logger.debug("Override %s for %s shadowed by a higher-priority override",
                             override.id, override.permission)
                continue
            decided.add(override.permission)
            if override.type.adds:
                working.add(override.permission)
            else:
                working.discard(override.permission)

        return working, considered, skipped

    async def resolve(
        self,
        user: User,
        base_oauth_permissions: Sequence[str],
        department_permissions: Sequence[str],
        active_overrides: Sequence[PermissionOverride],
        provider: Optional[str] = None,
        corporate_client: Optional[str] = None,
    ) -> FinalResult:
        working, considered, skipped = self.apply_overrides(
            set(base_oauth_permissions) | set(department_permissions), active_overrides)

        if skipped and self.metrics:
            self.metrics.skipped_overrides.inc(len(skipped))

        final_permissions = self.hierarchy.collapse(working)

        record = InheritanceMasterRecord(
            user_id=user.id,
            final_permissions=final_permissions,
            oauth_permissions=sorted(set(base_oauth_permissions)),
            department_permissions=sorted(set(department_permissions)),
            overrides=[o.to_dict() for o in considered],
            provider=provider,
            corporate_client=corporate_client,
            processed_at=self.clock(),
        )
        await self._supersede(user.id)
        await self.store.put(MASTER_RECORDS, record.id, record.to_dict())

        await self.sink.apply_permissions_to_user(user, final_permissions, SINK_SOURCE)

        try:
            await self.audit.record(AuditEvent(
                user_id=user.id,
                action=AuditAction.PERMISSION_INHERITED,
                permission=",".join(final_permissions) or "none",
                performed_by="system",
                reason="oauth_login_inheritance",
                context=f"provider_{provider}" if provider else "inheritance",
                metadata={
                    "master_record_id": record.id,
                    "provider": provider,
                    "corporate_client": corporate_client,
                    "oauth_permission_count": len(record.oauth_permissions),
                    "department_permission_count": len(record.department_permissions),
                    "override_count": len(considered),
                    "skipped_overrides": skipped,
                },
            ))
        except Exception:
            logger.exception("Audit write failed for permission resolution of user %s", user.id)

        if self.metrics:
            self.metrics.resolutions.labels(provider=provider or "none").inc()

        logger.info(
            "PERMISSION_INHERITANCE_PROCESSED user=%s master_record=%s oauth=%d department=%d overrides=%d final=%d",
            user.id, record.id, len(record.oauth_permissions), len(record.department_permissions),
            len(considered), len(final_permissions),
        )

        return FinalResult(
            user_id=user.id,
            final_permissions=final_permissions,
            oauth_permissions=record.oauth_permissions,
            department_permissions=record.department_permissions,
            overrides=considered,
            master_record_id=record.id,
            skipped_overrides=skipped,
        )

    async def _supersede(self, user_id: str) -> None:
        for data in await self.store.find(MASTER_RECORDS, user_id=user_id, active=True):
            data["active"] = False
            await self.store.put(MASTER_RECORDS, data["id"], data)

    async def get_inheritance_status(self, user_id: str) -> Optional[InheritanceMasterRecord]:
        """The user's latest active snapshot, or None if the user was never resolved."""
        records = [InheritanceMasterRecord.from_dict(d)
                   for d in await self.store.find(MASTER_RECORDS, user_id=user_id, active=True)]
        if not records:
            return None
        return max(records, key=lambda r: (r.processed_at, r.id))

    async def get_inheritance_history(self, user_id: str) -> List[InheritanceMasterRecord]:
        """Every snapshot recorded for a user, newest first."""
        records = [InheritanceMasterRecord.from_dict(d)
                   for d in await self.store.find(MASTER_RECORDS, user_id=user_id)]
        records.sort(key=lambda r: (r.processed_at, r.id), reverse=True)
        return records
