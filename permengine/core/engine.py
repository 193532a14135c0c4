# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Main permission engine facade.

Wires the record store, directory, audit ledger, override store, delegation
managers, expiration scheduler and resolver together, and exposes the
operations an upstream login or management flow calls.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Union

from ..audit import AuditRecorder
from ..common.utils import Clock, get_current_time, unique_sorted
from ..delegation import DelegationManager, EmergencyElevationManager, ExpirationScheduler
from ..directory import Directory, MemoryDirectory, PermissionSink
from ..hierarchy import PermissionHierarchy
from ..inheritance import GroupPermissionMapper, InheritanceResolver
from ..metrics import EngineMetrics
from ..overrides import OverrideStore, parse_override_type
from ..store import MemoryRecordStore, RecordStore
from .config import EngineConfig
from .types import (
    AuditAction, AuditEvent, CorporateConfig, Delegation, DelegationType, EmergencyElevation,
    FinalResult, InheritanceMasterRecord, NormalizedProfile, OverrideType, PermissionOverride,
    Provider, SweepResult, User,
)


logger = logging.getLogger(__name__)


class PermissionEngine:
    """
    Effective-permission engine.

    Use ``PermissionEngine.new()`` to construct an engine with a validated
    configuration. Every collaborator defaults to its in-memory
    implementation; pass a directory that also implements ``PermissionSink``
    or supply the sink separately.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: Optional[RecordStore] = None,
        directory: Optional[Directory] = None,
        sink: Optional[PermissionSink] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[EngineMetrics] = None,
    ):
        self.config = config
        self.clock = clock or get_current_time
        self.metrics = metrics or EngineMetrics()
        self.store = store or MemoryRecordStore()
        self.hierarchy = PermissionHierarchy.from_config(config)

        self.directory = directory or MemoryDirectory(self.hierarchy, config.department_permissions)
        if sink is None:
            if not isinstance(self.directory, PermissionSink):
                raise TypeError("A PermissionSink is required when the directory does not implement one")
            sink = self.directory
        self.sink = sink

        self.audit = AuditRecorder(self.store, config, self.clock, self.metrics)
        self.overrides = OverrideStore(self.store, config, self.clock)
        self.scheduler = ExpirationScheduler(self.store, self.overrides, config, self.clock, self.metrics)
        self.delegations = DelegationManager(
            self.store, self.overrides, self.audit, self.directory,
            config, self.clock, self.metrics, self.scheduler,
        )
        self.emergency = EmergencyElevationManager(
            self.overrides, self.audit, self.directory,
            config, self.clock, self.metrics, self.scheduler,
        )
        self.scheduler.delegations = self.delegations
        self.scheduler.emergency = self.emergency

        self.mapper = GroupPermissionMapper(config)
        self.resolver = InheritanceResolver(
            self.store, self.hierarchy, self.sink, self.audit, config, self.clock, self.metrics,
        )

    @classmethod
    def new(cls, config: Optional[EngineConfig] = None, **components) -> "PermissionEngine":
        """
        Create an engine after validating its configuration.

        Raises:
            ConfigurationError: if the configuration is invalid
        """
        config = config or EngineConfig()
        config.validate()
        return cls(config, **components)

    async def resolve(
        self,
        user: User,
        profile: NormalizedProfile,
        provider: Union[Provider, str],
        corporate_config: Optional[CorporateConfig] = None,
    ) -> FinalResult:
        """
        Compute, persist and apply a user's effective permissions after login.

        Base permissions come from the provider group mapping. Department
        permissions come from the user's directory department and from the
        department the client's mapping assigns to the profile.
        """
        provider = provider if isinstance(provider, Provider) else Provider(str(provider).lower())

        with self.metrics.time_resolution():
            base = self.mapper.permissions_for_profile(profile, provider)

            departments = []
            directory_department = await self.directory.get_user_department(user.id)
            if directory_department:
                departments.append(directory_department)
            mapped_department = self.mapper.department_for_profile(profile, corporate_config, provider)
            if mapped_department and mapped_department not in departments:
                departments.append(mapped_department)

            department_permissions: List[str] = []
            for department_id in departments:
                department_permissions.extend(
                    await self.directory.get_department_permissions(user.id, department_id))

            overrides = await self.overrides.list_active(user.id)
            return await self.resolver.resolve(
                user,
                base,
                unique_sorted(department_permissions),
                overrides,
                provider=provider.value,
                corporate_client=corporate_config.client_name if corporate_config else None,
            )

    async def create_permission_override(
        self,
        user_id: str,
        type: Union[OverrideType, str],
        permission: str,
        reason: str,
        granted_by: str,
        context: str = "manual",
        priority: Optional[int] = None,
        expires_at: Optional[datetime] = None,
    ) -> PermissionOverride:
        """Create an individual override and audit it. A failed audit write rolls the override back."""
        override_type = parse_override_type(type)
        override_id = await self.overrides.create(
            user_id, override_type, permission, reason, granted_by, context, priority, expires_at)
        override = await self.overrides.get(override_id)

        try:
            await self.audit.record(AuditEvent(
                user_id=user_id,
                action=AuditAction.OVERRIDE_CREATED,
                permission=permission,
                performed_by=granted_by,
                reason=reason,
                context=context,
                metadata={
                    "override_id": override_id,
                    "override_type": override_type.value,
                    "priority": override.priority,
                    "expires_at": override.expires_at.isoformat() if override.expires_at else None,
                },
            ))
        except Exception:
            await self.overrides.deactivate(override_id, "rolled_back")
            raise

        return override

    async def create_delegation(
        self,
        manager_id: str,
        employee_id: str,
        permissions: Sequence[str],
        delegation_type: Union[DelegationType, str],
        duration: Optional[timedelta] = None,
        reason: str = "",
        context: Optional[str] = None,
        auto_expire: bool = True,
    ) -> Delegation:
        return await self.delegations.create_delegation(
            manager_id, employee_id, permissions, delegation_type, duration, reason, context, auto_expire)

    async def revoke_delegation(self, delegation_id: str, revoked_by: str, reason: str = "") -> Delegation:
        return await self.delegations.revoke_delegation(delegation_id, revoked_by, reason)

    async def expire_delegation(self, delegation_id: str) -> Optional[Delegation]:
        return await self.delegations.expire_delegation(delegation_id)

    async def get_active_delegations(self, manager_id: str) -> List[Delegation]:
        return await self.delegations.get_active_delegations(manager_id)

    async def get_delegated_permissions(self, employee_id: str) -> List[Delegation]:
        return await self.delegations.get_delegated_permissions(employee_id)

    async def create_emergency_elevation(
        self,
        user_id: str,
        permissions: Sequence[str],
        reason: str,
        granted_by: str,
        duration: Optional[timedelta] = None,
    ) -> EmergencyElevation:
        return await self.emergency.create_emergency_elevation(user_id, permissions, reason, granted_by, duration)

    async def get_inheritance_status(self, user_id: str) -> Optional[InheritanceMasterRecord]:
        return await self.resolver.get_inheritance_status(user_id)

    async def reconcile(self) -> SweepResult:
        """Run one expiration sweep."""
        return await self.scheduler.reconcile()

    async def run_sweeper(self, interval: Optional[timedelta] = None) -> None:
        await self.scheduler.run_periodic(interval)

    async def close(self) -> None:
        """Cancel timers and release the record store."""
        await self.scheduler.close()
        await self.store.close()
        logger.info("Permission engine closed")
