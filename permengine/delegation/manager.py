# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Manager-to-employee permission delegation.

A delegation is materialized as one ``elevate`` override per permission,
sharing the context ``delegation_<id>``. Deactivating the delegation
deactivates that context.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

from ..common.utils import Clock, get_current_time
from ..core.config import EngineConfig
from ..core.types import AuditAction, AuditEvent, Delegation, DelegationType, OverrideType
from ..directory import Directory
from ..errors import (
    AuthorizationError, ErrorCode, LimitExceededError, NotFoundError, ValidationError,
)
from ..metrics import EngineMetrics
from ..overrides import OverrideStore
from ..store import DELEGATIONS, RecordStore
from .scheduler import ExpirationScheduler


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def parse_delegation_type(value: Union[DelegationType, str]) -> DelegationType:
    if isinstance(value, DelegationType):
        return value
    try:
        return DelegationType(str(value).lower())
    except ValueError:
        raise ValidationError(f"Unknown delegation type: {value}",
                              code=ErrorCode.UNKNOWN_DELEGATION_TYPE, field="delegation_type")


def validate_duration(duration: Optional[timedelta]) -> None:
    if duration is None:
        return
    if not isinstance(duration, timedelta):
        raise ValidationError("duration must be a timedelta", code=ErrorCode.INVALID_DURATION, field="duration")
    if duration <= timedelta(0):
        raise ValidationError("duration must be positive", code=ErrorCode.INVALID_DURATION, field="duration")


def clamp_duration(duration: Optional[timedelta], ceiling: timedelta) -> timedelta:
    """Requested duration capped at the ceiling; no request means the ceiling."""
    if duration is None:
        return ceiling
    return min(duration, ceiling)


class DelegationManager:
    """
    Creates, revokes and expires delegations.

    Validation order on creation: request shape, delegatability, the
    manager's own permissions, org seniority, then the per-type ceiling.
    """

    def __init__(
        self,
        store: RecordStore,
        overrides: OverrideStore,
        audit,
        directory: Directory,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[EngineMetrics] = None,
        scheduler: Optional[ExpirationScheduler] = None,
    ):
        self.store = store
        self.overrides = overrides
        self.audit = audit
        self.directory = directory
        self.config = config or EngineConfig()
        self.clock = clock or get_current_time
        self.metrics = metrics
        self.scheduler = scheduler

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
        """
        Delegate permissions from a manager to an employee.

        Raises:
            ValidationError: malformed request or a permission that may not be delegated
            AuthorizationError: the manager lacks a permission or does not outrank the employee
            LimitExceededError: the manager already has the maximum active delegations of this type
        """
        dtype = parse_delegation_type(delegation_type)
        if not manager_id or not employee_id:
            raise ValidationError("manager_id and employee_id are required", code=ErrorCode.MISSING_PARAMETER)
        if not permissions:
            raise ValidationError("At least one permission is required",
                                  code=ErrorCode.MISSING_PARAMETER, field="permissions")
        validate_duration(duration)

        requested = list(dict.fromkeys(permissions))
        self._check_delegatable(requested)
        await self._check_manager_holds(manager_id, requested)
        await self._check_seniority(manager_id, employee_id)

        rules = self.config.delegation_type_config(dtype)
        active_count = len([d for d in await self.get_active_delegations(manager_id)
                            if d.delegation_type == dtype])
        if active_count >= rules.max_active:
            logger.warning("Delegation limit reached for manager %s type %s (%d)",
                           manager_id, dtype.value, rules.max_active)
            raise LimitExceededError(
                f"Maximum active {dtype.value} delegations ({rules.max_active}) reached",
                limit=rules.max_active,
            )

        now = self.clock()
        delegation = Delegation(
            manager_id=manager_id,
            employee_id=employee_id,
            permissions=requested,
            delegation_type=dtype,
            expires_at=now + clamp_duration(duration, rules.max_duration),
            reason=reason,
            context=context,
            auto_expire=auto_expire and rules.auto_expire,
            created_at=now,
        )
        await self.store.put(DELEGATIONS, delegation.id, delegation.to_dict())

        try:
            for permission in requested:
                await self.overrides.create(
                    user_id=employee_id,
                    type=OverrideType.ELEVATE,
                    permission=permission,
                    reason=f"Delegated by {manager_id}: {reason}" if reason else f"Delegated by {manager_id}",
                    granted_by=manager_id,
                    context=delegation.override_context,
                    priority=self.config.delegation_override_priority,
                    expires_at=delegation.expires_at,
                )
            if delegation.auto_expire and self.scheduler:
                await self.scheduler.schedule(delegation.id, delegation.expires_at)

            metadata = {
                "delegation_id": delegation.id,
                "delegation_type": dtype.value,
                "audit_level": rules.audit_level,
                "requires_approval": rules.requires_approval,
                "expires_at": delegation.expires_at.isoformat(),
                "context": context,
            }
            for permission in requested:
                await self.audit.record(AuditEvent(
                    user_id=employee_id,
                    action=AuditAction.PERMISSION_DELEGATED,
                    permission=permission,
                    performed_by=manager_id,
                    reason=reason or f"{dtype.value} delegation",
                    context=delegation.override_context,
                    metadata=metadata,
                ))
        except Exception:
            await self._roll_back(delegation)
            raise

        if self.metrics:
            self.metrics.delegations.labels(delegation_type=dtype.value, outcome="created").inc()

        logger.info(
            "DELEGATION_CREATED delegation_id=%s manager=%s employee=%s type=%s permissions=%s expires_at=%s",
            delegation.id, manager_id, employee_id, dtype.value, ",".join(requested),
            delegation.expires_at.isoformat(),
        )
        return delegation

    def _check_delegatable(self, permissions: List[str]) -> None:
        for permission in permissions:
            if permission in self.config.non_delegatable_permissions:
                logger.warning("Rejected delegation of non-delegatable permission %s", permission)
                raise ValidationError(f"Permission '{permission}' cannot be delegated",
                                      code=ErrorCode.NON_DELEGATABLE_PERMISSION, field="permissions")
            if permission not in self.config.delegatable_permissions:
                logger.warning("Rejected delegation of permission %s outside the delegatable list", permission)
                raise ValidationError(f"Permission '{permission}' is not in the delegatable list",
                                      code=ErrorCode.PERMISSION_NOT_DELEGATABLE, field="permissions")

    async def _check_manager_holds(self, manager_id: str, permissions: List[str]) -> None:
        for permission in permissions:
            if not await self.directory.has_permission(manager_id, permission):
                raise AuthorizationError(f"Manager does not have permission: {permission}",
                                         code=ErrorCode.INSUFFICIENT_PERMISSIONS, actor_id=manager_id)

    async def _check_seniority(self, manager_id: str, employee_id: str) -> None:
        levels = await self.directory.shared_levels(manager_id, employee_id)
        if levels is None:
            raise AuthorizationError("Manager and employee share no active organizational unit",
                                     code=ErrorCode.INSUFFICIENT_SENIORITY, actor_id=manager_id)
        manager_level, employee_level = levels
        if manager_level <= employee_level:
            raise AuthorizationError(
                f"Manager level {manager_level.name} does not exceed employee level {employee_level.name}",
                code=ErrorCode.INSUFFICIENT_SENIORITY, actor_id=manager_id,
            )

    async def _roll_back(self, delegation: Delegation) -> None:
        logger.error("Rolling back delegation %s after a failed write", delegation.id)
        now = self.clock()
        delegation.active = False
        delegation.revoked_at = now
        delegation.revoked_by = SYSTEM_ACTOR
        delegation.revocation_reason = "rolled_back"
        await self.store.put(DELEGATIONS, delegation.id, delegation.to_dict())
        await self.overrides.deactivate_by_context(delegation.override_context, "rolled_back")
        if self.scheduler:
            await self.scheduler.complete(delegation.id)

    async def revoke_delegation(self, delegation_id: str, revoked_by: str, reason: str = "") -> Delegation:
        """
        Revoke an active delegation. Revoking an inactive one returns it unchanged.

        Raises:
            NotFoundError: unknown delegation id
            AuthorizationError: revoker is not the manager, a blanket admin, or senior to the manager
        """
        delegation = await self.get_delegation(delegation_id)
        if delegation is None:
            raise NotFoundError(f"Delegation {delegation_id} not found", resource_id=delegation_id)
        if not delegation.active:
            return delegation

        await self._check_revoker(revoked_by, delegation)

        now = self.clock()
        delegation.active = False
        delegation.revoked_at = now
        delegation.revoked_by = revoked_by
        delegation.revocation_reason = reason
        await self._deactivate(delegation, "delegation_revoked")

        await self._audit_removal(delegation, AuditAction.PERMISSION_REVOKED, revoked_by,
                                  reason or "delegation revoked")
        if self.metrics:
            self.metrics.delegations.labels(delegation_type=delegation.delegation_type.value,
                                            outcome="revoked").inc()

        logger.info("DELEGATION_REVOKED delegation_id=%s revoked_by=%s reason=%s",
                    delegation.id, revoked_by, reason)
        return delegation

    async def _check_revoker(self, revoked_by: str, delegation: Delegation) -> None:
        if revoked_by == delegation.manager_id:
            return
        for permission in self.config.blanket_admin_permissions:
            if await self.directory.has_permission(revoked_by, permission):
                return
        levels = await self.directory.shared_levels(revoked_by, delegation.manager_id)
        if levels is not None and levels[0] > levels[1]:
            return
        raise AuthorizationError("Insufficient authority to revoke delegation",
                                 code=ErrorCode.UNAUTHORIZED_REVOKER, actor_id=revoked_by)

    async def expire_delegation(self, delegation_id: str,
                                expired_by: str = SYSTEM_ACTOR) -> Optional[Delegation]:
        """Expire a delegation. Unknown or already inactive delegations are left alone."""
        delegation = await self.get_delegation(delegation_id)
        if delegation is None or not delegation.active:
            return delegation

        delegation.active = False
        delegation.expired_at = self.clock()
        delegation.expired_by = expired_by
        await self._deactivate(delegation, "delegation_expired")

        await self._audit_removal(delegation, AuditAction.DELEGATION_EXPIRED, expired_by, "expired")
        if self.metrics:
            self.metrics.delegations.labels(delegation_type=delegation.delegation_type.value,
                                            outcome="expired").inc()

        logger.info("DELEGATION_EXPIRED delegation_id=%s employee=%s", delegation.id, delegation.employee_id)
        return delegation

    async def _deactivate(self, delegation: Delegation, reason: str) -> None:
        await self.store.put(DELEGATIONS, delegation.id, delegation.to_dict())
        await self.overrides.deactivate_by_context(delegation.override_context, reason)
        if self.scheduler:
            await self.scheduler.complete(delegation.id)

    async def _audit_removal(self, delegation: Delegation, action: str, actor: str, reason: str) -> None:
        metadata: Dict[str, Any] = {
            "delegation_id": delegation.id,
            "delegation_type": delegation.delegation_type.value,
            "manager_id": delegation.manager_id,
        }
        try:
            for permission in delegation.permissions:
                await self.audit.record(AuditEvent(
                    user_id=delegation.employee_id,
                    action=action,
                    permission=permission,
                    performed_by=actor,
                    reason=reason,
                    context=delegation.override_context,
                    metadata=metadata,
                ))
        except Exception:
            logger.exception("Audit write failed for %s of delegation %s", action, delegation.id)

    async def get_delegation(self, delegation_id: str) -> Optional[Delegation]:
        data = await self.store.get(DELEGATIONS, delegation_id)
        return Delegation.from_dict(data) if data else None

    async def _effective(self, **filters) -> List[Delegation]:
        now = self.clock()
        delegations = [Delegation.from_dict(d)
                       for d in await self.store.find(DELEGATIONS, active=True, **filters)]
        delegations = [d for d in delegations if d.is_effective(now)]
        delegations.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return delegations

    async def get_active_delegations(self, manager_id: str) -> List[Delegation]:
        """Active, unexpired delegations granted by a manager, newest first."""
        return await self._effective(manager_id=manager_id)

    async def get_delegated_permissions(self, employee_id: str) -> List[Delegation]:
        """Active, unexpired delegations received by an employee, newest first."""
        return await self._effective(employee_id=employee_id)

    async def validate_delegated_permission(self, employee_id: str, permission: str) -> bool:
        for delegation in await self.get_delegated_permissions(employee_id):
            if permission in delegation.permissions:
                return True
        return False

    async def get_delegation_history(self, user_id: str,
                                     since: Optional[datetime] = None) -> List[Delegation]:
        """Every delegation a user granted or received, newest first."""
        found = {}
        for key in ("manager_id", "employee_id"):
            for data in await self.store.find(DELEGATIONS, **{key: user_id}):
                found[data["id"]] = Delegation.from_dict(data)
        history = [d for d in found.values() if since is None or d.created_at >= since]
        history.sort(key=lambda d: (d.created_at, d.id), reverse=True)
        return history
