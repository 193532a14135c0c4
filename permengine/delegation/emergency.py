# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Break-glass emergency elevation.
"""

import logging
from datetime import timedelta
from typing import Optional, Sequence

from ..common.utils import Clock, generate_id, get_current_time, to_unix_ms
from ..core.config import EngineConfig
from ..core.types import AuditAction, AuditEvent, EmergencyElevation, OverrideType, Severity
from ..directory import Directory
from ..errors import AuthorizationError, ErrorCode, ValidationError
from ..metrics import EngineMetrics
from ..overrides import EMERGENCY_CONTEXT_PREFIX, OverrideStore
from .manager import SYSTEM_ACTOR, clamp_duration, validate_duration
from .scheduler import EMERGENCY_KIND, ExpirationScheduler


logger = logging.getLogger(__name__)


class EmergencyElevationManager:
    """Grants short-lived, high-priority elevations to emergency-capable operators."""

    def __init__(
        self,
        overrides: OverrideStore,
        audit,
        directory: Directory,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[EngineMetrics] = None,
        scheduler: Optional[ExpirationScheduler] = None,
    ):
        self.overrides = overrides
        self.audit = audit
        self.directory = directory
        self.config = config or EngineConfig()
        self.clock = clock or get_current_time
        self.metrics = metrics
        self.scheduler = scheduler

    async def create_emergency_elevation(
        self,
        user_id: str,
        permissions: Sequence[str],
        reason: str,
        granted_by: str,
        duration: Optional[timedelta] = None,
    ) -> EmergencyElevation:
        """
        Elevate a user for at most the emergency ceiling (4h by default).

        Every granted permission is audited at critical severity and queued
        for immediate review.
        """
        if not user_id:
            raise ValidationError("user_id is required", code=ErrorCode.MISSING_PARAMETER, field="user_id")
        if not permissions:
            raise ValidationError("At least one permission is required",
                                  code=ErrorCode.MISSING_PARAMETER, field="permissions")
        if not reason or not reason.strip():
            raise ValidationError("Emergency elevation requires a reason",
                                  code=ErrorCode.MISSING_PARAMETER, field="reason")
        validate_duration(duration)

        capable = False
        for permission in self.config.emergency_capable_permissions:
            if await self.directory.has_permission(granted_by, permission):
                capable = True
                break
        if not capable:
            logger.warning("Emergency elevation refused: %s holds no emergency-capable permission", granted_by)
            raise AuthorizationError("Insufficient permissions for emergency elevation",
                                     code=ErrorCode.NOT_EMERGENCY_CAPABLE, actor_id=granted_by)

        now = self.clock()
        effective = clamp_duration(duration, self.config.emergency_max_duration)
        elevation = EmergencyElevation(
            user_id=user_id,
            permissions=list(dict.fromkeys(permissions)),
            granted_by=granted_by,
            reason=reason,
            context=f"{EMERGENCY_CONTEXT_PREFIX}{to_unix_ms(now)}_{generate_id()[:8]}",
            expires_at=now + effective,
            created_at=now,
        )

        try:
            for permission in elevation.permissions:
                override_id = await self.overrides.create(
                    user_id=user_id,
                    type=OverrideType.ELEVATE,
                    permission=permission,
                    reason=f"EMERGENCY: {reason}",
                    granted_by=granted_by,
                    context=elevation.context,
                    priority=self.config.emergency_override_priority,
                    expires_at=elevation.expires_at,
                )
                elevation.override_ids.append(override_id)

            if self.scheduler:
                await self.scheduler.schedule(elevation.context, elevation.expires_at, resource_kind=EMERGENCY_KIND)

            for permission in elevation.permissions:
                await self.audit.record(AuditEvent(
                    user_id=user_id,
                    action=AuditAction.EMERGENCY_PERMISSION,
                    permission=permission,
                    performed_by=granted_by,
                    reason=reason,
                    context=elevation.context,
                    severity=Severity.CRITICAL,
                    requires_review=True,
                    metadata={
                        "emergency_context": elevation.context,
                        "duration_seconds": int(effective.total_seconds()),
                        "expires_at": elevation.expires_at.isoformat(),
                    },
                ))
        except Exception:
            logger.error("Rolling back emergency elevation %s after a failed write", elevation.context)
            await self.overrides.deactivate_by_context(elevation.context, "rolled_back")
            if self.scheduler:
                await self.scheduler.complete(elevation.context)
            raise

        if self.metrics:
            self.metrics.emergency_elevations.inc()

        logger.warning(
            "EMERGENCY_ELEVATION_GRANTED user=%s granted_by=%s permissions=%s context=%s expires_at=%s",
            user_id, granted_by, ",".join(elevation.permissions), elevation.context,
            elevation.expires_at.isoformat(),
        )
        return elevation

    async def expire_elevation(self, context: str, expired_by: str = SYSTEM_ACTOR) -> int:
        """Deactivate what remains of an emergency elevation. Returns the number of overrides expired."""
        remaining = await self.overrides.list_by_context(context, active_only=True)
        if not remaining:
            if self.scheduler:
                await self.scheduler.complete(context)
            return 0

        count = await self.overrides.deactivate_by_context(context, "expired")
        if self.scheduler:
            await self.scheduler.complete(context)

        try:
            for override in remaining:
                await self.audit.record(AuditEvent(
                    user_id=override.user_id,
                    action=AuditAction.DELEGATION_EXPIRED,
                    permission=override.permission,
                    performed_by=expired_by,
                    reason="expired",
                    context=context,
                    metadata={"emergency_context": context, "override_id": override.id},
                ))
        except Exception:
            logger.exception("Audit write failed for expiry of emergency elevation %s", context)

        logger.info("EMERGENCY_ELEVATION_EXPIRED context=%s overrides=%d", context, count)
        return count
