"""
Tests for emergency elevation.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from permengine.common.utils import to_unix_ms
from permengine.core.types import AuditAction, OverrideType, Severity
from permengine.errors import AuthorizationError, ErrorCode, ValidationError


class TestEmergencyElevation:
    """Test break-glass elevation"""

    @pytest.mark.asyncio
    async def test_duration_clamped_to_four_hours(self, engine, clock):
        """Test an 8h request is capped at 4h"""
        elevation = await engine.create_emergency_elevation(
            "emp-1", ["admin_access"], "Production outage", "sec-admin", duration=timedelta(hours=8))
        assert elevation.expires_at == clock() + timedelta(hours=4)

    @pytest.mark.asyncio
    async def test_overrides_use_emergency_context_and_priority(self, engine, clock):
        """Test overrides are priority-95 elevations in an emergency_<ms>_<suffix> context"""
        elevation = await engine.create_emergency_elevation(
            "emp-1", ["admin_access", "system_support"], "Outage", "oncall")

        assert elevation.context.startswith(f"emergency_{to_unix_ms(clock())}_")
        overrides = await engine.overrides.list_by_context(elevation.context)
        assert sorted(o.id for o in overrides) == sorted(elevation.override_ids)
        assert {o.type for o in overrides} == {OverrideType.ELEVATE}
        assert {o.priority for o in overrides} == {95}

    @pytest.mark.asyncio
    async def test_audited_as_critical_with_review(self, engine, clock):
        """Test each permission writes a critical record and a review task due in 1h"""
        await engine.create_emergency_elevation("emp-1", ["admin_access"], "Outage", "sec-admin")
        records = await engine.audit.get_records(user_id="emp-1", action=AuditAction.EMERGENCY_PERMISSION)

        assert len(records) == 1
        assert records[0].severity == Severity.CRITICAL
        assert records[0].requires_review is True
        tasks = await engine.audit.get_review_tasks(records[0].id)
        assert len(tasks) == 1
        assert tasks[0].due_date == clock() + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_requires_emergency_capable_grantor(self, engine):
        """Test a grantor without an emergency-capable permission is refused"""
        with pytest.raises(AuthorizationError) as exc_info:
            await engine.create_emergency_elevation("emp-1", ["admin_access"], "Outage", "mgr-1")
        assert exc_info.value.code == ErrorCode.NOT_EMERGENCY_CAPABLE

    @pytest.mark.asyncio
    async def test_reason_required(self, engine):
        """Test a blank reason is rejected"""
        with pytest.raises(ValidationError):
            await engine.create_emergency_elevation("emp-1", ["admin_access"], "  ", "sec-admin")

    @pytest.mark.asyncio
    async def test_permissions_required(self, engine):
        """Test an empty permission list is rejected"""
        with pytest.raises(ValidationError):
            await engine.create_emergency_elevation("emp-1", [], "Outage", "sec-admin")

    @pytest.mark.asyncio
    async def test_elevation_outranks_delegation_restrict(self, engine, clock):
        """Test an emergency grant beats a priority-90 restrict on the same permission"""
        await engine.create_permission_override("emp-1", "restrict", "client_access", "Policy", "sec-admin",
                                                priority=90)
        await engine.create_emergency_elevation("emp-1", ["client_access"], "Outage", "sec-admin")
        active = await engine.overrides.list_active("emp-1")
        assert active[0].priority == 95
        assert active[0].type == OverrideType.ELEVATE

    @pytest.mark.asyncio
    async def test_expire_elevation(self, engine):
        """Test manual expiry deactivates overrides once and audits per permission"""
        elevation = await engine.create_emergency_elevation(
            "emp-1", ["admin_access", "system_support"], "Outage", "sec-admin")

        assert await engine.emergency.expire_elevation(elevation.context) == 2
        assert await engine.emergency.expire_elevation(elevation.context) == 0
        records = await engine.audit.get_records(user_id="emp-1", action=AuditAction.DELEGATION_EXPIRED)
        assert sorted(r.permission for r in records) == ["admin_access", "system_support"]

    @pytest.mark.asyncio
    async def test_audit_failure_rolls_back(self, engine):
        """Test a failed audit write deactivates the emergency overrides"""
        engine.emergency.audit = AsyncMock()
        engine.emergency.audit.record.side_effect = RuntimeError("ledger unavailable")

        with pytest.raises(RuntimeError):
            await engine.create_emergency_elevation("emp-1", ["admin_access"], "Outage", "sec-admin")
        assert await engine.overrides.list_active("emp-1") == []

    @pytest.mark.asyncio
    async def test_elevation_counted(self, engine, metrics):
        """Test the emergency elevation counter increments"""
        await engine.create_emergency_elevation("emp-1", ["admin_access"], "Outage", "sec-admin")
        assert metrics.value("permengine_emergency_elevations_total") == 1

    @pytest.mark.asyncio
    async def test_same_instant_elevations_kept_apart(self, engine, clock):
        """Test two elevations created at the same instant expire independently"""
        short = await engine.create_emergency_elevation("emp-1", ["admin_access"], "Outage", "sec-admin",
                                                        duration=timedelta(hours=1))
        long = await engine.create_emergency_elevation("emp-2", ["system_support"], "Outage", "sec-admin",
                                                       duration=timedelta(hours=3))
        assert short.context != long.context

        clock.advance(timedelta(hours=2))
        result = await engine.reconcile()

        assert result.emergency_contexts_expired == [short.context]
        assert [o.permission for o in await engine.overrides.list_active("emp-2")] == ["system_support"]
