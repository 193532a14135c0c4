"""
End-to-end tests for the permission engine facade.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from permengine import (
    CorporateConfig, EngineConfig, NormalizedProfile, PermissionEngine, Provider, User,
)
from permengine.core.types import AuditAction, DelegationType
from permengine.errors import ConfigurationError
from permengine.store import AUDIT_RECORDS


EMPLOYEE_PROFILE = NormalizedProfile(groups=["google_employee"], email="emp1@example.com")


class TestEngineScenarios:
    """Test delegation, revocation and emergency scenarios through the facade"""

    @pytest.mark.asyncio
    async def test_delegation_appears_in_next_resolution(self, engine, clock):
        """Test a 24h temporary delegation is included in the employee's next resolution"""
        delegation = await engine.create_delegation("mgr-1", "emp-1", ["team_management"],
                                                    DelegationType.TEMPORARY)
        assert delegation.expires_at == delegation.created_at + timedelta(hours=24)

        result = await engine.resolve(User("emp-1"), EMPLOYEE_PROFILE, Provider.GOOGLE)
        assert result.has("team_management")
        assert result.has("profile_management")
        # team_management includes basic_access
        assert not result.has("basic_access")

    @pytest.mark.asyncio
    async def test_revoked_delegation_removed_from_next_resolution(self, engine, directory):
        """Test revoking with reason 'mistake' removes the permission on the next resolution"""
        user = User("emp-1")
        delegation = await engine.create_delegation("mgr-1", "emp-1", ["team_management"], "temporary")
        await engine.resolve(user, EMPLOYEE_PROFILE, Provider.GOOGLE)
        assert "team_management" in directory.applied_permissions("emp-1")

        revoked = await engine.revoke_delegation(delegation.id, "mgr-1", "mistake")
        result = await engine.resolve(user, EMPLOYEE_PROFILE, Provider.GOOGLE)

        assert not result.has("team_management")
        assert "team_management" not in directory.applied_permissions("emp-1")
        assert revoked.revoked is True
        assert revoked.revoked_by == "mgr-1"

    @pytest.mark.asyncio
    async def test_emergency_swept_after_expiry(self, engine, clock, store):
        """Test a 4h elevation swept 5h later is deactivated and audited, the grant record untouched"""
        elevation = await engine.create_emergency_elevation("emp-1", ["admin_access"], "Outage", "sec-admin")
        grant_records = await engine.audit.get_records(user_id="emp-1", action=AuditAction.EMERGENCY_PERMISSION)
        original = await store.get(AUDIT_RECORDS, grant_records[0].id)

        clock.advance(timedelta(hours=5))
        result = await engine.reconcile()

        assert result.emergency_contexts_expired == [elevation.context]
        overrides = await engine.overrides.list_by_context(elevation.context)
        assert [o.active for o in overrides] == [False]
        assert overrides[0].deactivation_reason == "expired"

        expired = await engine.audit.get_records(user_id="emp-1", action=AuditAction.DELEGATION_EXPIRED)
        assert len(expired) == 1
        assert expired[0].reason == "expired"
        assert await store.get(AUDIT_RECORDS, grant_records[0].id) == original


class TestEngineResolve:
    """Test how the facade derives base and department permissions"""

    @pytest.mark.asyncio
    async def test_microsoft_groups_and_mapped_department(self, engine):
        """Test Microsoft groups map and the client mapping adds department permissions"""
        profile = NormalizedProfile(groups=["Helpdesk Admin"], department="Finance Team")
        corporate = CorporateConfig(client_name="acme", department_mapping={"finance": "finanzas"})

        result = await engine.resolve(User("emp-1"), profile, "microsoft", corporate)
        assert result.oauth_permissions == ["basic_admin", "password_reset", "user_support"]
        assert result.department_permissions == ["billing_read", "financial_access", "report_access"]

        status = await engine.get_inheritance_status("emp-1")
        assert status.provider == "microsoft"
        assert status.corporate_client == "acme"

    @pytest.mark.asyncio
    async def test_directory_department_included(self, engine, directory):
        """Test the department assigned in the directory contributes permissions"""
        directory.set_department("emp-1", "eventos")
        result = await engine.resolve(User("emp-1"), EMPLOYEE_PROFILE, Provider.GOOGLE)
        assert "event_management" in result.department_permissions
        assert result.has("event_management")

    @pytest.mark.asyncio
    async def test_resolution_metrics(self, engine, metrics):
        """Test resolutions are counted per provider"""
        await engine.resolve(User("emp-1"), EMPLOYEE_PROFILE, Provider.GOOGLE)
        assert metrics.value("permengine_resolutions_total", {"provider": "google"}) == 1
        assert metrics.value("permengine_resolution_duration_seconds_count") == 1


class TestEngineOverrides:
    """Test individually created overrides"""

    @pytest.mark.asyncio
    async def test_override_created_and_audited(self, engine):
        """Test create_permission_override persists and audits OVERRIDE_CREATED"""
        override = await engine.create_permission_override(
            "emp-1", "revoke", "basic_access", "Contractor", "sec-admin")
        assert override.priority == 2

        records = await engine.audit.get_records(user_id="emp-1", action=AuditAction.OVERRIDE_CREATED)
        assert len(records) == 1
        assert engine.audit.decrypt_metadata(records[0])["override_id"] == override.id

        result = await engine.resolve(User("emp-1"), EMPLOYEE_PROFILE, Provider.GOOGLE)
        assert not result.has("basic_access")

    @pytest.mark.asyncio
    async def test_override_rolled_back_on_audit_failure(self, engine):
        """Test a failed audit write deactivates the new override and re-raises"""
        engine.audit = AsyncMock()
        engine.audit.record.side_effect = RuntimeError("ledger unavailable")

        with pytest.raises(RuntimeError):
            await engine.create_permission_override("emp-1", "grant", "client_access", "Pilot", "sec-admin")
        assert await engine.overrides.list_active("emp-1") == []


class TestEngineConstruction:
    """Test engine construction"""

    @pytest.mark.asyncio
    async def test_new_validates_config(self):
        """Test an invalid configuration is rejected up front"""
        config = EngineConfig(baseline_framework="HIPAA")
        with pytest.raises(ConfigurationError):
            PermissionEngine.new(config)

    @pytest.mark.asyncio
    async def test_defaults_to_memory_components(self):
        """Test an engine can be built with nothing but a config"""
        engine = PermissionEngine.new(EngineConfig(in_process_timers=False))
        result = await engine.resolve(User("u1"), EMPLOYEE_PROFILE, Provider.GOOGLE)
        assert result.final_permissions == ["basic_access", "profile_management"]
        await engine.close()
