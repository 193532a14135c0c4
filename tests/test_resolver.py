"""
Tests for permission resolution and the inheritance snapshot.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from permengine.audit import AuditRecorder
from permengine.core.types import (
    AuditAction, InheritanceMasterRecord, OverrideType, PermissionOverride, User,
)
from permengine.hierarchy import PermissionHierarchy
from permengine.inheritance import InheritanceResolver, SINK_SOURCE


@pytest.fixture
def audit(store, config, clock, metrics):
    return AuditRecorder(store, config, clock, metrics)


@pytest.fixture
def resolver(store, directory, audit, config, clock, metrics):
    return InheritanceResolver(store, PermissionHierarchy(), directory, audit, config, clock, metrics)


def make_override(clock, type_, permission, priority, seconds=0):
    return PermissionOverride(
        user_id="u1", type=type_, permission=permission, priority=priority,
        created_at=clock() + timedelta(seconds=seconds),
    )


class TestOverridePriority:
    """Test priority-first application of overrides"""

    @pytest.mark.asyncio
    async def test_higher_priority_restrict_beats_older_grant(self, resolver, clock):
        """Test grant@50 then restrict@90 leaves the permission out"""
        overrides = [
            make_override(clock, OverrideType.GRANT, "report_access", 50, seconds=0),
            make_override(clock, OverrideType.RESTRICT, "report_access", 90, seconds=1),
        ]
        result = await resolver.resolve(User("u1"), [], [], overrides)
        assert not result.has("report_access")

    @pytest.mark.asyncio
    async def test_higher_priority_restrict_beats_newer_grant(self, resolver, clock):
        """Test restrict@90 then grant@50 still leaves the permission out"""
        overrides = [
            make_override(clock, OverrideType.RESTRICT, "report_access", 90, seconds=0),
            make_override(clock, OverrideType.GRANT, "report_access", 50, seconds=1),
        ]
        result = await resolver.resolve(User("u1"), [], [], overrides)
        assert not result.has("report_access")

    @pytest.mark.asyncio
    async def test_higher_priority_grant_beats_restrict(self, resolver, clock):
        """Test grant@90 wins over restrict@50 in either creation order"""
        for first, second in ((OverrideType.GRANT, OverrideType.RESTRICT),
                              (OverrideType.RESTRICT, OverrideType.GRANT)):
            overrides = [
                make_override(clock, first, "report_access", 90 if first == OverrideType.GRANT else 50, 0),
                make_override(clock, second, "report_access", 90 if second == OverrideType.GRANT else 50, 1),
            ]
            result = await resolver.resolve(User("u1"), [], [], overrides)
            assert result.has("report_access")

    @pytest.mark.asyncio
    async def test_revoke_removes_inherited_permission(self, resolver, clock):
        """Test a revoke override removes an identity-provider permission"""
        overrides = [make_override(clock, OverrideType.REVOKE, "basic_access", 2)]
        result = await resolver.resolve(User("u1"), ["basic_access", "profile_management"], [], overrides)
        assert result.final_permissions == ["profile_management"]

    @pytest.mark.asyncio
    async def test_equal_priority_removal_wins(self, resolver, clock):
        """Test revoke beats grant at the same priority"""
        overrides = [
            make_override(clock, OverrideType.GRANT, "report_access", 5, seconds=1),
            make_override(clock, OverrideType.REVOKE, "report_access", 5, seconds=0),
        ]
        result = await resolver.resolve(User("u1"), ["report_access"], [], overrides)
        assert not result.has("report_access")

    @pytest.mark.asyncio
    async def test_unknown_override_type_skipped(self, resolver, clock, metrics):
        """Test an override with an unrecognized type is skipped without failing resolution"""
        bogus = make_override(clock, OverrideType.GRANT, "report_access", 99)
        bogus.type = "suspend"
        grant = make_override(clock, OverrideType.GRANT, "client_access", 1)

        result = await resolver.resolve(User("u1"), [], [], [bogus, grant])
        assert result.final_permissions == ["client_access"]
        assert result.skipped_overrides == [bogus.id]
        assert metrics.value("permengine_skipped_overrides_total") == 1


class TestResolution:
    """Test union, collapse, snapshot and sink behaviour"""

    @pytest.mark.asyncio
    async def test_union_then_collapse(self, resolver):
        """Test base and department sets merge and included permissions collapse"""
        result = await resolver.resolve(
            User("u1"), ["admin_full", "basic_access"], ["team_management", "financial_access"], [])
        assert result.final_permissions == ["admin_full", "financial_access"]
        assert result.oauth_permissions == ["admin_full", "basic_access"]
        assert result.department_permissions == ["financial_access", "team_management"]

    @pytest.mark.asyncio
    async def test_sink_replaces_applied_permissions(self, resolver, directory):
        """Test a later resolution removes permissions the earlier one applied"""
        user = User("u1")
        await resolver.resolve(user, ["report_access", "basic_access"], [], [])
        await resolver.resolve(user, ["basic_access"], [], [])

        assert directory.applied_permissions("u1") == ["basic_access"]
        assert directory.permissions_source("u1") == SINK_SOURCE
        assert user.permissions == ["basic_access"]

    @pytest.mark.asyncio
    async def test_new_snapshot_supersedes_previous(self, resolver):
        """Test only the latest master record stays active"""
        first = await resolver.resolve(User("u1"), ["basic_access"], [], [])
        second = await resolver.resolve(User("u1"), ["report_access"], [], [])

        status = await resolver.get_inheritance_status("u1")
        assert status.id == second.master_record_id

        history = await resolver.get_inheritance_history("u1")
        by_id = {r.id: r for r in history}
        assert by_id[first.master_record_id].active is False
        assert by_id[first.master_record_id].final_permissions == ["basic_access"]

    @pytest.mark.asyncio
    async def test_status_absent_for_unknown_user(self, resolver):
        """Test a never-resolved user has no snapshot"""
        assert await resolver.get_inheritance_status("nobody") is None

    @pytest.mark.asyncio
    async def test_master_record_round_trip(self, resolver, clock):
        """Test final permissions survive serialize and restore as a set"""
        overrides = [make_override(clock, OverrideType.ELEVATE, "client_access", 90)]
        result = await resolver.resolve(User("u1"), ["basic_access", "audit_read"], ["report_access"], overrides)

        status = await resolver.get_inheritance_status("u1")
        restored = InheritanceMasterRecord.from_dict(status.to_dict())
        assert set(restored.final_permissions) == set(result.final_permissions)
        assert restored.overrides[0]["permission"] == "client_access"
        assert restored.processed_at == clock()

    @pytest.mark.asyncio
    async def test_resolution_is_audited(self, resolver, audit):
        """Test each resolution writes a PERMISSION_INHERITED record"""
        await resolver.resolve(User("u1"), ["basic_access"], [], [], provider="google")
        records = await audit.get_records(user_id="u1", action=AuditAction.PERMISSION_INHERITED)
        assert len(records) == 1
        assert records[0].permission == "basic_access"
        assert audit.decrypt_metadata(records[0])["provider"] == "google"

    @pytest.mark.asyncio
    async def test_empty_result_audited_as_none(self, resolver, audit):
        """Test a resolution yielding nothing is still audited"""
        await resolver.resolve(User("u1"), [], [], [])
        records = await audit.get_records(user_id="u1")
        assert records[0].permission == "none"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_undo_resolution(self, resolver, directory):
        """Test a failed audit write is logged and the resolution still applies"""
        resolver.audit = AsyncMock()
        resolver.audit.record.side_effect = RuntimeError("ledger unavailable")

        result = await resolver.resolve(User("u1"), ["basic_access"], [], [])
        assert result.final_permissions == ["basic_access"]
        assert directory.applied_permissions("u1") == ["basic_access"]
