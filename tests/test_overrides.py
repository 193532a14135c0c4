"""
Tests for the override store.
"""

from datetime import timedelta

import pytest

from permengine.core.types import OverrideType, PermissionOverride
from permengine.errors import ErrorCode, ValidationError
from permengine.overrides import OverrideStore, override_sort_key
from permengine.store import OVERRIDES


@pytest.fixture
def overrides(store, config, clock):
    return OverrideStore(store, config, clock)


class TestOverrideCreation:
    """Test override creation and validation"""

    @pytest.mark.asyncio
    async def test_missing_priority_uses_type_default(self, overrides):
        """Test grant/revoke/elevate/restrict default to 1/2/3/4"""
        expected = {"grant": 1, "revoke": 2, "elevate": 3, "restrict": 4}
        for type_name, priority in expected.items():
            override_id = await overrides.create("u1", type_name, "report_access", "r", "admin")
            override = await overrides.get(override_id)
            assert override.priority == priority
            assert override.type == OverrideType(type_name)

    @pytest.mark.asyncio
    async def test_explicit_priority_wins_over_default(self, overrides):
        """Test an explicit priority of zero is kept"""
        override_id = await overrides.create("u1", OverrideType.RESTRICT, "report_access", priority=0)
        override = await overrides.get(override_id)
        assert override.priority == 0

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, overrides):
        """Test unknown override types raise ValidationError"""
        with pytest.raises(ValidationError) as exc_info:
            await overrides.create("u1", "suspend", "report_access")
        assert exc_info.value.code == ErrorCode.UNKNOWN_OVERRIDE_TYPE

    @pytest.mark.asyncio
    async def test_past_expiry_rejected(self, overrides, clock):
        """Test creating an already expired grant is rejected"""
        with pytest.raises(ValidationError) as exc_info:
            await overrides.create("u1", "grant", "report_access", expires_at=clock() - timedelta(seconds=1))
        assert exc_info.value.code == ErrorCode.EXPIRED_GRANT

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, overrides):
        """Test read paths report absence with None"""
        assert await overrides.get("ovr_missing") is None


class TestListActive:
    """Test retrieval of overrides currently in force"""

    @pytest.mark.asyncio
    async def test_sorted_by_priority_descending(self, overrides):
        """Test overrides come back highest priority first"""
        await overrides.create("u1", "grant", "a", priority=10)
        await overrides.create("u1", "grant", "b", priority=50)
        await overrides.create("u1", "grant", "c", priority=30)

        active = await overrides.list_active("u1")
        assert [o.permission for o in active] == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_lazy_expiration_deactivates(self, overrides, clock, store):
        """Test an overdue override is deactivated with reason 'expired' and excluded"""
        override_id = await overrides.create("u1", "grant", "report_access",
                                             expires_at=clock() + timedelta(hours=1))
        clock.advance(timedelta(hours=2))

        assert await overrides.list_active("u1") == []
        stored = await overrides.get(override_id)
        assert stored.active is False
        assert stored.deactivation_reason == "expired"
        assert stored.deactivated_at == clock()

    @pytest.mark.asyncio
    async def test_other_users_not_returned(self, overrides):
        """Test overrides are user scoped"""
        await overrides.create("u1", "grant", "a")
        await overrides.create("u2", "grant", "b")
        assert [o.permission for o in await overrides.list_active("u2")] == ["b"]

    @pytest.mark.asyncio
    async def test_unrecognized_stored_type_skipped(self, overrides, store, clock):
        """Test a stored override with a foreign type does not break retrieval"""
        bad = PermissionOverride("u1", OverrideType.GRANT, "a", created_at=clock()).to_dict()
        bad["type"] = "suspend"
        await store.put(OVERRIDES, bad["id"], bad)
        await overrides.create("u1", "grant", "b")

        assert [o.permission for o in await overrides.list_active("u1")] == ["b"]


class TestDeactivation:
    """Test bulk and single deactivation"""

    @pytest.mark.asyncio
    async def test_deactivate_by_context(self, overrides):
        """Test every active override in a context is deactivated"""
        await overrides.create("u1", "elevate", "a", context="delegation_x")
        await overrides.create("u1", "elevate", "b", context="delegation_x")
        await overrides.create("u1", "elevate", "c", context="other")

        assert await overrides.deactivate_by_context("delegation_x", "delegation_revoked") == 2
        assert await overrides.deactivate_by_context("delegation_x", "delegation_revoked") == 0
        assert [o.permission for o in await overrides.list_active("u1")] == ["c"]

        in_context = await overrides.list_by_context("delegation_x")
        assert {o.deactivation_reason for o in in_context} == {"delegation_revoked"}

    @pytest.mark.asyncio
    async def test_deactivate_single_is_idempotent(self, overrides):
        """Test deactivating twice reports False the second time"""
        override_id = await overrides.create("u1", "grant", "a")
        assert await overrides.deactivate(override_id, "manual") is True
        assert await overrides.deactivate(override_id, "manual") is False
        assert await overrides.deactivate("ovr_missing", "manual") is False

    @pytest.mark.asyncio
    async def test_expire_overdue(self, overrides, clock):
        """Test the eager sweep expires only overdue overrides"""
        await overrides.create("u1", "grant", "a", expires_at=clock() + timedelta(minutes=5))
        await overrides.create("u1", "grant", "b", expires_at=clock() + timedelta(days=1))
        await overrides.create("u1", "grant", "c")
        clock.advance(timedelta(hours=1))

        expired = await overrides.expire_overdue()
        assert [o.permission for o in expired] == ["a"]
        assert await overrides.expire_overdue() == []


class TestSortKey:
    """Test tie-breaking between overrides of equal priority"""

    def test_removing_types_before_adding(self, clock):
        """Test restrict sorts before grant at equal priority"""
        grant = PermissionOverride("u1", OverrideType.GRANT, "a", priority=5, created_at=clock())
        restrict = PermissionOverride("u1", OverrideType.RESTRICT, "a", priority=5, created_at=clock())
        assert sorted([grant, restrict], key=override_sort_key) == [restrict, grant]

    def test_newer_before_older(self, clock):
        """Test newer overrides sort first at equal priority and kind"""
        older = PermissionOverride("u1", OverrideType.GRANT, "a", priority=5, created_at=clock())
        newer = PermissionOverride("u1", OverrideType.GRANT, "a", priority=5,
                                   created_at=clock() + timedelta(seconds=1))
        assert sorted([older, newer], key=override_sort_key) == [newer, older]

    @pytest.mark.asyncio
    async def test_overdue_emergency_left_for_audited_expiry(self, overrides, clock):
        """Test overdue emergency overrides are excluded but stay active until their elevation expires"""
        override_id = await overrides.create("u1", "elevate", "admin_access", context="emergency_1_ab12cd34",
                                             priority=95, expires_at=clock() + timedelta(hours=1))
        clock.advance(timedelta(hours=2))

        assert await overrides.list_active("u1") == []
        assert await overrides.expire_overdue() == []
        assert (await overrides.get(override_id)).active is True
        assert await overrides.overdue_emergency_contexts() == ["emergency_1_ab12cd34"]

    @pytest.mark.asyncio
    async def test_bulk_paths_skip_unrecognized_type(self, overrides, store, clock):
        """Test context and overdue scans skip a stored override with a foreign type"""
        bad = PermissionOverride("u1", OverrideType.GRANT, "a", context="delegation_x",
                                 expires_at=clock() + timedelta(minutes=5), created_at=clock()).to_dict()
        bad["type"] = "suspend"
        await store.put(OVERRIDES, bad["id"], bad)
        await overrides.create("u1", "elevate", "b", context="delegation_x")
        clock.advance(timedelta(hours=1))

        assert await overrides.expire_overdue() == []
        assert [o.permission for o in await overrides.list_by_context("delegation_x")] == ["b"]
        assert await overrides.deactivate_by_context("delegation_x", "delegation_revoked") == 1
