"""
Tests for permission ranking, inclusion and collapse.
"""

import pytest

from permengine.hierarchy import PermissionHierarchy


@pytest.fixture
def hierarchy():
    return PermissionHierarchy()


class TestPermissionHierarchy:
    """Test the default rank and inclusion tables"""

    def test_rank_of_known_and_unknown_permissions(self, hierarchy):
        """Test ranks come from the table and unknown permissions rank zero"""
        assert hierarchy.rank("admin_full") == 100
        assert hierarchy.rank("profile_management") == 10
        assert hierarchy.rank("made_up_permission") == 0

    def test_includes_is_direct_only(self, hierarchy):
        """Test inclusion does not chain through intermediate permissions"""
        assert hierarchy.includes("admin_full", "user_management")
        assert hierarchy.includes("user_management", "employee_management")
        assert not hierarchy.includes("admin_full", "employee_management")

    def test_collapse_removes_included_permissions(self, hierarchy):
        """Test admin_full absorbs team_management and basic_access"""
        result = hierarchy.collapse(["admin_full", "team_management", "basic_access", "audit_read"])
        assert result == ["admin_full", "audit_read"]

    def test_collapse_keeps_unrelated_permissions(self, hierarchy):
        """Test collapse never drops a permission nothing includes"""
        result = hierarchy.collapse(["financial_access", "event_management"])
        assert result == ["event_management", "financial_access"]

    def test_collapse_requires_higher_rank(self, hierarchy):
        """Test a lower-ranked permission cannot absorb a higher one even if listed"""
        custom = PermissionHierarchy(ranks={"a": 10, "b": 20}, inclusion_rules={"a": ["b"]})
        assert custom.collapse(["a", "b"]) == ["a", "b"]

    def test_collapse_never_adds(self, hierarchy):
        """Test collapse output is a subset of its input"""
        assert hierarchy.collapse(["admin_full"]) == ["admin_full"]
        assert hierarchy.collapse([]) == []

    def test_satisfies_through_inclusion(self, hierarchy):
        """Test held broad permissions satisfy directly included ones"""
        assert hierarchy.satisfies(["department_admin"], "team_management")
        assert hierarchy.satisfies(["team_management"], "team_management")
        assert not hierarchy.satisfies(["department_admin"], "basic_access")

    def test_vocabulary_covers_ranks_and_inclusions(self, hierarchy):
        """Test the vocabulary contains ranked and included-only permissions"""
        vocabulary = hierarchy.vocabulary
        assert "admin_full" in vocabulary
        assert "system_config" in vocabulary
        assert "employee_access" in vocabulary
