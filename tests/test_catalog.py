"""Tests for the role and permission catalog."""

from __future__ import annotations

import logging

import pytest

from payrollauthz import CatalogStore, Permission, PermissionKeys, Role, RoleTier, ScopeType, build_default_catalog
from payrollauthz.catalog import ROLE_PROFILES, role_display_name
from payrollauthz.exceptions import CatalogConflict, UnknownPermission, UnknownRole


@pytest.fixture
def catalog() -> CatalogStore:
    return CatalogStore(
        permissions=[
            Permission("approve_payroll", "Payroll"),
            Permission("payroll.view", "Payroll"),
            Permission("people.view", "People"),
        ],
    )


class TestPermission:
    """Tests for Permission records."""

    def test_valid(self) -> None:
        """Test a valid permission."""
        permission = Permission("approve_payroll", "Payroll", "Approve pay runs.")
        assert permission.key == "approve_payroll"

    def test_empty_key(self) -> None:
        """Test empty keys are rejected."""
        with pytest.raises(ValueError, match="non-empty"):
            Permission("", "Payroll")

    def test_whitespace_key(self) -> None:
        """Test keys with whitespace are rejected."""
        with pytest.raises(ValueError, match="whitespace"):
            Permission("approve payroll", "Payroll")


class TestRole:
    """Tests for Role records."""

    def test_tier_coerced(self) -> None:
        """Test tier strings are coerced to RoleTier."""
        role = Role(code="ORG_VIEWER", tier="ORGANIZATION")
        assert role.tier is RoleTier.ORGANIZATION
        assert role.scope_type is ScopeType.ORGANIZATION

    def test_invalid_tier(self) -> None:
        """Test unknown tiers are rejected."""
        with pytest.raises(ValueError, match="not valid"):
            Role(code="X", tier="TEAM")

    def test_permissions_frozen(self) -> None:
        """Test inherent permissions are stored as a frozenset."""
        role = Role(code="X", tier=RoleTier.COMPANY, inherent_permissions={"people.view"})
        assert role.inherent_permissions == frozenset({"people.view"})

    def test_allows_scope(self) -> None:
        """Test each tier permits exactly one scope type."""
        role = Role(code="PROJECT_VIEWER", tier=RoleTier.PROJECT)
        assert role.allows_scope(ScopeType.PROJECT)
        assert not role.allows_scope(ScopeType.COMPANY)
        platform = Role(code="PLATFORM_AUDITOR", tier=RoleTier.PLATFORM)
        assert platform.allows_scope(ScopeType.GLOBAL)

    def test_rank_must_be_int(self) -> None:
        """Test non-integer ranks are rejected."""
        with pytest.raises(ValueError, match="rank"):
            Role(code="X", tier=RoleTier.SELF, rank="high")  # type: ignore[arg-type]


class TestCatalogStore:
    """Tests for CatalogStore."""

    def test_get_unknown_permission(self, catalog: CatalogStore) -> None:
        """Test unknown keys raise rather than deny."""
        with pytest.raises(UnknownPermission):
            catalog.get_permission("payroll.teleport")

    def test_get_unknown_role(self, catalog: CatalogStore) -> None:
        """Test unknown role codes raise."""
        with pytest.raises(UnknownRole):
            catalog.get_role("NOBODY")

    def test_duplicate_permission(self, catalog: CatalogStore) -> None:
        """Test duplicate permission keys conflict."""
        with pytest.raises(CatalogConflict):
            catalog.add_permission(Permission("approve_payroll", "Other"))

    def test_duplicate_role(self, catalog: CatalogStore) -> None:
        """Test duplicate role codes conflict."""
        catalog.add_role(Role(code="ORG_VIEWER", tier=RoleTier.ORGANIZATION, rank=60))
        with pytest.raises(CatalogConflict):
            catalog.add_role(Role(code="ORG_VIEWER", tier=RoleTier.ORGANIZATION, rank=61))

    def test_role_with_unknown_permission(self, catalog: CatalogStore) -> None:
        """Test roles must reference catalog permissions."""
        with pytest.raises(UnknownPermission) as exc_info:
            catalog.add_role(
                Role(code="X", tier=RoleTier.COMPANY, inherent_permissions={"people.view", "ghost"})
            )
        assert exc_info.value.details["permission_keys"] == ["ghost"]

    def test_rank_tie_warns(self, catalog: CatalogStore, caplog: pytest.LogCaptureFixture) -> None:
        """Test equal ranks are legal but logged."""
        catalog.add_role(Role(code="A", tier=RoleTier.COMPANY, rank=50))
        with caplog.at_level(logging.WARNING, logger="payrollauthz.catalog.store"):
            catalog.add_role(Role(code="B", tier=RoleTier.COMPANY, rank=50))
        assert catalog.get_role("B").rank == 50
        assert any("shares rank" in r.getMessage() for r in caplog.records)

    def test_non_monotonic_rank_warns(self, catalog: CatalogStore, caplog: pytest.LogCaptureFixture) -> None:
        """Test a narrower role outranking a broader one is logged."""
        catalog.add_role(Role(code="ORG_VIEWER", tier=RoleTier.ORGANIZATION, rank=60))
        with caplog.at_level(logging.WARNING, logger="payrollauthz.catalog.store"):
            catalog.add_role(Role(code="PROJECT_BOSS", tier=RoleTier.PROJECT, rank=70))
        assert any("outranks broader role" in r.getMessage() for r in caplog.records)

    def test_list_permissions_sorted(self, catalog: CatalogStore) -> None:
        """Test permissions are ordered by category, then key."""
        keys = [p.key for p in catalog.list_permissions()]
        assert keys == ["approve_payroll", "payroll.view", "people.view"]

    def test_permission_groups(self, catalog: CatalogStore) -> None:
        """Test grouping by category."""
        assert catalog.permission_groups() == {
            "Payroll": ["approve_payroll", "payroll.view"],
            "People": ["people.view"],
        }

    def test_list_roles_broadest_first(self, catalog: CatalogStore) -> None:
        """Test role listing order."""
        catalog.add_role(Role(code="PROJECT_VIEWER", tier=RoleTier.PROJECT, rank=30))
        catalog.add_role(Role(code="ORG_VIEWER", tier=RoleTier.ORGANIZATION, rank=60))
        catalog.add_role(Role(code="ORG_ADMIN", tier=RoleTier.ORGANIZATION, rank=78))
        assert [r.code for r in catalog.list_roles()] == ["ORG_ADMIN", "ORG_VIEWER", "PROJECT_VIEWER"]


class TestDefaultCatalog:
    """Tests for the seeded catalog."""

    def test_builds_without_conflict(self) -> None:
        """Test the default catalog is internally consistent."""
        catalog = build_default_catalog()
        assert len(catalog.list_roles()) == len(ROLE_PROFILES)
        assert PermissionKeys.APPROVE_PAYROLL in catalog.permission_keys()

    def test_ranks_monotonic_with_tier(self) -> None:
        """Test broader tiers always outrank narrower ones."""
        roles = build_default_catalog().list_roles()
        for broader in roles:
            for narrower in roles:
                if broader.breadth > narrower.breadth:
                    assert broader.rank > narrower.rank, (broader.code, narrower.code)

    def test_admin_roles_can_manage(self) -> None:
        """Test the organization admin carries both admin permissions."""
        role = build_default_catalog().get_role("ORG_ADMIN")
        assert PermissionKeys.MANAGE_ROLES in role.inherent_permissions
        assert PermissionKeys.MANAGE_GRANTS in role.inherent_permissions

    def test_display_names(self) -> None:
        """Test role display names."""
        assert role_display_name("ORG_PAYROLL_ADMIN") == "Org Payroll Admin"
        assert build_default_catalog().get_role("SELF_USER").name == "Self User"
