"""Tests for the resolution engine."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from payrollauthz import (
    GLOBAL_SCOPE,
    Assignment,
    AuditAction,
    AuditEmitter,
    AuthzConfig,
    Grant,
    GrantEffect,
    PermissionKeys,
    ResolutionEngine,
    ScopeGraph,
    ScopeNode,
)
from payrollauthz.engine import RULE_DEFAULT_DENY, RULE_NOT_OWNER
from payrollauthz.exceptions import ScopeNotFound, UnknownPermission, UnknownRole

APPROVE = PermissionKeys.APPROVE_PAYROLL

ORG_42 = ScopeNode.organization("org-42")
CO_3 = ScopeNode.company("co-3")
CO_4 = ScopeNode.company("co-4")
PROJ_7 = ScopeNode.project("proj-7")
PROJ_8 = ScopeNode.project("proj-8")
PROJ_9 = ScopeNode.project("proj-9")
PROJ_10 = ScopeNode.project("proj-10")

ALL_TREE_SCOPES = [
    GLOBAL_SCOPE,
    ORG_42,
    CO_3,
    CO_4,
    PROJ_7,
    PROJ_8,
    PROJ_9,
    ScopeNode.organization("org-77"),
    ScopeNode.company("co-5"),
    PROJ_10,
]

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def assign(store, user_id: str, role_code: str, scope: ScopeNode) -> Assignment:
    return store.create(Assignment(user_id=user_id, role_code=role_code, scope=scope, assigned_by="seed"))


def add_grant(store, **fields) -> Grant:
    fields.setdefault("permission_key", APPROVE)
    fields.setdefault("created_by", "seed")
    return store.create(Grant(**fields))


class TestDefaultDeny:
    """A user with nothing gets nothing."""

    def test_no_assignments_no_grants(self, engine: ResolutionEngine, catalog) -> None:
        """Test every permission at every scope is denied."""
        for scope in ALL_TREE_SCOPES:
            for key in catalog.permission_keys():
                decision = engine.has_permission("u-nobody", key, scope)
                assert not decision.allowed
                assert decision.deciding_rule == RULE_DEFAULT_DENY

    def test_effective_permissions_empty(self, engine: ResolutionEngine) -> None:
        """Test the effective set is empty."""
        assert engine.get_effective_permissions("u-nobody", PROJ_7) == frozenset()


class TestScopeContainment:
    """Assignments cover their scope and every descendant."""

    def test_global_assignment_covers_everything(self, engine, assignments) -> None:
        """Test a GLOBAL assignment applies at every non-SELF scope."""
        assign(assignments, "u-root", "PLATFORM_SUPER_ADMIN", GLOBAL_SCOPE)
        for scope in ALL_TREE_SCOPES:
            assert engine.has_permission("u-root", APPROVE, scope).allowed

    def test_org_assignment_covers_descendants(self, engine, assignments) -> None:
        """Test an organization assignment reaches its projects only."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)

        assert engine.has_permission("u-1", APPROVE, ORG_42).allowed
        assert engine.has_permission("u-1", APPROVE, CO_4).allowed
        assert engine.has_permission("u-1", APPROVE, PROJ_7).allowed
        assert not engine.has_permission("u-1", APPROVE, PROJ_10).allowed
        assert not engine.has_permission("u-1", APPROVE, GLOBAL_SCOPE).allowed

    def test_project_assignment_does_not_cover_parent(self, engine, assignments) -> None:
        """Test coverage never flows upward."""
        assign(assignments, "u-2", "PROJECT_PAYROLL_OFFICER", PROJ_7)
        key = PermissionKeys.PAYROLL_SUBMIT

        assert engine.has_permission("u-2", key, PROJ_7).allowed
        assert not engine.has_permission("u-2", key, CO_3).allowed
        assert not engine.has_permission("u-2", key, PROJ_8).allowed

    def test_deciding_rule_names_role(self, engine, assignments) -> None:
        """Test role-based allows report the role and assignment scope."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        decision = engine.has_permission("u-1", APPROVE, PROJ_7)
        assert decision.role_code == "ORG_PAYROLL_ADMIN"
        assert decision.deciding_rule == "role:ORG_PAYROLL_ADMIN@ORGANIZATION:org-42"


class TestGrantPrecedence:
    """Explicit grants carve exceptions in both directions."""

    def test_deny_beats_broader_role(self, engine, assignments, grants) -> None:
        """Test a project DENY wins over an organization role."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        deny = add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)

        decision = engine.has_permission("u-1", APPROVE, PROJ_7)
        assert not decision.allowed
        assert decision.grant_id == deny.id
        assert decision.deciding_rule == f"deny-grant:{deny.id}@PROJECT:proj-7"
        assert engine.has_permission("u-1", APPROVE, PROJ_8).allowed

    def test_deny_at_company_covers_its_projects(self, engine, assignments, grants) -> None:
        """Test a DENY applies to every scope beneath it."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(grants, subject_user_id="u-1", scope=CO_3, effect=GrantEffect.DENY)

        assert not engine.has_permission("u-1", APPROVE, PROJ_7).allowed
        assert not engine.has_permission("u-1", APPROVE, PROJ_8).allowed
        assert engine.has_permission("u-1", APPROVE, PROJ_9).allowed
        assert engine.has_permission("u-1", APPROVE, ORG_42).allowed

    def test_deny_beats_allow_grant(self, engine, grants) -> None:
        """Test DENY wins even over an ALLOW at a narrower scope."""
        add_grant(grants, subject_user_id="u-3", scope=CO_3, effect=GrantEffect.DENY)
        add_grant(grants, subject_user_id="u-3", scope=PROJ_7, effect=GrantEffect.ALLOW)

        assert not engine.has_permission("u-3", APPROVE, PROJ_7).allowed

    def test_allow_override(self, engine, grants) -> None:
        """Test an ALLOW grant without any role, isolated from siblings."""
        allow = add_grant(grants, subject_user_id="u-3", scope=CO_3, effect=GrantEffect.ALLOW)

        decision = engine.has_permission("u-3", APPROVE, CO_3)
        assert decision.allowed
        assert decision.deciding_rule == f"allow-grant:{allow.id}@COMPANY:co-3"
        assert engine.has_permission("u-3", APPROVE, PROJ_8).allowed
        assert not engine.has_permission("u-3", APPROVE, CO_4).allowed
        assert not engine.has_permission("u-3", APPROVE, ORG_42).allowed

    def test_grant_for_other_permission_ignored(self, engine, grants) -> None:
        """Test grants only affect their own permission key."""
        add_grant(
            grants,
            subject_user_id="u-3",
            scope=CO_3,
            effect=GrantEffect.ALLOW,
            permission_key=PermissionKeys.EXPORT_BANK_SCHEDULE,
        )
        assert not engine.has_permission("u-3", APPROVE, CO_3).allowed

    def test_base_role_reported_before_allow_grant(self, engine, assignments, grants) -> None:
        """Test a role match is the deciding rule when both would allow."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.ALLOW)

        decision = engine.has_permission("u-1", APPROVE, PROJ_7)
        assert decision.role_code == "ORG_PAYROLL_ADMIN"
        assert decision.grant_id is None

    def test_role_subject_grant(self, engine, assignments, grants) -> None:
        """Test a grant addressed to a role applies to its holders."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        assign(assignments, "u-4", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(grants, subject_role_code="ORG_PAYROLL_ADMIN", scope=CO_4, effect=GrantEffect.DENY)

        assert not engine.has_permission("u-1", APPROVE, PROJ_9).allowed
        assert not engine.has_permission("u-4", APPROVE, CO_4).allowed
        assert engine.has_permission("u-4", APPROVE, CO_3).allowed

    def test_role_grant_needs_covering_assignment(self, engine, assignments, grants) -> None:
        """Test role grants only reach holders whose assignment covers the scope."""
        assign(assignments, "u-5", "PROJECT_VIEWER", PROJ_8)
        add_grant(grants, subject_role_code="PROJECT_VIEWER", scope=PROJ_7, effect=GrantEffect.ALLOW)

        assert not engine.has_permission("u-5", APPROVE, PROJ_7).allowed

    def test_narrowest_deny_decides(self, engine, grants) -> None:
        """Test the narrowest DENY is the deciding rule."""
        add_grant(grants, subject_user_id="u-3", scope=ORG_42, effect=GrantEffect.DENY, created_at=T0)
        narrow = add_grant(grants, subject_user_id="u-3", scope=PROJ_7, effect=GrantEffect.DENY, created_at=T0)

        assert engine.has_permission("u-3", APPROVE, PROJ_7).grant_id == narrow.id

    def test_tie_broken_by_most_recent(self, engine, grants) -> None:
        """Test equally narrow DENYs resolve to the most recently created."""
        add_grant(grants, subject_user_id="u-3", scope=CO_3, effect=GrantEffect.DENY, created_at=T0)
        newer = add_grant(
            grants,
            subject_user_id="u-3",
            scope=CO_3,
            effect=GrantEffect.DENY,
            created_at=T0 + timedelta(hours=1),
        )

        for _ in range(3):
            assert engine.has_permission("u-3", APPROVE, PROJ_7).grant_id == newer.id


class TestGrantExpiry:
    """Expired grants behave as if absent."""

    def test_expired_allow_is_ignored(self, engine, grants) -> None:
        """Test an ALLOW past valid_until no longer allows."""
        add_grant(
            grants,
            subject_user_id="u-3",
            scope=CO_3,
            effect=GrantEffect.ALLOW,
            created_at=T0 - timedelta(days=30),
            valid_until=T0 - timedelta(days=1),
        )
        assert not engine.has_permission("u-3", APPROVE, CO_3, now=T0).allowed
        assert not engine.has_permission("u-3", APPROVE, CO_3).allowed

    def test_expired_deny_is_ignored(self, engine, assignments, grants) -> None:
        """Test an expired DENY no longer blocks the role."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(
            grants,
            subject_user_id="u-1",
            scope=PROJ_7,
            effect=GrantEffect.DENY,
            valid_until=T0 + timedelta(days=1),
        )

        assert not engine.has_permission("u-1", APPROVE, PROJ_7, now=T0).allowed
        assert engine.has_permission("u-1", APPROVE, PROJ_7, now=T0 + timedelta(days=1)).allowed


class TestSelfScope:
    """SELF is checked against the resource owner, never the org tree."""

    def test_owner_allowed(self, engine, assignments) -> None:
        """Test a SELF role applies to the owner's own resources."""
        assign(assignments, "u-6", "SELF_USER", ScopeNode.self_())
        key = PermissionKeys.SELF_VIEW_PAYSLIP

        assert engine.has_permission("u-6", key, ScopeNode.self_("u-6")).allowed
        assert engine.has_permission("u-6", key, ScopeNode.self_(), resource_owner_id="u-6").allowed

    def test_other_owner_denied(self, engine, assignments) -> None:
        """Test a SELF role never reaches another user's resources."""
        assign(assignments, "u-6", "SELF_USER", ScopeNode.self_())
        key = PermissionKeys.SELF_VIEW_PAYSLIP

        decision = engine.has_permission("u-6", key, ScopeNode.self_("u-7"))
        assert not decision.allowed
        assert decision.deciding_rule == RULE_NOT_OWNER
        assert not engine.has_permission("u-6", key, ScopeNode.self_(), resource_owner_id="u-7").allowed

    def test_unknown_owner_denied(self, engine, assignments) -> None:
        """Test a SELF check with no owner at all is denied."""
        assign(assignments, "u-6", "SELF_USER", ScopeNode.self_())
        key = PermissionKeys.SELF_VIEW_PAYSLIP

        decision = engine.has_permission("u-6", key, ScopeNode.self_())

        assert not decision.allowed
        assert decision.deciding_rule == RULE_NOT_OWNER
        assert engine.get_effective_permissions("u-6", ScopeNode.self_()) == frozenset()
        assert not engine.role_rank_at_least("u-6", ScopeNode.self_(), "SELF_USER")
        assert engine.role_rank_at_least("u-6", ScopeNode.self_("u-6"), "SELF_USER")

    def test_global_role_does_not_reach_self(self, engine, assignments) -> None:
        """Test SELF does not generalize to GLOBAL assignments."""
        assign(assignments, "u-root", "PLATFORM_SUPER_ADMIN", GLOBAL_SCOPE)
        key = PermissionKeys.SELF_VIEW_PAYSLIP

        assert not engine.has_permission("u-root", key, ScopeNode.self_("u-root")).allowed

    def test_self_role_does_not_reach_tree(self, engine, assignments) -> None:
        """Test a SELF assignment grants nothing at tenancy scopes."""
        assign(assignments, "u-6", "SELF_USER", ScopeNode.self_())
        assert not engine.has_permission("u-6", PermissionKeys.SELF_VIEW_PAYSLIP, PROJ_7).allowed


class TestErrors:
    """Malformed input raises instead of deciding."""

    def test_unknown_permission(self, engine) -> None:
        """Test an unknown key is a caller bug."""
        with pytest.raises(UnknownPermission):
            engine.has_permission("u-1", "payroll.teleport", PROJ_7)

    def test_dangling_scope(self, engine, assignments) -> None:
        """Test a missing project halts resolution even for a GLOBAL admin."""
        assign(assignments, "u-root", "PLATFORM_SUPER_ADMIN", GLOBAL_SCOPE)
        with pytest.raises(ScopeNotFound):
            engine.has_permission("u-root", APPROVE, ScopeNode.project("proj-404"))

    def test_dangling_scope_in_effective_permissions(self, engine) -> None:
        """Test the effective-permission listing raises the same way."""
        with pytest.raises(ScopeNotFound):
            engine.get_effective_permissions("u-1", ScopeNode.company("co-404"))


class TestEffectivePermissions:
    """The effective set agrees with individual checks."""

    def test_consistent_with_has_permission(self, engine, catalog, assignments, grants) -> None:
        """Test effective permissions equal the allowed keys, scope by scope."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        assign(assignments, "u-1", "COMPANY_HR", CO_3)
        assign(assignments, "u-1", "PROJECT_MANAGER", PROJ_9)
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)
        add_grant(
            grants,
            subject_user_id="u-1",
            scope=CO_4,
            effect=GrantEffect.ALLOW,
            permission_key=PermissionKeys.EXPORT_BANK_SCHEDULE,
        )
        add_grant(
            grants,
            subject_role_code="COMPANY_HR",
            scope=PROJ_8,
            effect=GrantEffect.DENY,
            permission_key=PermissionKeys.PEOPLE_EDIT,
        )

        for scope in ALL_TREE_SCOPES:
            expected = {k for k in catalog.permission_keys() if engine.has_permission("u-1", k, scope).allowed}
            assert engine.get_effective_permissions("u-1", scope) == expected, scope

    def test_effective_permissions_content(self, engine, assignments) -> None:
        """Test the effective set is the role's inherent permissions."""
        assign(assignments, "u-2", "PROJECT_PAYROLL_OFFICER", PROJ_7)
        assert engine.get_effective_permissions("u-2", PROJ_7) == {
            PermissionKeys.PAYROLL_VIEW,
            PermissionKeys.PAYROLL_PREPARE,
            PermissionKeys.PAYROLL_SUBMIT,
        }

    def test_explain(self, engine, assignments, grants) -> None:
        """Test the data-scope view lists what contributed."""
        a = assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        deny = add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)

        summary = engine.explain("u-1", PROJ_7)

        assert summary.chain == (PROJ_7, CO_3, ORG_42, GLOBAL_SCOPE)
        assert summary.assignments == (a,)
        assert summary.deny_grants == (deny,)
        assert summary.allow_grants == ()
        assert APPROVE not in summary.effective_permissions
        assert PermissionKeys.PAYROLL_SUBMIT in summary.effective_permissions


class TestMultiKeyChecks:
    """has_any_permission / has_all_permissions agree with single checks."""

    def test_any_and_all(self, engine, assignments, grants, audit_sink) -> None:
        """Test the multi-key checks honor DENY grants like has_permission."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)
        keys = [APPROVE, PermissionKeys.PAYROLL_SUBMIT]

        assert engine.has_all_permissions("u-1", keys, PROJ_8)
        assert not engine.has_all_permissions("u-1", keys, PROJ_7)
        assert engine.has_any_permission("u-1", keys, PROJ_7)
        assert not engine.has_any_permission("u-1", [APPROVE], PROJ_7)
        assert audit_sink.entries == ()

    def test_no_role_anywhere(self, engine) -> None:
        """Test a user without assignments is denied both checks."""
        keys = [APPROVE, PermissionKeys.PAYROLL_VIEW]
        assert not engine.has_any_permission("nobody", keys, PROJ_7)
        assert not engine.has_all_permissions("nobody", keys, PROJ_7)

    def test_empty_key_list_denied(self, engine, assignments) -> None:
        """Test neither check allows an empty key list."""
        assign(assignments, "u-root", "PLATFORM_SUPER_ADMIN", GLOBAL_SCOPE)
        assert not engine.has_any_permission("u-root", [], PROJ_7)
        assert not engine.has_all_permissions("u-root", [], PROJ_7)

    def test_unknown_key_raises(self, engine, assignments) -> None:
        """Test one unknown key fails the whole check, even after an allowed key."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        with pytest.raises(UnknownPermission):
            engine.has_any_permission("u-1", [APPROVE, "payroll.teleport"], PROJ_7)
        with pytest.raises(UnknownPermission):
            engine.has_all_permissions("u-1", iter([APPROVE, "payroll.teleport"]), PROJ_7)

    def test_resolves_scope_once(self, engine, assignments, monkeypatch) -> None:
        """Test one store read serves every key."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        spy = MagicMock(wraps=assignments.assignments_for)
        monkeypatch.setattr(assignments, "assignments_for", spy)

        engine.has_all_permissions("u-1", [APPROVE, PermissionKeys.PAYROLL_SUBMIT, PermissionKeys.PAYROLL_VIEW], PROJ_7)

        spy.assert_called_once_with("u-1")


class TestRoleRank:
    """The coarse rank predicate."""

    def test_rank_at_least(self, engine, assignments) -> None:
        """Test rank comparison through ancestors."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)

        assert engine.role_rank_at_least("u-1", PROJ_7, "ORG_VIEWER")
        assert engine.role_rank_at_least("u-1", CO_4, "ORG_PAYROLL_ADMIN")
        assert engine.role_rank_at_least("u-1", PROJ_7, "PROJECT_MANAGER")
        assert not engine.role_rank_at_least("u-1", PROJ_7, "ORG_OWNER")
        assert not engine.role_rank_at_least("u-1", PROJ_10, "ORG_VIEWER")

    def test_rank_ignores_grants_but_never_overrides_deny(self, engine, assignments, grants) -> None:
        """Test a DENY still governs has_permission when the rank check passes."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)

        assert engine.role_rank_at_least("u-1", PROJ_7, "ORG_PAYROLL_ADMIN")
        assert not engine.has_permission("u-1", APPROVE, PROJ_7).allowed

    def test_unknown_required_role(self, engine) -> None:
        """Test an unknown required role raises."""
        with pytest.raises(UnknownRole):
            engine.role_rank_at_least("u-1", PROJ_7, "NOBODY")


class TestDenialAudit:
    """Deny-by-override decisions are reported."""

    def test_deny_grant_is_audited(self, engine, assignments, grants, audit_sink) -> None:
        """Test a deny-by-grant writes an audit entry."""
        assign(assignments, "u-1", "ORG_PAYROLL_ADMIN", ORG_42)
        deny = add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)

        engine.has_permission("u-1", APPROVE, PROJ_7)

        (entry,) = audit_sink.entries
        assert entry.action == AuditAction.ACCESS_DENIED_BY_GRANT
        assert entry.actor == "u-1"
        assert entry.target_entity == f"grant:{deny.id}"
        assert entry.scope == "PROJECT:proj-7"
        assert entry.after["permission_key"] == APPROVE

    def test_default_deny_not_audited(self, engine, audit_sink) -> None:
        """Test plain default denies leave no audit entry."""
        engine.has_permission("u-nobody", APPROVE, PROJ_7)
        assert audit_sink.entries == ()

    def test_effective_permissions_not_audited(self, engine, grants, audit_sink) -> None:
        """Test the listing path does not audit denies."""
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)
        engine.get_effective_permissions("u-1", PROJ_7)
        assert audit_sink.entries == ()

    def test_disabled_by_config(self, catalog, directory, assignments, grants, audit_sink) -> None:
        """Test audit_denials=False turns the report off."""
        engine = ResolutionEngine(
            catalog,
            ScopeGraph(directory),
            assignments,
            grants,
            audit=AuditEmitter(audit_sink),
            config=AuthzConfig(audit_denials=False),
        )
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)

        assert not engine.has_permission("u-1", APPROVE, PROJ_7).allowed
        assert audit_sink.entries == ()

    def test_sink_failure_still_denies(self, catalog, directory, assignments, grants) -> None:
        """Test a failing audit sink does not turn a deny into an error."""
        sink = MagicMock()
        sink.record.side_effect = ConnectionError("audit store down")
        engine = ResolutionEngine(
            catalog, ScopeGraph(directory), assignments, grants, audit=AuditEmitter(sink)
        )
        add_grant(grants, subject_user_id="u-1", scope=PROJ_7, effect=GrantEffect.DENY)

        assert not engine.has_permission("u-1", APPROVE, PROJ_7).allowed
        sink.record.assert_called_once()


class TestPayrollScenario:
    """Organization payroll admin with a project-level carve-out."""

    def test_org_admin_denied_on_one_project(self, engine, assignments, grants) -> None:
        """Test ORG_PAYROLL_ADMIN at org-42 with DENY approve_payroll at proj-7."""
        assign(assignments, "U1", "ORG_PAYROLL_ADMIN", ORG_42)
        add_grant(
            grants,
            subject_user_id="U1",
            scope=PROJ_7,
            effect=GrantEffect.DENY,
            reason="Payroll freeze pending audit",
            created_by="U1-manager",
        )

        assert engine.has_permission("U1", "approve_payroll", PROJ_7).allowed is False
        assert engine.has_permission("U1", "approve_payroll", PROJ_8).allowed is True
