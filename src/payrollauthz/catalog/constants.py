"""Permission key constants and role tiers.

Provides:
- ``PermissionKeys``: canonical permission keys of the payroll platform.
- ``RoleTier``: scope-breadth class a role is defined for.
- ``TIER_SCOPE``: the single scope type each tier may be assigned at.
- ``TIER_BREADTH``: breadth order used by the rank/tier monotonicity check.
"""

from __future__ import annotations

from enum import Enum

from ..scopes import ScopeType


class PermissionKeys:
    """Canonical permission keys.

    Keys are flat strings. Dotted keys (``payroll.approve``) are a naming
    convention for grouping in admin screens, not a hierarchy: holding
    ``payroll.approve`` says nothing about ``payroll.view``.
    """

    # ── Administration ──────────────────────────────────
    MANAGE_ROLES = "manage_roles"
    MANAGE_GRANTS = "manage_grants"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    ADMIN_MANAGE_USERS = "admin.manage_users"
    ADMIN_ASSIGN_ROLES = "admin.assign_roles"
    ADMIN_IMPERSONATE = "admin.impersonate"

    # ── People ──────────────────────────────────────────
    PEOPLE_VIEW = "people.view"
    PEOPLE_CREATE = "people.create"
    PEOPLE_EDIT = "people.edit"
    PEOPLE_VIEW_SENSITIVE = "people.view_sensitive"
    PEOPLE_ASSIGN_PROJECT = "people.assign_project"
    PII_READ = "pii.read"

    # ── Payroll ─────────────────────────────────────────
    APPROVE_PAYROLL = "approve_payroll"
    EXPORT_BANK_SCHEDULE = "export_bank_schedule"
    PAYROLL_VIEW = "payroll.view"
    PAYROLL_PREPARE = "payroll.prepare"
    PAYROLL_SUBMIT = "payroll.submit"
    PAYROLL_APPROVE = "payroll.approve"
    PAYROLL_ROLLBACK = "payroll.rollback"
    PAYROLL_EXPORT_BANK = "payroll.export_bank"
    PAYROLL_EXPORT_MOBILE_MONEY = "payroll.export_mobile_money"

    # ── Finance & Reports ───────────────────────────────
    FINANCE_VIEW_REPORTS = "finance.view_reports"
    FINANCE_VIEW_BANK_DETAILS = "finance.view_bank_details"
    REPORTS_VIEW = "reports.view"
    REPORTS_EXPORT = "reports.export"

    # ── Self service ────────────────────────────────────
    SELF_VIEW_PAYSLIP = "self.view_payslip"
    SELF_EDIT_PROFILE = "self.edit_profile"
    SELF_SUBMIT_TIMESHEET = "self.submit_timesheet"


class RoleTier(str, Enum):
    """Scope-breadth class of a role."""

    PLATFORM = "PLATFORM"
    ORGANIZATION = "ORGANIZATION"
    COMPANY = "COMPANY"
    PROJECT = "PROJECT"
    SELF = "SELF"


TIER_SCOPE: dict[RoleTier, ScopeType] = {
    RoleTier.PLATFORM: ScopeType.GLOBAL,
    RoleTier.ORGANIZATION: ScopeType.ORGANIZATION,
    RoleTier.COMPANY: ScopeType.COMPANY,
    RoleTier.PROJECT: ScopeType.PROJECT,
    RoleTier.SELF: ScopeType.SELF,
}

# Higher = broader. Broader tiers must outrank narrower ones.
TIER_BREADTH: dict[RoleTier, int] = {
    RoleTier.PLATFORM: 4,
    RoleTier.ORGANIZATION: 3,
    RoleTier.COMPANY: 2,
    RoleTier.PROJECT: 1,
    RoleTier.SELF: 0,
}


__all__ = [
    "TIER_BREADTH",
    "TIER_SCOPE",
    "PermissionKeys",
    "RoleTier",
]
