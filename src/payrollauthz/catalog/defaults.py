"""Seeded catalog of the payroll platform.

Provides:
- ``DEFAULT_PERMISSIONS``: permission keys with category and description.
- ``ROLE_PROFILES``: role code → (tier, rank, inherent permissions).
- ``build_default_catalog()``: a populated ``CatalogStore``.
"""

from __future__ import annotations

from .constants import PermissionKeys as P
from .constants import RoleTier
from .models import Permission, Role
from .store import CatalogStore, role_display_name

# ── Permissions ─────────────────────────────────────────

DEFAULT_PERMISSIONS: tuple[Permission, ...] = (
    Permission(P.MANAGE_ROLES, "Admin", "Create and revoke role assignments."),
    Permission(P.MANAGE_GRANTS, "Admin", "Create and revoke permission grants."),
    Permission(P.VIEW_AUDIT_LOGS, "Admin", "Read the security audit log."),
    Permission(P.ADMIN_MANAGE_USERS, "Admin", "Invite, disable and edit users."),
    Permission(P.ADMIN_ASSIGN_ROLES, "Admin", "Assign roles from the user screens."),
    Permission(P.ADMIN_IMPERSONATE, "Admin", "Act as another user for support."),
    Permission(P.PEOPLE_VIEW, "People", "View employee records."),
    Permission(P.PEOPLE_CREATE, "People", "Create employee records."),
    Permission(P.PEOPLE_EDIT, "People", "Edit employee records."),
    Permission(P.PEOPLE_VIEW_SENSITIVE, "People", "View sensitive employee fields."),
    Permission(P.PEOPLE_ASSIGN_PROJECT, "People", "Assign employees to projects."),
    Permission(P.PII_READ, "People", "Read personally identifiable information."),
    Permission(P.APPROVE_PAYROLL, "Payroll", "Approve payroll runs and finalize approval workflows."),
    Permission(P.EXPORT_BANK_SCHEDULE, "Payroll", "Export bank schedules for payment processing."),
    Permission(P.PAYROLL_VIEW, "Payroll", "View pay runs."),
    Permission(P.PAYROLL_PREPARE, "Payroll", "Prepare pay runs."),
    Permission(P.PAYROLL_SUBMIT, "Payroll", "Submit pay runs for approval."),
    Permission(P.PAYROLL_APPROVE, "Payroll", "Approve submitted pay runs."),
    Permission(P.PAYROLL_ROLLBACK, "Payroll", "Roll back a processed pay run."),
    Permission(P.PAYROLL_EXPORT_BANK, "Payroll", "Export bank payment files."),
    Permission(P.PAYROLL_EXPORT_MOBILE_MONEY, "Payroll", "Export mobile money payment files."),
    Permission(P.FINANCE_VIEW_REPORTS, "Finance", "View financial reports."),
    Permission(P.FINANCE_VIEW_BANK_DETAILS, "Finance", "View employee bank details."),
    Permission(P.REPORTS_VIEW, "Reports", "View reports."),
    Permission(P.REPORTS_EXPORT, "Reports", "Export reports."),
    Permission(P.SELF_VIEW_PAYSLIP, "Self service", "View own payslips."),
    Permission(P.SELF_EDIT_PROFILE, "Self service", "Edit own profile."),
    Permission(P.SELF_SUBMIT_TIMESHEET, "Self service", "Submit own timesheets."),
)

_ALL_KEYS = tuple(p.key for p in DEFAULT_PERMISSIONS)

_PEOPLE_FULL = (
    P.PEOPLE_VIEW,
    P.PEOPLE_CREATE,
    P.PEOPLE_EDIT,
    P.PEOPLE_VIEW_SENSITIVE,
    P.PEOPLE_ASSIGN_PROJECT,
)

# ── Roles ───────────────────────────────────────────────
# Ranks are banded per tier so broader tiers always outrank narrower ones.

ROLE_PROFILES: dict[str, tuple[RoleTier, int, tuple[str, ...]]] = {
    "PLATFORM_SUPER_ADMIN": (RoleTier.PLATFORM, 100, _ALL_KEYS),
    "PLATFORM_AUDITOR": (
        RoleTier.PLATFORM,
        90,
        (P.VIEW_AUDIT_LOGS, P.PEOPLE_VIEW, P.PAYROLL_VIEW, P.REPORTS_VIEW),
    ),
    "ORG_OWNER": (
        RoleTier.ORGANIZATION,
        80,
        tuple(k for k in _ALL_KEYS if k != P.ADMIN_IMPERSONATE),
    ),
    "ORG_ADMIN": (
        RoleTier.ORGANIZATION,
        78,
        _PEOPLE_FULL
        + (
            P.MANAGE_ROLES,
            P.MANAGE_GRANTS,
            P.VIEW_AUDIT_LOGS,
            P.ADMIN_MANAGE_USERS,
            P.ADMIN_ASSIGN_ROLES,
            P.REPORTS_VIEW,
        ),
    ),
    "ORG_FINANCE_CONTROLLER": (
        RoleTier.ORGANIZATION,
        76,
        (
            P.APPROVE_PAYROLL,
            P.EXPORT_BANK_SCHEDULE,
            P.PAYROLL_VIEW,
            P.PAYROLL_APPROVE,
            P.PAYROLL_EXPORT_BANK,
            P.PAYROLL_EXPORT_MOBILE_MONEY,
            P.FINANCE_VIEW_REPORTS,
            P.FINANCE_VIEW_BANK_DETAILS,
            P.REPORTS_VIEW,
            P.REPORTS_EXPORT,
        ),
    ),
    "ORG_PAYROLL_ADMIN": (
        RoleTier.ORGANIZATION,
        74,
        (
            P.APPROVE_PAYROLL,
            P.PAYROLL_VIEW,
            P.PAYROLL_PREPARE,
            P.PAYROLL_SUBMIT,
            P.PAYROLL_APPROVE,
            P.PEOPLE_VIEW,
        ),
    ),
    "ORG_HR_ADMIN": (RoleTier.ORGANIZATION, 72, _PEOPLE_FULL + (P.PII_READ,)),
    "ORG_AUDITOR": (
        RoleTier.ORGANIZATION,
        62,
        (P.VIEW_AUDIT_LOGS, P.PEOPLE_VIEW, P.PAYROLL_VIEW, P.REPORTS_VIEW),
    ),
    "ORG_VIEWER": (RoleTier.ORGANIZATION, 60, (P.PEOPLE_VIEW, P.PAYROLL_VIEW, P.REPORTS_VIEW)),
    "COMPANY_PAYROLL_ADMIN": (
        RoleTier.COMPANY,
        54,
        (P.PAYROLL_VIEW, P.PAYROLL_PREPARE, P.PAYROLL_SUBMIT, P.PEOPLE_VIEW),
    ),
    "COMPANY_HR": (
        RoleTier.COMPANY,
        52,
        (P.PEOPLE_VIEW, P.PEOPLE_CREATE, P.PEOPLE_EDIT, P.PEOPLE_ASSIGN_PROJECT),
    ),
    "COMPANY_VIEWER": (RoleTier.COMPANY, 50, (P.PEOPLE_VIEW, P.PAYROLL_VIEW)),
    "PROJECT_MANAGER": (
        RoleTier.PROJECT,
        34,
        (P.PEOPLE_VIEW, P.PEOPLE_ASSIGN_PROJECT, P.PAYROLL_VIEW, P.PAYROLL_PREPARE, P.REPORTS_VIEW),
    ),
    "PROJECT_PAYROLL_OFFICER": (
        RoleTier.PROJECT,
        32,
        (P.PAYROLL_VIEW, P.PAYROLL_PREPARE, P.PAYROLL_SUBMIT),
    ),
    "PROJECT_VIEWER": (RoleTier.PROJECT, 30, (P.PEOPLE_VIEW, P.PAYROLL_VIEW)),
    "SELF_USER": (
        RoleTier.SELF,
        12,
        (P.SELF_VIEW_PAYSLIP, P.SELF_EDIT_PROFILE, P.SELF_SUBMIT_TIMESHEET),
    ),
    "SELF_CONTRACTOR": (RoleTier.SELF, 10, (P.SELF_VIEW_PAYSLIP, P.SELF_SUBMIT_TIMESHEET)),
}


def build_default_roles() -> tuple[Role, ...]:
    return tuple(
        Role(
            code=code,
            tier=tier,
            rank=rank,
            inherent_permissions=frozenset(permissions),
            name=role_display_name(code),
        )
        for code, (tier, rank, permissions) in ROLE_PROFILES.items()
    )


def build_default_catalog() -> CatalogStore:
    """Catalog seeded with the platform's permissions and roles."""
    return CatalogStore(permissions=DEFAULT_PERMISSIONS, roles=build_default_roles())


__all__ = [
    "DEFAULT_PERMISSIONS",
    "ROLE_PROFILES",
    "build_default_catalog",
    "build_default_roles",
]
