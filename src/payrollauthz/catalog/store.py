"""Catalog store: the curated set of roles and permissions.

Read-mostly. Writes validate uniqueness and role references; rank
collisions are reported as warnings because ties are legal.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Iterable

from ..exceptions import CatalogConflict, UnknownPermission, UnknownRole
from .models import Permission, Role

logger = logging.getLogger(__name__)


class CatalogStore:
    """In-memory catalog of roles and permissions.

    Example::

        catalog = CatalogStore()
        catalog.add_permission(Permission("approve_payroll", "Payroll"))
        catalog.add_role(Role(
            code="ORG_PAYROLL_ADMIN",
            tier=RoleTier.ORGANIZATION,
            inherent_permissions=frozenset({"approve_payroll"}),
            rank=70,
        ))
    """

    def __init__(
        self,
        permissions: Iterable[Permission] = (),
        roles: Iterable[Role] = (),
    ) -> None:
        self._permissions: dict[str, Permission] = {}
        self._roles: dict[str, Role] = {}
        self._lock = threading.Lock()

        for permission in permissions:
            self.add_permission(permission)
        for role in roles:
            self.add_role(role)

    # ── Reads ───────────────────────────────────────────

    def get_permission(self, key: str) -> Permission:
        try:
            return self._permissions[key]
        except KeyError:
            raise UnknownPermission(f"Unknown permission key '{key}'", permission_key=key) from None

    def get_role(self, code: str) -> Role:
        try:
            return self._roles[code]
        except KeyError:
            raise UnknownRole(f"Unknown role code '{code}'", role_code=code) from None

    def has_permission_key(self, key: str) -> bool:
        return key in self._permissions

    def list_permissions(self) -> list[Permission]:
        return sorted(self._permissions.values(), key=lambda p: (p.category, p.key))

    def list_roles(self) -> list[Role]:
        """Roles ordered broadest first, then by rank descending."""
        return sorted(self._roles.values(), key=lambda r: (-r.breadth, -r.rank, r.code))

    def permission_keys(self) -> frozenset[str]:
        return frozenset(self._permissions)

    def permission_groups(self) -> dict[str, list[str]]:
        """Permission keys grouped by category, for admin screens."""
        groups: dict[str, list[str]] = defaultdict(list)
        for permission in self.list_permissions():
            groups[permission.category].append(permission.key)
        return dict(groups)

    # ── Writes ──────────────────────────────────────────

    def add_permission(self, permission: Permission) -> Permission:
        with self._lock:
            if permission.key in self._permissions:
                raise CatalogConflict(
                    f"Permission key '{permission.key}' already exists",
                    permission_key=permission.key,
                )
            self._permissions[permission.key] = permission
        logger.debug("Catalog: added permission %s (%s)", permission.key, permission.category)
        return permission

    def add_role(self, role: Role) -> Role:
        with self._lock:
            if role.code in self._roles:
                raise CatalogConflict(f"Role code '{role.code}' already exists", role_code=role.code)

            missing = sorted(key for key in role.inherent_permissions if key not in self._permissions)
            if missing:
                raise UnknownPermission(
                    f"Role '{role.code}' references unknown permissions: {missing}",
                    role_code=role.code,
                    permission_keys=missing,
                )

            self._warn_on_rank(role)
            self._roles[role.code] = role
        logger.debug("Catalog: added role %s (tier=%s, rank=%d)", role.code, role.tier.value, role.rank)
        return role

    def _warn_on_rank(self, role: Role) -> None:
        for other in self._roles.values():
            if other.rank == role.rank:
                logger.warning(
                    "Catalog: role '%s' shares rank %d with '%s'; role_rank_at_least treats them as equivalent",
                    role.code,
                    role.rank,
                    other.code,
                )
            elif other.breadth > role.breadth and other.rank < role.rank:
                logger.warning(
                    "Catalog: role '%s' (tier=%s, rank=%d) outranks broader role '%s' (tier=%s, rank=%d)",
                    role.code,
                    role.tier.value,
                    role.rank,
                    other.code,
                    other.tier.value,
                    other.rank,
                )
            elif other.breadth < role.breadth and other.rank > role.rank:
                logger.warning(
                    "Catalog: role '%s' (tier=%s, rank=%d) is outranked by narrower role '%s' (tier=%s, rank=%d)",
                    role.code,
                    role.tier.value,
                    role.rank,
                    other.code,
                    other.tier.value,
                    other.rank,
                )


def role_display_name(code: str) -> str:
    """``ORG_PAYROLL_ADMIN`` → ``Org Payroll Admin``."""
    return " ".join(word.capitalize() for word in code.split("_") if word)


__all__ = [
    "CatalogStore",
    "role_display_name",
]
