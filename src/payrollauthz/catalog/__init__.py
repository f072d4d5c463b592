"""Role and permission catalog.

Defines:
- PermissionKeys: canonical permission key constants
- RoleTier: scope-breadth class of a role, with TIER_SCOPE / TIER_BREADTH
- Permission, Role: immutable catalog records
- CatalogStore: validated, read-mostly store
- build_default_catalog(): the platform's seeded roles and permissions
"""

from .constants import TIER_BREADTH, TIER_SCOPE, PermissionKeys, RoleTier
from .defaults import (
    DEFAULT_PERMISSIONS,
    ROLE_PROFILES,
    build_default_catalog,
    build_default_roles,
)
from .models import Permission, Role
from .store import CatalogStore, role_display_name

__all__ = [
    "DEFAULT_PERMISSIONS",
    "ROLE_PROFILES",
    "TIER_BREADTH",
    "TIER_SCOPE",
    "CatalogStore",
    "Permission",
    "PermissionKeys",
    "Role",
    "RoleTier",
    "build_default_catalog",
    "build_default_roles",
    "role_display_name",
]
