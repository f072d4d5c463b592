"""Immutable catalog records: permissions and roles."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..scopes import ScopeType
from .constants import TIER_BREADTH, TIER_SCOPE, RoleTier


@dataclass(frozen=True)
class Permission:
    key: str
    category: str
    description: str = ""

    def __post_init__(self):
        if not self.key or not isinstance(self.key, str):
            raise ValueError("permission key must be a non-empty string.")
        if any(ch.isspace() for ch in self.key):
            raise ValueError(f"permission key '{self.key}' must not contain whitespace.")
        if not self.category or not isinstance(self.category, str):
            raise ValueError("permission category must be a non-empty string.")


@dataclass(frozen=True)
class Role:
    """A role: a tier, a rank, and the permissions it carries everywhere
    it is assigned.

    ``rank`` only feeds the coarse ``role_rank_at_least`` predicate.
    """

    code: str
    tier: RoleTier
    inherent_permissions: frozenset[str] = field(default_factory=frozenset)
    rank: int = 0
    name: str = ""
    description: str = ""

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("role code must be a non-empty string.")

        if not isinstance(self.tier, RoleTier):
            try:
                object.__setattr__(self, "tier", RoleTier(self.tier))
            except ValueError:
                raise ValueError(
                    f"tier '{self.tier}' not valid. "
                    f"Must be one of: {[t.value for t in RoleTier]}"
                ) from None

        if not isinstance(self.rank, int) or isinstance(self.rank, bool):
            raise ValueError("rank must be an integer.")

        permissions = frozenset(self.inherent_permissions)
        for key in permissions:
            if not isinstance(key, str) or not key:
                raise ValueError("permission values must be non-empty strings.")
        object.__setattr__(self, "inherent_permissions", permissions)

    @property
    def scope_type(self) -> ScopeType:
        """The only scope type this role may be assigned at."""
        return TIER_SCOPE[self.tier]

    @property
    def breadth(self) -> int:
        return TIER_BREADTH[self.tier]

    def allows_scope(self, scope_type: ScopeType) -> bool:
        return scope_type is self.scope_type


__all__ = [
    "Permission",
    "Role",
]
