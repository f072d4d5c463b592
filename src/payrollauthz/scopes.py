"""Tenancy scopes and the scope-containment graph.

Provides:
- ``ScopeType``: closed set of scope kinds (GLOBAL … PROJECT, SELF).
- ``ScopeNode``: a concrete ``(type, id)`` scope instance.
- ``DirectoryLookup``: read-only collaborator resolving parents
  (project → company, company → organization).
- ``StaticDirectory``: in-memory directory.
- ``ScopeGraph``: ancestor walk used by the resolution engine.

Containment is strictly layered::

    GLOBAL ⊃ ORGANIZATION ⊃ COMPANY ⊃ PROJECT

``SELF`` sits outside the tree and never generalizes upward.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from .exceptions import ScopeCycleError, ScopeNotFound

logger = logging.getLogger(__name__)


class ScopeType(str, Enum):
    """Kinds of scope a permission can be checked at."""

    GLOBAL = "GLOBAL"
    ORGANIZATION = "ORGANIZATION"
    COMPANY = "COMPANY"
    PROJECT = "PROJECT"
    SELF = "SELF"


# Expected parent type for every hierarchical scope type.
PARENT_TYPE: dict[ScopeType, ScopeType] = {
    ScopeType.PROJECT: ScopeType.COMPANY,
    ScopeType.COMPANY: ScopeType.ORGANIZATION,
    ScopeType.ORGANIZATION: ScopeType.GLOBAL,
}


@dataclass(frozen=True)
class ScopeNode:
    """A concrete scope: ``(type, id)``.

    ``id`` is required for ORGANIZATION, COMPANY and PROJECT, forbidden for
    GLOBAL, and optional for SELF (where it names the resource owner).

    Textual form is ``TYPE:id`` (``GLOBAL`` alone), e.g. ``PROJECT:proj-7``.
    """

    type: ScopeType
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, ScopeType):
            try:
                object.__setattr__(self, "type", ScopeType(self.type))
            except ValueError:
                raise ValueError(
                    f"scope type '{self.type}' not valid. "
                    f"Must be one of: {[t.value for t in ScopeType]}"
                ) from None

        if self.type is ScopeType.GLOBAL:
            if self.id is not None:
                raise ValueError("GLOBAL scope does not take an id.")
        elif self.type is not ScopeType.SELF:
            if not self.id or not isinstance(self.id, str):
                raise ValueError(f"{self.type.value} scope requires a non-empty id.")

    # ── Builders ────────────────────────────────────────

    @classmethod
    def global_(cls) -> "ScopeNode":
        return cls(ScopeType.GLOBAL)

    @classmethod
    def organization(cls, org_id: str) -> "ScopeNode":
        return cls(ScopeType.ORGANIZATION, org_id)

    @classmethod
    def company(cls, company_id: str) -> "ScopeNode":
        return cls(ScopeType.COMPANY, company_id)

    @classmethod
    def project(cls, project_id: str) -> "ScopeNode":
        return cls(ScopeType.PROJECT, project_id)

    @classmethod
    def self_(cls, owner_id: Optional[str] = None) -> "ScopeNode":
        return cls(ScopeType.SELF, owner_id)

    @classmethod
    def parse(cls, value: str) -> "ScopeNode":
        """Parse the textual form produced by ``str(node)``.

        Example::

            ScopeNode.parse("PROJECT:proj-7")  # ScopeNode(PROJECT, "proj-7")
            ScopeNode.parse("GLOBAL")          # ScopeNode(GLOBAL, None)
        """
        type_part, _, id_part = value.partition(":")
        return cls(ScopeType(type_part.upper()), id_part or None)

    @property
    def is_hierarchical(self) -> bool:
        return self.type is not ScopeType.SELF

    def __str__(self) -> str:
        if self.id is None:
            return self.type.value
        return f"{self.type.value}:{self.id}"


GLOBAL_SCOPE = ScopeNode.global_()


@runtime_checkable
class DirectoryLookup(Protocol):
    """Tenancy directory: resolves the parent of a hierarchical scope.

    Must return ``None`` when the scope's tenancy object does not exist.
    Organizations resolve to ``GLOBAL``.
    """

    def parent_of(self, scope: ScopeNode) -> Optional[ScopeNode]: ...


class StaticDirectory:
    """In-memory tenancy directory.

    Example::

        directory = StaticDirectory()
        directory.add_organization("org-42")
        directory.add_company("co-3", org_id="org-42")
        directory.add_project("proj-7", company_id="co-3")
    """

    def __init__(self) -> None:
        self._organizations: set[str] = set()
        self._company_org: dict[str, str] = {}
        self._project_company: dict[str, str] = {}

    def add_organization(self, org_id: str) -> None:
        self._organizations.add(org_id)

    def add_company(self, company_id: str, *, org_id: str) -> None:
        self._company_org[company_id] = org_id

    def add_project(self, project_id: str, *, company_id: str) -> None:
        self._project_company[project_id] = company_id

    def parent_of(self, scope: ScopeNode) -> Optional[ScopeNode]:
        if scope.type is ScopeType.ORGANIZATION:
            return GLOBAL_SCOPE if scope.id in self._organizations else None
        if scope.type is ScopeType.COMPANY:
            org_id = self._company_org.get(scope.id)
            return ScopeNode.organization(org_id) if org_id else None
        if scope.type is ScopeType.PROJECT:
            company_id = self._project_company.get(scope.id)
            return ScopeNode.company(company_id) if company_id else None
        return None


class ScopeGraph:
    """Scope containment over a tenancy directory.

    Stateless apart from the directory reference; every call re-reads the
    directory, so results always reflect current tenancy data.
    """

    def __init__(self, directory: DirectoryLookup) -> None:
        self._directory = directory

    def parent_of(self, scope: ScopeNode) -> Optional[ScopeNode]:
        """Return the direct parent of ``scope``.

        GLOBAL and SELF have no parent. Raises :class:`ScopeNotFound` when a
        hierarchical scope's tenancy object is unknown to the directory, and
        :class:`ScopeCycleError` when the directory answers with a parent of
        the wrong type.
        """
        if scope.type in (ScopeType.GLOBAL, ScopeType.SELF):
            return None

        parent = self._directory.parent_of(scope)
        if parent is None:
            raise ScopeNotFound(
                f"Scope '{scope}' has no parent in the tenancy directory",
                scope=str(scope),
            )

        expected = PARENT_TYPE[scope.type]
        if parent.type is not expected:
            raise ScopeCycleError(
                f"Scope '{scope}' resolved to parent '{parent}', expected a {expected.value} scope",
                scope=str(scope),
                parent=str(parent),
            )
        return parent

    def ancestors(self, scope: ScopeNode) -> list[ScopeNode]:
        """Ordered chain from ``scope`` itself up to GLOBAL.

        ``SELF`` returns ``[scope]``.

        Example::

            graph.ancestors(ScopeNode.project("proj-7"))
            # [PROJECT:proj-7, COMPANY:co-3, ORGANIZATION:org-42, GLOBAL]
        """
        chain = [scope]
        current = scope
        while True:
            parent = self.parent_of(current)
            if parent is None:
                break
            chain.append(parent)
            current = parent

        logger.debug("Scope chain for %s: %s", scope, " > ".join(str(s) for s in chain))
        return chain

    def covers(self, ancestor: ScopeNode, scope: ScopeNode) -> bool:
        """True if ``ancestor`` equals ``scope`` or contains it."""
        return ancestor in self.ancestors(scope)


__all__ = [
    "GLOBAL_SCOPE",
    "PARENT_TYPE",
    "DirectoryLookup",
    "ScopeGraph",
    "ScopeNode",
    "ScopeType",
    "StaticDirectory",
]
