"""Resolution engine: effective permission for (user, permission, scope).

Decision procedure for ``has_permission(user, P, S)``:

1. ``P`` must exist in the catalog, otherwise :class:`UnknownPermission`.
2. ``chain = ancestors(S)``.
3. Assignments of the user whose scope is in ``chain``.
4. ``base`` = union of the inherent permissions of those roles.
5. Grants for the user and for the roles from step 3, restricted to ``P``,
   to scopes in ``chain`` and to unexpired grants.
6. Any DENY grant wins. Else a base-role match or an ALLOW grant allows.
   Else default deny.

A deny is a :class:`Decision`, never an exception. Only malformed scope or
catalog data raises.

``SELF`` scopes are evaluated against the resource owner first; they never
generalize to the organization tree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from .audit import AuditAction, AuditEmitter
from .catalog import CatalogStore, Role
from .config import AuthzConfig
from .exceptions import StorageError
from .scopes import ScopeGraph, ScopeNode, ScopeType
from .stores import Assignment, AssignmentStore, Grant, GrantEffect, GrantStore, utcnow

logger = logging.getLogger(__name__)

RULE_DEFAULT_DENY = "no matching grant or role"
RULE_NOT_OWNER = "not resource owner"


@dataclass(frozen=True)
class Decision:
    """Outcome of a permission check."""

    allowed: bool
    deciding_rule: str
    permission_key: str
    scope: ScopeNode
    grant_id: Optional[str] = None
    role_code: Optional[str] = None

    @property
    def denied(self) -> bool:
        return not self.allowed

    @property
    def denied_by_grant(self) -> bool:
        return not self.allowed and self.grant_id is not None


@dataclass(frozen=True)
class AccessSummary:
    """What a user can do at a scope, and why."""

    user_id: str
    scope: ScopeNode
    chain: tuple[ScopeNode, ...]
    assignments: tuple[Assignment, ...]
    allow_grants: tuple[Grant, ...]
    deny_grants: tuple[Grant, ...]
    effective_permissions: frozenset[str]


@dataclass
class _Resolution:
    """Per-call working set; discarded when the call returns."""

    scope: ScopeNode
    chain: list[ScopeNode]
    bindings: list[tuple[Assignment, Role]] = field(default_factory=list)
    grants: list[Grant] = field(default_factory=list)
    is_owner: bool = True

    def position(self, scope: ScopeNode) -> int:
        return self.chain.index(scope)

    def narrowest(self, grants: list[Grant]) -> Grant:
        # Most recent first so min() keeps it among equally narrow grants.
        newest_first = sorted(grants, key=lambda g: (g.created_at, g.id), reverse=True)
        return min(newest_first, key=lambda g: self.position(g.scope))


class ResolutionEngine:
    """Computes effective permissions from catalog, scopes, assignments and grants.

    Holds references to its collaborators only; every call is a pure function
    of its arguments and the store contents at call time.

    Example::

        engine = ResolutionEngine(catalog, ScopeGraph(directory), assignments, grants)
        decision = engine.has_permission("u-1", "approve_payroll", ScopeNode.project("proj-7"))
        if decision.allowed:
            ...
    """

    def __init__(
        self,
        catalog: CatalogStore,
        graph: ScopeGraph,
        assignments: AssignmentStore,
        grants: GrantStore,
        *,
        audit: Optional[AuditEmitter] = None,
        config: Optional[AuthzConfig] = None,
    ) -> None:
        self._catalog = catalog
        self._graph = graph
        self._assignments = assignments
        self._grants = grants
        self._audit = audit
        self._config = config or AuthzConfig()

    @property
    def catalog(self) -> CatalogStore:
        return self._catalog

    @property
    def graph(self) -> ScopeGraph:
        return self._graph

    # ── Public API ──────────────────────────────────────

    def has_permission(
        self,
        user_id: str,
        permission_key: str,
        scope: ScopeNode,
        *,
        resource_owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
        report_denial: bool = True,
    ) -> Decision:
        """Decide whether ``user_id`` may exercise ``permission_key`` at ``scope``.

        Args:
            user_id: Verified subject identity.
            permission_key: Catalog permission key.
            scope: Scope the action applies to.
            resource_owner_id: Owner of the resource for ``SELF`` checks when
                the scope node itself carries no owner id. A ``SELF`` check
                with no owner from either source is denied.
            now: Evaluation time for grant expiry (default: current UTC time).
            report_denial: Send deny-by-grant decisions to the audit emitter.
                The admin guard turns this off so a failed pre-check leaves
                no audit trace.

        Raises:
            UnknownPermission: ``permission_key`` is not in the catalog.
            ScopeNotFound: the scope chain references missing tenancy data.
        """
        self._catalog.get_permission(permission_key)
        resolution = self._resolve(user_id, scope, resource_owner_id, now)
        decision = self._decide(resolution, permission_key)

        logger.debug(
            "Access %s: %s %s@%s (%s)",
            "allowed" if decision.allowed else "denied",
            user_id,
            permission_key,
            scope,
            decision.deciding_rule,
            extra={"user_id": user_id, "scope": str(scope)},
        )
        if report_denial and decision.denied_by_grant:
            self._report_denial(user_id, decision)
        return decision

    def has_any_permission(
        self,
        user_id: str,
        permission_keys: Iterable[str],
        scope: ScopeNode,
        *,
        resource_owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """True iff ``has_permission`` would allow at least one of the keys.

        Meant for UI guards over several actions; denials are not reported to
        the audit trail. An empty key list is never allowed.

        Raises:
            UnknownPermission: any key is not in the catalog.
        """
        keys = self._known_keys(permission_keys)
        resolution = self._resolve(user_id, scope, resource_owner_id, now)
        return any(self._decide(resolution, key).allowed for key in keys)

    def has_all_permissions(
        self,
        user_id: str,
        permission_keys: Iterable[str],
        scope: ScopeNode,
        *,
        resource_owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """True iff ``has_permission`` would allow every one of the keys.

        An empty key list is denied, like in ``has_any_permission``.
        """
        keys = self._known_keys(permission_keys)
        resolution = self._resolve(user_id, scope, resource_owner_id, now)
        return bool(keys) and all(self._decide(resolution, key).allowed for key in keys)

    def get_effective_permissions(
        self,
        user_id: str,
        scope: ScopeNode,
        *,
        resource_owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> frozenset[str]:
        """Every catalog permission ``has_permission`` would allow at ``scope``."""
        resolution = self._resolve(user_id, scope, resource_owner_id, now)
        return frozenset(
            key for key in self._catalog.permission_keys() if self._decide(resolution, key).allowed
        )

    def role_rank_at_least(self, user_id: str, scope: ScopeNode, required_role_code: str) -> bool:
        """Legacy "at least role X" check.

        True iff the user holds an assignment at ``scope`` or one of its
        ancestors whose role rank is >= the rank of ``required_role_code``.
        It ignores grants entirely, so it is never a substitute for
        ``has_permission`` when a DENY could apply.
        """
        required = self._catalog.get_role(required_role_code)
        resolution = self._resolve(user_id, scope, None, None, with_grants=False)
        return any(role.rank >= required.rank for _, role in resolution.bindings)

    def explain(
        self,
        user_id: str,
        scope: ScopeNode,
        *,
        resource_owner_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AccessSummary:
        """Data-scope view for admin screens: covering assignments, active
        grants and the resulting effective permissions."""
        resolution = self._resolve(user_id, scope, resource_owner_id, now)
        effective = frozenset(
            key for key in self._catalog.permission_keys() if self._decide(resolution, key).allowed
        )
        return AccessSummary(
            user_id=user_id,
            scope=scope,
            chain=tuple(resolution.chain),
            assignments=tuple(a for a, _ in resolution.bindings),
            allow_grants=tuple(g for g in resolution.grants if g.effect is GrantEffect.ALLOW),
            deny_grants=tuple(g for g in resolution.grants if g.effect is GrantEffect.DENY),
            effective_permissions=effective,
        )

    # ── Internals ───────────────────────────────────────

    def _known_keys(self, permission_keys: Iterable[str]) -> list[str]:
        keys = list(permission_keys)
        for key in keys:
            self._catalog.get_permission(key)
        return keys

    def _resolve(
        self,
        user_id: str,
        scope: ScopeNode,
        resource_owner_id: Optional[str],
        now: Optional[datetime],
        *,
        with_grants: bool = True,
    ) -> _Resolution:
        if scope.type is ScopeType.SELF:
            # Unknown ownership is not ownership.
            owners = {o for o in (scope.id, resource_owner_id) if o}
            if not owners or any(owner != user_id for owner in owners):
                return _Resolution(scope=scope, chain=[scope], is_owner=False)
            chain = [scope]
            covering = [a for a in self._assignments.assignments_for(user_id) if a.scope.type is ScopeType.SELF]
        else:
            chain = self._graph.ancestors(scope)
            covering = [a for a in self._assignments.assignments_for(user_id) if a.scope in chain]
            # Narrowest assignment first.
            covering.sort(key=lambda a: chain.index(a.scope))

        resolution = _Resolution(
            scope=scope,
            chain=chain,
            bindings=[(a, self._catalog.get_role(a.role_code)) for a in covering],
        )
        if not with_grants:
            return resolution

        t = utcnow() if now is None else now
        role_codes = {a.role_code for a in covering}
        resolution.grants = [
            g
            for g in self._grants.grants_for(user_ids=(user_id,), role_codes=role_codes)
            if g.scope in chain and not g.is_expired(now=t)
        ]
        return resolution

    def _decide(self, resolution: _Resolution, permission_key: str) -> Decision:
        scope = resolution.scope
        if not resolution.is_owner:
            return Decision(False, RULE_NOT_OWNER, permission_key, scope)

        matching = [g for g in resolution.grants if g.permission_key == permission_key]

        denies = [g for g in matching if g.effect is GrantEffect.DENY]
        if denies:
            grant = resolution.narrowest(denies)
            return Decision(
                False,
                f"deny-grant:{grant.id}@{grant.scope}",
                permission_key,
                scope,
                grant_id=grant.id,
            )

        for assignment, role in resolution.bindings:
            if permission_key in role.inherent_permissions:
                return Decision(
                    True,
                    f"role:{role.code}@{assignment.scope}",
                    permission_key,
                    scope,
                    role_code=role.code,
                )

        allows = [g for g in matching if g.effect is GrantEffect.ALLOW]
        if allows:
            grant = resolution.narrowest(allows)
            return Decision(
                True,
                f"allow-grant:{grant.id}@{grant.scope}",
                permission_key,
                scope,
                grant_id=grant.id,
            )

        return Decision(False, RULE_DEFAULT_DENY, permission_key, scope)

    def _report_denial(self, user_id: str, decision: Decision) -> None:
        logger.info(
            "Access denied by grant %s: %s %s@%s",
            decision.grant_id,
            user_id,
            decision.permission_key,
            decision.scope,
            extra={"user_id": user_id, "scope": str(decision.scope)},
        )
        if self._audit is None or not self._config.audit_denials:
            return
        try:
            self._audit.emit(
                actor=user_id,
                action=AuditAction.ACCESS_DENIED_BY_GRANT,
                target_entity=f"grant:{decision.grant_id}",
                scope=str(decision.scope),
                after={
                    "permission_key": decision.permission_key,
                    "deciding_rule": decision.deciding_rule,
                },
            )
        except StorageError as e:
            # The deny is still returned.
            logger.error("Denial audit failed for %s: %s", decision.grant_id, e)


__all__ = [
    "RULE_DEFAULT_DENY",
    "RULE_NOT_OWNER",
    "AccessSummary",
    "Decision",
    "ResolutionEngine",
]
