"""Administrative operations on assignments and grants.

Every mutation is authorized through the resolution engine first
(``manage_roles`` for assignments, ``manage_grants`` for grants, at the
target scope) and audited synchronously before it reports success.

Ordering per operation:
- create: validate → authorize → store write → audit write (store write is
  undone if the audit write fails)
- revoke: load → authorize → (under the store's per-entity hold) audit
  write → hard delete

A failed pre-check raises :class:`Forbidden` with no store or audit effect.
Revoking something that is already gone succeeds silently.
"""

from __future__ import annotations

import logging
from typing import Optional

from .audit import AuditAction, AuditEmitter, AuditEntry, QueryableAuditSink
from .config import AuthzConfig
from .engine import ResolutionEngine
from .exceptions import ConfigurationError, Forbidden, InvalidGrant, ScopeTierMismatch, StorageError
from .scopes import GLOBAL_SCOPE, ScopeNode, ScopeType
from .stores import Assignment, AssignmentStore, Grant, GrantStore, utcnow

logger = logging.getLogger(__name__)


class AdminService:
    """Guarded, audited mutations of the assignment and grant stores."""

    def __init__(
        self,
        engine: ResolutionEngine,
        assignments: AssignmentStore,
        grants: GrantStore,
        audit: AuditEmitter,
        *,
        config: Optional[AuthzConfig] = None,
    ) -> None:
        self._engine = engine
        self._assignments = assignments
        self._grants = grants
        self._audit = audit
        self._config = config or AuthzConfig()

    # ── Assignments ─────────────────────────────────────

    def create_assignment(
        self,
        actor_id: str,
        user_id: str,
        role_code: str,
        scope: ScopeNode,
    ) -> Assignment:
        """Assign ``role_code`` to ``user_id`` at ``scope``.

        Raises:
            UnknownRole: role code not in the catalog.
            ScopeTierMismatch: the role's tier does not permit ``scope``.
            ScopeNotFound: ``scope`` references missing tenancy data.
            Forbidden: ``actor_id`` lacks ``manage_roles`` at the target scope.
        """
        role = self._engine.catalog.get_role(role_code)
        if not role.allows_scope(scope.type):
            raise ScopeTierMismatch(
                f"Role '{role_code}' (tier {role.tier.value}) can only be assigned at "
                f"{role.scope_type.value} scope, not {scope.type.value}",
                role_code=role_code,
                scope=str(scope),
            )
        if scope.type is ScopeType.SELF:
            if scope.id is not None and scope.id != user_id:
                raise ScopeTierMismatch(
                    f"SELF assignment for '{user_id}' cannot name another owner '{scope.id}'",
                    role_code=role_code,
                    scope=str(scope),
                )
            scope = ScopeNode.self_()

        self._authorize(actor_id, self._config.manage_roles_permission, self._target_scope(scope))

        assignment = Assignment(
            user_id=user_id,
            role_code=role_code,
            scope=scope,
            assigned_by=actor_id,
        )
        self._assignments.create(assignment)
        try:
            self._audit.emit(
                actor=actor_id,
                action=AuditAction.ASSIGNMENT_CREATED,
                target_entity=f"assignment:{assignment.id}",
                scope=str(scope),
                after=assignment.to_record(),
            )
        except StorageError:
            self._assignments.revoke(assignment.id)
            raise

        logger.info(
            "Assignment %s created: %s as %s at %s by %s",
            assignment.id,
            user_id,
            role_code,
            scope,
            actor_id,
        )
        return assignment

    def revoke_assignment(self, actor_id: str, assignment_id: str) -> None:
        """Hard-delete an assignment. Missing or already revoked ids succeed.

        The audit entry is written while the store holds the assignment, so
        of two racing revokes only the one that deletes leaves an entry.
        """
        assignment = self._assignments.get(assignment_id)
        if assignment is None:
            logger.debug("Assignment %s already revoked", assignment_id)
            return None

        self._authorize(actor_id, self._config.manage_roles_permission, self._target_scope(assignment.scope))

        def _audit_revoke(current: Assignment) -> None:
            self._audit.emit(
                actor=actor_id,
                action=AuditAction.ASSIGNMENT_REVOKED,
                target_entity=f"assignment:{current.id}",
                scope=str(current.scope),
                before=current.to_record(),
            )

        if self._assignments.revoke(assignment_id, before_delete=_audit_revoke) is None:
            logger.info("Assignment %s was revoked concurrently", assignment_id)
        else:
            logger.info("Assignment %s revoked by %s", assignment_id, actor_id)
        return None

    def list_assignments(self, actor_id: str, scope: ScopeNode) -> list[Assignment]:
        """Assignments attached directly to ``scope``."""
        self._authorize(actor_id, self._config.manage_roles_permission, self._target_scope(scope))
        return self._assignments.list_for_scope(scope)

    # ── Grants ──────────────────────────────────────────

    def create_grant(self, actor_id: str, grant: Grant) -> Grant:
        """Persist an ALLOW/DENY override. ``created_by``/``created_at`` are
        set from the actor and the current time.

        Raises:
            UnknownPermission: grant names a permission not in the catalog.
            UnknownRole: role subject not in the catalog.
            InvalidGrant: ``valid_until`` is not in the future.
            ScopeNotFound: grant scope references missing tenancy data.
            Forbidden: ``actor_id`` lacks ``manage_grants`` at the grant scope.
        """
        catalog = self._engine.catalog
        catalog.get_permission(grant.permission_key)
        if grant.subject_role_code is not None:
            catalog.get_role(grant.subject_role_code)

        now = utcnow()
        if grant.valid_until is not None and grant.valid_until <= now:
            raise InvalidGrant(
                f"Grant valid_until {grant.valid_until.isoformat()} is not in the future",
                grant_id=grant.id,
            )

        self._authorize(actor_id, self._config.manage_grants_permission, grant.scope)

        stored = grant.model_copy(update={"created_by": actor_id, "created_at": now})
        self._grants.create(stored)
        try:
            self._audit.emit(
                actor=actor_id,
                action=AuditAction.GRANT_CREATED,
                target_entity=f"grant:{stored.id}",
                scope=str(stored.scope),
                after=stored.to_record(),
            )
        except StorageError:
            self._grants.revoke(stored.id)
            raise

        logger.info(
            "Grant %s created: %s %s for %s at %s by %s",
            stored.id,
            stored.effect.value,
            stored.permission_key,
            stored.subject,
            stored.scope,
            actor_id,
        )
        return stored

    def revoke_grant(self, actor_id: str, grant_id: str) -> None:
        """Hard-delete a grant. Missing or already revoked ids succeed."""
        grant = self._grants.get(grant_id)
        if grant is None:
            logger.debug("Grant %s already revoked", grant_id)
            return None

        self._authorize(actor_id, self._config.manage_grants_permission, grant.scope)

        def _audit_revoke(current: Grant) -> None:
            self._audit.emit(
                actor=actor_id,
                action=AuditAction.GRANT_REVOKED,
                target_entity=f"grant:{current.id}",
                scope=str(current.scope),
                before=current.to_record(),
            )

        if self._grants.revoke(grant_id, before_delete=_audit_revoke) is None:
            logger.info("Grant %s was revoked concurrently", grant_id)
        else:
            logger.info("Grant %s revoked by %s", grant_id, actor_id)
        return None

    def list_grants(self, actor_id: str, scope: ScopeNode) -> list[Grant]:
        """Grants attached directly to ``scope``."""
        self._authorize(actor_id, self._config.manage_grants_permission, scope)
        return self._grants.list_for_scope(scope)

    # ── Audit log ───────────────────────────────────────

    def list_audit_entries(self, actor_id: str, scope: ScopeNode) -> list[AuditEntry]:
        """Audit entries recorded at ``scope``, newest first.

        Requires the configured audit permission (``view_audit_logs`` by
        default) at ``scope`` and a sink implementing ``QueryableAuditSink``.
        """
        sink = self._audit.sink
        if not isinstance(sink, QueryableAuditSink):
            raise ConfigurationError("Configured audit sink does not support queries")
        self._authorize(actor_id, self._config.view_audit_permission, scope)
        return sink.query(scope=str(scope))

    # ── Internals ───────────────────────────────────────

    @staticmethod
    def _target_scope(scope: ScopeNode) -> ScopeNode:
        # SELF bindings are administered platform-wide.
        if scope.type is ScopeType.SELF:
            return GLOBAL_SCOPE
        return scope

    def _authorize(self, actor_id: str, permission_key: str, scope: ScopeNode) -> None:
        decision = self._engine.has_permission(actor_id, permission_key, scope, report_denial=False)
        if decision.allowed:
            return
        logger.warning(
            "Forbidden: %s lacks %s at %s (%s)",
            actor_id,
            permission_key,
            scope,
            decision.deciding_rule,
            extra={"user_id": actor_id, "scope": str(scope)},
        )
        raise Forbidden(
            f"'{actor_id}' lacks '{permission_key}' at {scope}",
            actor_id=actor_id,
            permission_key=permission_key,
            scope=str(scope),
            deciding_rule=decision.deciding_rule,
        )


__all__ = ["AdminService"]
