"""Assignment store: persisted (user, role, scope) bindings."""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol, runtime_checkable

from ..exceptions import StorageError
from ..scopes import ScopeNode
from .models import Assignment


@runtime_checkable
class AssignmentStore(Protocol):
    """Storage contract for assignments.

    ``create`` and ``revoke`` are atomic per assignment. ``revoke`` returns the
    removed assignment, or ``None`` when it was already gone; it never raises
    for a missing id so concurrent revokes stay idempotent.

    ``before_delete`` runs with the record while the revoke holds the
    assignment exclusively: only the caller that actually deletes sees it, and
    an exception from it aborts the delete.
    """

    def assignments_for(self, user_id: str) -> list[Assignment]: ...

    def get(self, assignment_id: str) -> Optional[Assignment]: ...

    def list_for_scope(self, scope: ScopeNode) -> list[Assignment]: ...

    def create(self, assignment: Assignment) -> Assignment: ...

    def revoke(
        self,
        assignment_id: str,
        *,
        before_delete: Optional[Callable[[Assignment], None]] = None,
    ) -> Optional[Assignment]: ...


class InMemoryAssignmentStore:
    """Thread-safe in-memory assignment store."""

    def __init__(self) -> None:
        self._by_id: dict[str, Assignment] = {}
        self._by_user: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def assignments_for(self, user_id: str) -> list[Assignment]:
        with self._lock:
            ids = list(self._by_user.get(user_id, ()))
            found = [self._by_id[i] for i in ids]
        return sorted(found, key=lambda a: (a.created_at, a.id))

    def get(self, assignment_id: str) -> Optional[Assignment]:
        with self._lock:
            return self._by_id.get(assignment_id)

    def list_for_scope(self, scope: ScopeNode) -> list[Assignment]:
        with self._lock:
            found = [a for a in self._by_id.values() if a.scope == scope]
        return sorted(found, key=lambda a: (a.created_at, a.id))

    def create(self, assignment: Assignment) -> Assignment:
        with self._lock:
            if assignment.id in self._by_id:
                raise StorageError(
                    f"Assignment '{assignment.id}' already exists",
                    assignment_id=assignment.id,
                )
            self._by_id[assignment.id] = assignment
            self._by_user.setdefault(assignment.user_id, set()).add(assignment.id)
        return assignment

    def revoke(
        self,
        assignment_id: str,
        *,
        before_delete: Optional[Callable[[Assignment], None]] = None,
    ) -> Optional[Assignment]:
        with self._lock:
            assignment = self._by_id.get(assignment_id)
            if assignment is None:
                return None
            if before_delete is not None:
                before_delete(assignment)
            del self._by_id[assignment_id]
            ids = self._by_user.get(assignment.user_id)
            if ids is not None:
                ids.discard(assignment_id)
                if not ids:
                    del self._by_user[assignment.user_id]
        return assignment


__all__ = [
    "AssignmentStore",
    "InMemoryAssignmentStore",
]
