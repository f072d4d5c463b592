"""Grant store: persisted ALLOW/DENY overrides."""

from __future__ import annotations

import threading
from typing import Callable, Iterable, Optional, Protocol, runtime_checkable

from ..exceptions import StorageError
from ..scopes import ScopeNode
from .models import Grant


@runtime_checkable
class GrantStore(Protocol):
    """Storage contract for grants.

    ``grants_for`` returns every grant whose subject is one of ``user_ids`` or
    ``role_codes``, expired ones included; expiry is the engine's concern.

    ``revoke`` follows the assignment store contract, ``before_delete`` included.
    """

    def grants_for(
        self,
        *,
        user_ids: Iterable[str] = (),
        role_codes: Iterable[str] = (),
    ) -> list[Grant]: ...

    def get(self, grant_id: str) -> Optional[Grant]: ...

    def list_for_scope(self, scope: ScopeNode) -> list[Grant]: ...

    def create(self, grant: Grant) -> Grant: ...

    def revoke(
        self,
        grant_id: str,
        *,
        before_delete: Optional[Callable[[Grant], None]] = None,
    ) -> Optional[Grant]: ...


class InMemoryGrantStore:
    """Thread-safe in-memory grant store."""

    def __init__(self) -> None:
        self._by_id: dict[str, Grant] = {}
        self._lock = threading.Lock()

    def grants_for(
        self,
        *,
        user_ids: Iterable[str] = (),
        role_codes: Iterable[str] = (),
    ) -> list[Grant]:
        users = set(user_ids)
        roles = set(role_codes)
        with self._lock:
            found = [
                g
                for g in self._by_id.values()
                if (g.subject_user_id is not None and g.subject_user_id in users)
                or (g.subject_role_code is not None and g.subject_role_code in roles)
            ]
        return sorted(found, key=lambda g: (g.created_at, g.id))

    def get(self, grant_id: str) -> Optional[Grant]:
        with self._lock:
            return self._by_id.get(grant_id)

    def list_for_scope(self, scope: ScopeNode) -> list[Grant]:
        with self._lock:
            found = [g for g in self._by_id.values() if g.scope == scope]
        return sorted(found, key=lambda g: (g.created_at, g.id))

    def create(self, grant: Grant) -> Grant:
        with self._lock:
            if grant.id in self._by_id:
                raise StorageError(f"Grant '{grant.id}' already exists", grant_id=grant.id)
            self._by_id[grant.id] = grant
        return grant

    def revoke(
        self,
        grant_id: str,
        *,
        before_delete: Optional[Callable[[Grant], None]] = None,
    ) -> Optional[Grant]:
        with self._lock:
            grant = self._by_id.get(grant_id)
            if grant is None:
                return None
            if before_delete is not None:
                before_delete(grant)
            del self._by_id[grant_id]
        return grant


__all__ = [
    "GrantStore",
    "InMemoryGrantStore",
]
