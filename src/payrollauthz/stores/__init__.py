"""Assignment and grant stores.

Provides:
- Assignment, Grant, GrantEffect: persisted records
- AssignmentStore, GrantStore: storage protocols
- InMemoryAssignmentStore, InMemoryGrantStore: thread-safe in-process stores
- RedisAssignmentStore, RedisGrantStore: shared stores on Redis
"""

from .assignments import AssignmentStore, InMemoryAssignmentStore
from .grants import GrantStore, InMemoryGrantStore
from .models import GRANT_SCOPE_TYPES, Assignment, Grant, GrantEffect, utcnow
from .redis_backend import RedisAssignmentStore, RedisGrantStore

__all__ = [
    "GRANT_SCOPE_TYPES",
    "Assignment",
    "AssignmentStore",
    "Grant",
    "GrantEffect",
    "GrantStore",
    "InMemoryAssignmentStore",
    "InMemoryGrantStore",
    "RedisAssignmentStore",
    "RedisGrantStore",
    "utcnow",
]
