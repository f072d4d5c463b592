"""Redis-backed assignment and grant stores.

Layout (``prefix`` defaults to ``payrollauthz``)::

    {prefix}:assignments                 hash  id -> JSON record
    {prefix}:assignments:user:{user_id}  set   assignment ids
    {prefix}:grants                      hash  id -> JSON record
    {prefix}:grants:user:{user_id}       set   grant ids
    {prefix}:grants:role:{role_code}     set   grant ids
    {prefix}:{kind}:lock:{id}            string  revoke lock (redis-py Lock)

Every create/revoke runs inside ``WATCH``/``MULTI`` on the entity hash, so a
single entity write is all-or-nothing. A revoke also holds a per-entity lock
around its transaction: when two revokes race,
the loser waits, finds the record gone, never calls ``before_delete`` and
returns ``None``.

Reads are plain commands; Redis serves concurrent reads natively.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Optional

from redis.exceptions import LockError

from ..config import AuthzConfig
from ..exceptions import ConfigurationError, StorageError
from ..scopes import ScopeNode
from .models import Assignment, Grant

logger = logging.getLogger(__name__)


def _connect(config: AuthzConfig) -> Any:
    """Create a synchronous Redis client from config."""
    if not config.redis_url:
        raise ConfigurationError("REDIS_URL is required for Redis-backed stores")

    import redis as redis_sync

    return redis_sync.from_url(config.redis_url, decode_responses=True)


class _RedisEntityStore:
    kind: str = ""
    model: Any = None
    lock_timeout: float = 10.0
    lock_wait: float = 5.0

    def __init__(self, client: Any, *, prefix: str = "payrollauthz") -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_config(cls, config: AuthzConfig):
        return cls(_connect(config), prefix=config.redis_prefix)

    @property
    def _hash_key(self) -> str:
        return f"{self._prefix}:{self.kind}"

    def _index_key(self, subject_kind: str, subject: str) -> str:
        return f"{self._prefix}:{self.kind}:{subject_kind}:{subject}"

    def _load_many(self, ids: Iterable[str]) -> list[dict[str, Any]]:
        ids = sorted(ids)
        if not ids:
            return []
        raws = self._client.hmget(self._hash_key, ids)
        records = []
        for entity_id, raw in zip(ids, raws):
            if raw is None:
                # Index entry left behind by an interrupted writer.
                logger.debug("Redis %s index points at missing id %s", self.kind, entity_id)
                continue
            records.append(json.loads(raw))
        return records

    def _load_one(self, entity_id: str) -> Optional[dict[str, Any]]:
        raw = self._client.hget(self._hash_key, entity_id)
        return json.loads(raw) if raw else None

    def _all(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self._client.hgetall(self._hash_key).values()]

    def _create(self, entity_id: str, record: dict[str, Any], index_keys: list[str]) -> None:
        payload = json.dumps(record)

        def _txn(pipe) -> None:
            if pipe.hexists(self._hash_key, entity_id):
                raise StorageError(
                    f"{self.kind[:-1].capitalize()} '{entity_id}' already exists",
                    entity_id=entity_id,
                )
            pipe.multi()
            pipe.hset(self._hash_key, entity_id, payload)
            for key in index_keys:
                pipe.sadd(key, entity_id)

        self._client.transaction(_txn, self._hash_key)

    def _lock_key(self, entity_id: str) -> str:
        return f"{self._prefix}:{self.kind}:lock:{entity_id}"

    def _revoke(
        self,
        entity_id: str,
        index_keys_for: Callable[[dict[str, Any]], list[str]],
        before_delete: Optional[Callable[[Any], None]] = None,
    ) -> Optional[dict[str, Any]]:
        removed: dict[str, Any] = {}
        notified: list[str] = []

        def _txn(pipe) -> None:
            removed.clear()
            raw = pipe.hget(self._hash_key, entity_id)
            if raw is None:
                return
            record = json.loads(raw)
            # WATCH retries on any write to the shared hash; notify once.
            if before_delete is not None and not notified:
                before_delete(self.model.from_record(record))
                notified.append(entity_id)
            pipe.multi()
            pipe.hdel(self._hash_key, entity_id)
            for key in index_keys_for(record):
                pipe.srem(key, entity_id)
            removed.update(record)

        try:
            with self._client.lock(
                self._lock_key(entity_id),
                timeout=self.lock_timeout,
                blocking_timeout=self.lock_wait,
            ):
                self._client.transaction(_txn, self._hash_key)
        except LockError as e:
            raise StorageError(
                f"Could not lock {self.kind[:-1]} '{entity_id}' for revoke",
                entity_id=entity_id,
            ) from e
        return removed or None


class RedisAssignmentStore(_RedisEntityStore):
    """Assignment store on a shared Redis."""

    kind = "assignments"
    model = Assignment

    def _index_keys(self, record: dict[str, Any]) -> list[str]:
        return [self._index_key("user", record["user_id"])]

    def assignments_for(self, user_id: str) -> list[Assignment]:
        ids = self._client.smembers(self._index_key("user", user_id))
        found = [Assignment.from_record(r) for r in self._load_many(ids)]
        return sorted(found, key=lambda a: (a.created_at, a.id))

    def get(self, assignment_id: str) -> Optional[Assignment]:
        record = self._load_one(assignment_id)
        return Assignment.from_record(record) if record else None

    def list_for_scope(self, scope: ScopeNode) -> list[Assignment]:
        found = [Assignment.from_record(r) for r in self._all()]
        return sorted((a for a in found if a.scope == scope), key=lambda a: (a.created_at, a.id))

    def create(self, assignment: Assignment) -> Assignment:
        record = assignment.to_record()
        self._create(assignment.id, record, self._index_keys(record))
        return assignment

    def revoke(
        self,
        assignment_id: str,
        *,
        before_delete: Optional[Callable[[Assignment], None]] = None,
    ) -> Optional[Assignment]:
        record = self._revoke(assignment_id, self._index_keys, before_delete)
        return Assignment.from_record(record) if record else None


class RedisGrantStore(_RedisEntityStore):
    """Grant store on a shared Redis."""

    kind = "grants"
    model = Grant

    def _index_keys(self, record: dict[str, Any]) -> list[str]:
        if record.get("subject_user_id"):
            return [self._index_key("user", record["subject_user_id"])]
        return [self._index_key("role", record["subject_role_code"])]

    def grants_for(
        self,
        *,
        user_ids: Iterable[str] = (),
        role_codes: Iterable[str] = (),
    ) -> list[Grant]:
        ids: set[str] = set()
        for user_id in user_ids:
            ids.update(self._client.smembers(self._index_key("user", user_id)))
        for role_code in role_codes:
            ids.update(self._client.smembers(self._index_key("role", role_code)))
        found = [Grant.from_record(r) for r in self._load_many(ids)]
        return sorted(found, key=lambda g: (g.created_at, g.id))

    def get(self, grant_id: str) -> Optional[Grant]:
        record = self._load_one(grant_id)
        return Grant.from_record(record) if record else None

    def list_for_scope(self, scope: ScopeNode) -> list[Grant]:
        found = [Grant.from_record(r) for r in self._all()]
        return sorted((g for g in found if g.scope == scope), key=lambda g: (g.created_at, g.id))

    def create(self, grant: Grant) -> Grant:
        record = grant.to_record()
        self._create(grant.id, record, self._index_keys(record))
        return grant

    def revoke(
        self,
        grant_id: str,
        *,
        before_delete: Optional[Callable[[Grant], None]] = None,
    ) -> Optional[Grant]:
        record = self._revoke(grant_id, self._index_keys, before_delete)
        return Grant.from_record(record) if record else None


__all__ = [
    "RedisAssignmentStore",
    "RedisGrantStore",
]
