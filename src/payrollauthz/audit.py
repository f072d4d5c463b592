"""Audit emitter and sinks.

Every assignment/grant mutation and every deny-by-override decision is
reported as an ``AuditEntry``. The emitter writes synchronously: when
``AuditEmitter.emit`` returns, the sink has accepted the entry.

Provides:
- ``AuditAction``: action name constants.
- ``AuditEntry``: append-only record.
- ``AuditSink``: collaborator protocol (``record(entry)``).
- ``QueryableAuditSink``: a sink that can also list entries (``query``).
- ``InMemoryAuditSink``: queryable in-process sink.
- ``LoggingAuditSink``: writes entries as JSON to a logger.
- ``AuditEmitter``: builds entries and hands them to the sink.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable
from uuid import uuid4

from pydantic import BaseModel, Field

from .exceptions import StorageError
from .logging import redact_secrets
from .stores.models import utcnow

logger = logging.getLogger(__name__)


class AuditAction:
    """Audit action names (``{entity}.{verb}``)."""

    ASSIGNMENT_CREATED = "assignment.created"
    ASSIGNMENT_REVOKED = "assignment.revoked"
    GRANT_CREATED = "grant.created"
    GRANT_REVOKED = "grant.revoked"
    ACCESS_DENIED_BY_GRANT = "access.denied_by_grant"


class AuditEntry(BaseModel):
    """Write-only audit record."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: str(uuid4()))
    actor: str
    action: str
    target_entity: str
    scope: Optional[str] = None
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)


@runtime_checkable
class AuditSink(Protocol):
    """Receives audit entries. Must raise if the entry was not accepted."""

    def record(self, entry: AuditEntry) -> None: ...


@runtime_checkable
class QueryableAuditSink(AuditSink, Protocol):
    """A sink whose entries can be read back, newest first."""

    def query(
        self,
        *,
        scope: Optional[str] = None,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        target_entity: Optional[str] = None,
    ) -> list[AuditEntry]: ...


class InMemoryAuditSink:
    """Append-only in-memory sink with simple queries."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def record(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def query(
        self,
        *,
        scope: Optional[str] = None,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        target_entity: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Entries matching every given filter, newest first."""
        with self._lock:
            entries = list(self._entries)
        matched = [
            e
            for e in entries
            if (scope is None or e.scope == scope)
            and (actor is None or e.actor == actor)
            and (action is None or e.action == action)
            and (target_entity is None or e.target_entity == target_entity)
        ]
        return list(reversed(matched))


class LoggingAuditSink:
    """Sink that writes each entry as one JSON log line.

    Intended for deployments that ship logs to the audit store.
    """

    def __init__(self, logger_name: str = "payrollauthz.audit", level: int = logging.INFO) -> None:
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def record(self, entry: AuditEntry) -> None:
        payload = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        self._logger.log(self._level, redact_secrets(payload))


class AuditEmitter:
    """Builds audit entries and writes them synchronously to a sink."""

    def __init__(self, sink: AuditSink) -> None:
        self._sink = sink

    @property
    def sink(self) -> AuditSink:
        return self._sink

    def emit(
        self,
        *,
        actor: str,
        action: str,
        target_entity: str,
        scope: Optional[str] = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            actor=actor,
            action=action,
            target_entity=target_entity,
            scope=scope,
            before=before,
            after=after,
        )
        try:
            self._sink.record(entry)
        except Exception as e:
            logger.error("Audit write failed for %s on %s: %s", action, target_entity, e)
            raise StorageError(
                f"Audit sink rejected '{action}' for {target_entity}",
                action=action,
                target_entity=target_entity,
            ) from e

        logger.debug("Audit: %s %s by %s", action, target_entity, actor)
        return entry


__all__ = [
    "AuditAction",
    "AuditEmitter",
    "AuditEntry",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "QueryableAuditSink",
]
