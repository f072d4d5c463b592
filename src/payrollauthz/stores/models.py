"""Persisted authorization records: assignments and grants.

These are Pydantic models. ``to_record()`` / ``from_record()`` convert to and
from the flat column layout used by persistence adapters
(``scope_type`` / ``scope_id``, ``subject_user_id`` / ``subject_role_code``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from ..scopes import ScopeNode, ScopeType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _scope_from_record(record: dict[str, Any]) -> ScopeNode:
    return ScopeNode(ScopeType(record["scope_type"]), record.get("scope_id"))


class GrantEffect(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


# Grants always attach to a concrete tenancy object.
GRANT_SCOPE_TYPES = frozenset({ScopeType.ORGANIZATION, ScopeType.COMPANY, ScopeType.PROJECT})


class Assignment(BaseModel):
    """A role bound to a user at a scope."""

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    id: str = Field(default_factory=_new_id)
    user_id: str
    role_code: str
    scope: ScopeNode
    assigned_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role_code": self.role_code,
            "scope_type": self.scope.type.value,
            "scope_id": self.scope.id,
            "assigned_by": self.assigned_by,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Assignment":
        return cls(
            id=record["id"],
            user_id=record["user_id"],
            role_code=record["role_code"],
            scope=_scope_from_record(record),
            assigned_by=record.get("assigned_by"),
            created_at=_parse_ts(record["created_at"]),
        )


class Grant(BaseModel):
    """Explicit ALLOW/DENY override of one permission at one scope.

    The subject is either a user (``subject_user_id``) or every holder of a
    role (``subject_role_code``), never both.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    id: str = Field(default_factory=_new_id)
    subject_user_id: Optional[str] = None
    subject_role_code: Optional[str] = None
    permission_key: str
    scope: ScopeNode
    effect: GrantEffect
    reason: str = ""
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    valid_until: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "Grant":
        if bool(self.subject_user_id) == bool(self.subject_role_code):
            raise ValueError("grant needs exactly one of subject_user_id or subject_role_code")
        if self.scope.type not in GRANT_SCOPE_TYPES:
            raise ValueError(
                f"grant scope must be ORGANIZATION, COMPANY or PROJECT, got {self.scope.type.value}"
            )
        if self.valid_until is not None and self.valid_until.tzinfo is None:
            raise ValueError("valid_until must be timezone-aware")
        return self

    @property
    def subject(self) -> str:
        return self.subject_user_id or self.subject_role_code or ""

    def is_expired(self, *, now: datetime | None = None) -> bool:
        """Expired grants are treated as absent by the engine."""
        if self.valid_until is None:
            return False
        t = utcnow() if now is None else now
        return t >= self.valid_until

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subject_user_id": self.subject_user_id,
            "subject_role_code": self.subject_role_code,
            "permission_key": self.permission_key,
            "scope_type": self.scope.type.value,
            "scope_id": self.scope.id,
            "effect": self.effect.value,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Grant":
        return cls(
            id=record["id"],
            subject_user_id=record.get("subject_user_id"),
            subject_role_code=record.get("subject_role_code"),
            permission_key=record["permission_key"],
            scope=_scope_from_record(record),
            effect=GrantEffect(record["effect"]),
            reason=record.get("reason") or "",
            created_by=record.get("created_by"),
            created_at=_parse_ts(record["created_at"]),
            valid_until=_parse_ts(record.get("valid_until")),
        )


__all__ = [
    "GRANT_SCOPE_TYPES",
    "Assignment",
    "Grant",
    "GrantEffect",
    "utcnow",
]
