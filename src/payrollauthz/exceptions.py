"""Unified exception hierarchy for payrollauthz.

All errors inherit from AuthzError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry mapping stable codes back to classes

A *deny* is never an exception: ``ResolutionEngine.has_permission`` returns a
``Decision``. Everything raised from here is a programming or data error.

Usage in services:
    from payrollauthz.exceptions import AuthzError, Forbidden, error_registry
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "AuthzError",
    "ConfigurationError",
    "UnknownPermission",
    "UnknownRole",
    "ScopeTierMismatch",
    "ScopeNotFound",
    "ScopeCycleError",
    "Forbidden",
    "InvalidGrant",
    "CatalogConflict",
    "StorageError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
]


# ---- Exception Hierarchy ----------------------------------------------------


class AuthzError(Exception):
    """Base exception for the authorization engine.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "FORBIDDEN").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(AuthzError):
    """Invalid or missing configuration."""

    code: str = "CONFIGURATION_ERROR"


class UnknownPermission(AuthzError):
    """Permission key is not in the catalog (caller bug, not a deny)."""

    code: str = "UNKNOWN_PERMISSION"
    message: str = "Unknown permission key"


class UnknownRole(AuthzError):
    """Role code is not in the catalog."""

    code: str = "UNKNOWN_ROLE"
    message: str = "Unknown role code"


class ScopeTierMismatch(AuthzError):
    """Role assigned at a scope type its tier does not permit."""

    code: str = "SCOPE_TIER_MISMATCH"


class ScopeNotFound(AuthzError):
    """Dangling tenancy reference (e.g. project with no company).

    Halts resolution entirely: corrupted tenancy data must neither allow
    nor deny.
    """

    code: str = "SCOPE_NOT_FOUND"
    message: str = "Scope not found in tenancy directory"


class ScopeCycleError(ScopeNotFound):
    """Directory returned a parent chain that loops or skips a level."""

    code: str = "SCOPE_CYCLE"


class Forbidden(AuthzError):
    """Administrative pre-check failed."""

    code: str = "FORBIDDEN"
    message: str = "Actor is not allowed to perform this operation"


class InvalidGrant(AuthzError):
    """Grant payload violates the grant invariants."""

    code: str = "INVALID_GRANT"


class CatalogConflict(AuthzError):
    """Duplicate role code or permission key."""

    code: str = "CATALOG_CONFLICT"


class StorageError(AuthzError):
    """Assignment/grant/audit store failure."""

    code: str = "STORAGE_ERROR"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[AuthzError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[AuthzError]] = {}

    def register(self, code: str, error_cls: type[AuthzError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[AuthzError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[AuthzError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("PAYROLL_LOCKED")
        class PayrollLocked(AuthzError):
            code = "PAYROLL_LOCKED"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


for _cls in (
    AuthzError,
    ConfigurationError,
    UnknownPermission,
    UnknownRole,
    ScopeTierMismatch,
    ScopeNotFound,
    ScopeCycleError,
    Forbidden,
    InvalidGrant,
    CatalogConflict,
    StorageError,
):
    error_registry.register(_cls.code, _cls)
del _cls

