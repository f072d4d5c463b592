"""Configuration contract for the authorization engine.

Pydantic-validated settings shared by the engine, the stores and the admin
service. Direct os.environ/os.getenv usage is limited to
``load_config_from_env()``; everything else receives an ``AuthzConfig``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuthzConfig(BaseModel):
    """Settings for the scoped authorization engine.

    Administrative operations are gated by catalog permissions
    (``manage_roles`` for assignments, ``manage_grants`` for grants,
    ``view_audit_logs`` for reading the audit trail); deployments with their
    own naming can override each key here.
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the engine",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )
    service_name: Optional[str] = Field(
        default=None,
        description="Service name attached to log records",
    )

    # Persistence
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for the Redis-backed assignment/grant stores",
    )
    redis_prefix: str = Field(
        default="payrollauthz",
        description="Key prefix for Redis-backed stores",
    )

    # Administrative guard
    manage_roles_permission: str = Field(
        default="manage_roles",
        description="Permission required to create/revoke assignments",
    )
    manage_grants_permission: str = Field(
        default="manage_grants",
        description="Permission required to create/revoke grants",
    )
    view_audit_permission: str = Field(
        default="view_audit_logs",
        description="Permission required to list audit entries",
    )

    # Audit
    audit_denials: bool = Field(
        default=True,
        description="Emit an audit entry for every deny-by-override decision",
    )

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("Redis URL must start with redis://, rediss://, or unix://")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
    }


_TRUTHY = ("true", "1", "yes", "on")


def load_config_from_env() -> AuthzConfig:
    """Load engine configuration from environment variables.

    This is the ONLY place where os.getenv is allowed.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - SERVICE_NAME: Service name for log records
    - REDIS_URL: Redis connection URL
    - AUTHZ_REDIS_PREFIX: Key prefix for Redis stores
    - AUTHZ_MANAGE_ROLES_PERMISSION: Permission gating assignment changes
    - AUTHZ_MANAGE_GRANTS_PERMISSION: Permission gating grant changes
    - AUTHZ_VIEW_AUDIT_PERMISSION: Permission gating audit log listing
    - AUTHZ_AUDIT_DENIALS: Audit deny-by-override decisions (default: true)

    Returns:
        AuthzConfig instance with values from environment or defaults.
    """
    import os

    return AuthzConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in _TRUTHY,
        service_name=os.getenv("SERVICE_NAME"),
        redis_url=os.getenv("REDIS_URL"),
        redis_prefix=os.getenv("AUTHZ_REDIS_PREFIX", "payrollauthz"),
        manage_roles_permission=os.getenv("AUTHZ_MANAGE_ROLES_PERMISSION", "manage_roles"),
        manage_grants_permission=os.getenv("AUTHZ_MANAGE_GRANTS_PERMISSION", "manage_grants"),
        view_audit_permission=os.getenv("AUTHZ_VIEW_AUDIT_PERMISSION", "view_audit_logs"),
        audit_denials=os.getenv("AUTHZ_AUDIT_DENIALS", "true").lower() in _TRUTHY,
    )


__all__ = [
    "AuthzConfig",
    "LogLevel",
    "load_config_from_env",
]
