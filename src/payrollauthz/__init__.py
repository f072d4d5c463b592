from .config import AuthzConfig, LogLevel, load_config_from_env
from .scopes import GLOBAL_SCOPE, DirectoryLookup, ScopeGraph, ScopeNode, ScopeType, StaticDirectory
from .catalog import (
    CatalogStore,
    Permission,
    PermissionKeys,
    Role,
    RoleTier,
    build_default_catalog,
)
from .stores import (
    Assignment,
    AssignmentStore,
    Grant,
    GrantEffect,
    GrantStore,
    InMemoryAssignmentStore,
    InMemoryGrantStore,
    RedisAssignmentStore,
    RedisGrantStore,
)
from .audit import (
    AuditAction,
    AuditEmitter,
    AuditEntry,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    QueryableAuditSink,
)
from .engine import AccessSummary, Decision, ResolutionEngine
from .admin import AdminService
from .exceptions import (
    AuthzError,
    CatalogConflict,
    ConfigurationError,
    Forbidden,
    InvalidGrant,
    ScopeCycleError,
    ScopeNotFound,
    ScopeTierMismatch,
    StorageError,
    UnknownPermission,
    UnknownRole,
)
from .logging import (
    safe_preview,
    redact_secrets,
    safe_log_value,
    AuthzFormatter,
    AuthzLoggerAdapter,
    setup_logging,
    get_authz_logger,
)

__all__ = [
    'AuthzConfig',
    'LogLevel',
    'load_config_from_env',
    'GLOBAL_SCOPE',
    'DirectoryLookup',
    'ScopeGraph',
    'ScopeNode',
    'ScopeType',
    'StaticDirectory',
    'CatalogStore',
    'Permission',
    'PermissionKeys',
    'Role',
    'RoleTier',
    'build_default_catalog',
    'Assignment',
    'AssignmentStore',
    'Grant',
    'GrantEffect',
    'GrantStore',
    'InMemoryAssignmentStore',
    'InMemoryGrantStore',
    'RedisAssignmentStore',
    'RedisGrantStore',
    'AuditAction',
    'AuditEmitter',
    'AuditEntry',
    'AuditSink',
    'InMemoryAuditSink',
    'LoggingAuditSink',
    'QueryableAuditSink',
    'AccessSummary',
    'Decision',
    'ResolutionEngine',
    'AdminService',
    'AuthzError',
    'CatalogConflict',
    'ConfigurationError',
    'Forbidden',
    'InvalidGrant',
    'ScopeCycleError',
    'ScopeNotFound',
    'ScopeTierMismatch',
    'StorageError',
    'UnknownPermission',
    'UnknownRole',
    'safe_preview',
    'redact_secrets',
    'safe_log_value',
    'AuthzFormatter',
    'AuthzLoggerAdapter',
    'setup_logging',
    'get_authz_logger',
]
