"""Shared fixtures: a small tenancy tree wired to in-memory stores.

    GLOBAL
    └── ORGANIZATION:org-42
        ├── COMPANY:co-3
        │   ├── PROJECT:proj-7
        │   └── PROJECT:proj-8
        └── COMPANY:co-4
            └── PROJECT:proj-9
    ORGANIZATION:org-77
    └── COMPANY:co-5
        └── PROJECT:proj-10
"""

from __future__ import annotations

import pytest

from payrollauthz import (
    AdminService,
    AuditEmitter,
    AuthzConfig,
    CatalogStore,
    InMemoryAssignmentStore,
    InMemoryAuditSink,
    InMemoryGrantStore,
    ResolutionEngine,
    ScopeGraph,
    StaticDirectory,
    build_default_catalog,
)


@pytest.fixture
def directory() -> StaticDirectory:
    d = StaticDirectory()
    d.add_organization("org-42")
    d.add_company("co-3", org_id="org-42")
    d.add_company("co-4", org_id="org-42")
    d.add_project("proj-7", company_id="co-3")
    d.add_project("proj-8", company_id="co-3")
    d.add_project("proj-9", company_id="co-4")
    d.add_organization("org-77")
    d.add_company("co-5", org_id="org-77")
    d.add_project("proj-10", company_id="co-5")
    return d


@pytest.fixture
def catalog() -> CatalogStore:
    return build_default_catalog()


@pytest.fixture
def assignments() -> InMemoryAssignmentStore:
    return InMemoryAssignmentStore()


@pytest.fixture
def grants() -> InMemoryGrantStore:
    return InMemoryGrantStore()


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def config() -> AuthzConfig:
    return AuthzConfig()


@pytest.fixture
def engine(catalog, directory, assignments, grants, audit_sink, config) -> ResolutionEngine:
    return ResolutionEngine(
        catalog,
        ScopeGraph(directory),
        assignments,
        grants,
        audit=AuditEmitter(audit_sink),
        config=config,
    )


@pytest.fixture
def admin(engine, assignments, grants, audit_sink, config) -> AdminService:
    return AdminService(engine, assignments, grants, AuditEmitter(audit_sink), config=config)
