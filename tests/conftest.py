"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from deptflow.api import deps
from deptflow.api.main import app
from deptflow.core.approval.locks import StageLockRegistry
from deptflow.core.approval.service import WorkflowCoordinator
from deptflow.core.config import Settings
from deptflow.core.policy.engine import PolicyEngine
from deptflow.core.policy.store import PolicyStore
from deptflow.db.seed import seed_demo
from deptflow.db.session import build_engine, init_db


@pytest.fixture
def settings():
    """Workflow settings independent of the environment."""
    return Settings(
        _env_file=None,
        head_role="HD",
        financial_control_departments="AF,CG",
        default_min_approvers=1,
        early_visibility=True,
        policy_cache_ttl_seconds=0,
    )


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def policy_store():
    """In-memory policy store with no persistence."""
    return PolicyStore()


@pytest.fixture
def policy(policy_store):
    return PolicyEngine(policy_store)


@pytest.fixture
def departments(db_session, policy_store):
    """Demo departments, rules and policy.

    D15 has two heads and needs both; D19 has no head and falls back to AMD;
    D21 has a single head; AF and CG are financial control departments.
    """
    return seed_demo(db_session, policy_store)


@pytest.fixture
def locks():
    return StageLockRegistry()


@pytest.fixture
def coordinator(db_session, policy, locks, settings, departments):
    return WorkflowCoordinator(db_session, policy, locks=locks, settings=settings)


@pytest.fixture
def make_coordinator(policy, locks, settings):
    """Build a coordinator over a given session, sharing policy and locks."""

    def _make(session):
        return WorkflowCoordinator(session, policy, locks=locks, settings=settings)

    return _make


@pytest.fixture
def client(session_factory, policy_store, departments):
    """API client over the seeded in-memory database."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_policy_store] = lambda: policy_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
