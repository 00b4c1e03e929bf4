"""Pytest configuration for app-level tests

WHAT: Shared fixtures for HTTP endpoint, pipeline and key resolver tests
WHY: Consistent collaborator fakes and a seeded row store for every test
REFERENCES:
    - keylens/main.py: FastAPI application
    - keylens/deps.py: Dependency injection
    - keylens/analytics/sql.py: SqlKeyResolver
"""

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from keylens.analytics.telemetry import TelemetryCollector
from keylens.tests.fakes import FakeExecutor, FakeKeyResolver, key_row


# ============================================================================
# Row Store Fixtures
# ============================================================================

def _define_tables(metadata: sa.MetaData) -> None:
    sa.Table(
        "apis", metadata,
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("key_auth_id", sa.String(64), nullable=True),
        sa.Column("deleted_at_m", sa.BigInteger, nullable=True),
    )
    sa.Table(
        "identities", metadata,
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("external_id", sa.String(256), nullable=False),
    )
    sa.Table(
        "keys", metadata,
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("key_auth_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(256), nullable=True),
        sa.Column("owner_id", sa.String(256), nullable=True),
        sa.Column("identity_id", sa.String(64), nullable=True),
        sa.Column("deleted_at_m", sa.BigInteger, nullable=True),
    )


@pytest.fixture
def keys_db_engine():
    """In-memory row store seeded with one API and a handful of keys.

    ks_1 (api_1) holds:
        key_1  "prod_key"   linked to identity user_123
        key_2  "dev_key"    legacy owner user_123
        key_3  "100%_off"   linked to identity user_999
        key_4  deleted, owner user_123
    ks_2 (api_2) holds key_5 owned by user_123.
    api_deleted is soft-deleted; api_nokeys has no key auth.
    """
    engine = sa.create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata = sa.MetaData()
    _define_tables(metadata)
    metadata.create_all(engine)

    apis, identities, keys = (metadata.tables[name] for name in ("apis", "identities", "keys"))
    with engine.begin() as conn:
        conn.execute(apis.insert(), [
            {"id": "api_1", "workspace_id": "ws_1", "key_auth_id": "ks_1", "deleted_at_m": None},
            {"id": "api_2", "workspace_id": "ws_1", "key_auth_id": "ks_2", "deleted_at_m": None},
            {"id": "api_deleted", "workspace_id": "ws_1", "key_auth_id": "ks_3", "deleted_at_m": 1},
            {"id": "api_nokeys", "workspace_id": "ws_1", "key_auth_id": None, "deleted_at_m": None},
        ])
        conn.execute(identities.insert(), [
            {"id": "id_1", "workspace_id": "ws_1", "external_id": "user_123"},
            {"id": "id_2", "workspace_id": "ws_1", "external_id": "user_999"},
        ])
        conn.execute(keys.insert(), [
            {"id": "key_1", "workspace_id": "ws_1", "key_auth_id": "ks_1", "name": "prod_key",
             "owner_id": None, "identity_id": "id_1", "deleted_at_m": None},
            {"id": "key_2", "workspace_id": "ws_1", "key_auth_id": "ks_1", "name": "dev_key",
             "owner_id": "user_123", "identity_id": None, "deleted_at_m": None},
            {"id": "key_3", "workspace_id": "ws_1", "key_auth_id": "ks_1", "name": "100%_off",
             "owner_id": None, "identity_id": "id_2", "deleted_at_m": None},
            {"id": "key_4", "workspace_id": "ws_1", "key_auth_id": "ks_1", "name": "old_key",
             "owner_id": "user_123", "identity_id": None, "deleted_at_m": 1},
            {"id": "key_5", "workspace_id": "ws_1", "key_auth_id": "ks_2", "name": "prod_key",
             "owner_id": "user_123", "identity_id": None, "deleted_at_m": None},
        ])

    yield engine

    engine.dispose()


# ============================================================================
# Collaborator Fixtures
# ============================================================================

@pytest.fixture
def fake_key_resolver() -> FakeKeyResolver:
    return FakeKeyResolver([
        key_row("key_1", name="prod_key", external_id="user_123"),
        key_row("key_2", name="dev_key", owner_id="user_123"),
        key_row("key_3", name="staging_key", external_id="user_999"),
    ])


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor(rows=[{"time": 1_700_000_000_000, "count": 12}])


@pytest.fixture
def telemetry() -> TelemetryCollector:
    return TelemetryCollector()


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(fake_key_resolver, fake_executor, telemetry):
    """Create FastAPI test application with in-memory collaborators."""
    from keylens.deps import get_aggregation_executor, get_key_resolver, get_telemetry_collector
    from keylens.main import create_app

    test_app = create_app()
    test_app.dependency_overrides[get_key_resolver] = lambda: fake_key_resolver
    test_app.dependency_overrides[get_aggregation_executor] = lambda: fake_executor
    test_app.dependency_overrides[get_telemetry_collector] = lambda: telemetry
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """Create TestClient for HTTP testing."""
    return TestClient(app)
