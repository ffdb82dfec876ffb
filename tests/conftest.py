import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import passvault.main as main_module
import passvault.models.kv_entry  # noqa: F401 - registers kv_entries on Base.metadata
from passvault.config import settings
from passvault.database import Base, get_db
from passvault.main import app
from passvault.middleware.rate_limit import limiter
from passvault.services.kv_store import KVStore
from passvault.services.record_store import RecordListStore
from passvault.services.vault_service import VaultContext


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Cut PBKDF2 work so tests stay fast; the algorithm is unchanged."""
    monkeypatch.setattr(settings, "kdf_iterations", 1000)


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def kv(db_session):
    return KVStore(db_session)


@pytest.fixture
def store(kv):
    return RecordListStore(kv)


@pytest.fixture
def ctx():
    return VaultContext(username="alice", secret="s3cret-working-key", salt="alice-salt")


@pytest.fixture
def client(db_session):
    """Create a test client with the test database and disabled rate limiting."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Disable rate limiting for tests
    limiter.enabled = False

    # Point the startup table check at the test database
    original_engine = main_module.engine
    main_module.engine = db_session.get_bind()

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    limiter.enabled = True
    main_module.engine = original_engine
