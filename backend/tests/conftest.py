import os

os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL") or "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_AUTO_CREATE"] = "false"
os.environ["VERSION_CHECK_SCHEDULER_ENABLED"] = "false"
os.environ["VERSION_CHECK_DISTRIBUTED_LOCK"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.services.auth_service import AuthService
from app.application.services.reachability_prober import ProbeResult
from app.application.services.version_check_service import VersionCheckService
from app.domain import models  # noqa: F401
from app.infrastructure.db.base import Base
from app.infrastructure.db.session import get_db
from app.interfaces.api.deps import get_version_checker
from main import app


class FakeProber:
    """Answers from canned per-URL results and records every call."""

    def __init__(self) -> None:
        self.metadata: dict = {}
        self.reachable: dict[str, bool] = {}
        self.calls: list[tuple[str, str]] = []

    async def fetch_metadata(self, url: str):
        self.calls.append(("fetch_metadata", url))
        return self.metadata.get(url)

    async def probe(self, url: str) -> ProbeResult:
        self.calls.append(("probe", url))
        reachable = self.reachable.get(url, False)
        return ProbeResult(reachable=reachable, status_code=200 if reachable else None, attempts=1)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "")


@pytest.fixture
def db_engine():
    if TEST_DATABASE_URL:
        engine = create_engine(TEST_DATABASE_URL, pool_pre_ping=True)
        Base.metadata.drop_all(bind=engine)
    else:
        engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def version_checker(fake_prober, session_factory, recording_sleep) -> VersionCheckService:
    return VersionCheckService(
        fake_prober,
        session_factory=session_factory,
        request_delay_seconds=0.2,
        sleep=recording_sleep,
    )


@pytest.fixture
def client(db_session, version_checker):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_version_checker] = lambda: version_checker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(client, db_session) -> dict[str, str]:
    AuthService.ensure_default_admin(db_session)
    response = client.post("/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
