import os

# Keep the application engine off disk; tests never use it
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from standings.database import get_session  # noqa: E402
from standings.main import app  # noqa: E402
from standings.services.recalculation_queue import RecalculationQueue, get_recalculation_queue  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependencies overridden to use test_engine (see client_fixture)
# 5. Tables dropped after every test so ids and counts start fresh
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


def _test_session_factory() -> Session:
    return Session(test_engine)


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a freshly created schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from standings.models.match import Match  # noqa: F401
    from standings.models.match_map import MatchMap  # noqa: F401
    from standings.models.match_result import MatchResult  # noqa: F401
    from standings.models.ranking import Ranking, RankingSnapshot  # noqa: F401
    from standings.models.round import Round, RoundPlayer  # noqa: F401
    from standings.models.team import Team, TeamPlayer  # noqa: F401
    from standings.models.tournament import Tournament  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="recalc_queue")
def recalc_queue_fixture():
    """Inline recalculation queue on the test engine; requests finish before returning"""
    queue = RecalculationQueue(_test_session_factory, synchronous=True)
    yield queue
    queue.shutdown()


@pytest.fixture(name="client")
def client_fixture(session: Session, recalc_queue: RecalculationQueue):
    """Provide a test client with overridden database session and recalculation queue

    Overrides MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_recalculation_queue] = lambda: recalc_queue

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
