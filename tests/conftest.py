"""Shared pytest fixtures.

The default election window is 2025-11-23 [18:00, 20:00) UTC and the clock
starts at 18:05, inside the window. Tests move the clock to exercise other
phases.
"""

from datetime import datetime, timezone
from typing import AsyncGenerator, List

import httpx
import pytest

from ballot_engine import (
    Candidate,
    ElectionWindow,
    FixedClock,
    InMemoryStore,
    Voter,
    VotingEngine,
)
from voting_api.config import Settings
from voting_api.main import create_app

STARTS_AT = datetime(2025, 11, 23, 18, 0, 0, tzinfo=timezone.utc)
ENDS_AT = datetime(2025, 11, 23, 20, 0, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, second: int = 0, microsecond: int = 0) -> datetime:
    """Instant on election day (UTC)."""
    return datetime(2025, 11, 23, hour, minute, second, microsecond, tzinfo=timezone.utc)


@pytest.fixture
def window() -> ElectionWindow:
    return ElectionWindow(STARTS_AT, ENDS_AT)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(at(18, 5))


@pytest.fixture
def voters() -> List[Voter]:
    return [
        Voter(voter_id="A123", name="Asha"),
        Voter(voter_id="B456", name="Bharath"),
        Voter(voter_id="D789", name="Deepa"),
        Voter(voter_id="ADM1", name="Admin", is_admin=True),
    ]


@pytest.fixture
def candidates() -> List[Candidate]:
    # Deliberately not in name order
    return [
        Candidate(candidate_id="C2", display_name="Dishanth", localized_name="ದಿಶಾಂತ್"),
        Candidate(
            candidate_id="C1",
            display_name="Abrar",
            localized_name="ಅಬ್ರಾರ್",
            image_ref="/images/abrar.jpg",
        ),
    ]


@pytest.fixture
def store(voters, candidates) -> InMemoryStore:
    return InMemoryStore(voters, candidates)


@pytest.fixture
def engine(window, store, clock) -> VotingEngine:
    return VotingEngine(window, store, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ELECTION_STARTS_AT=STARTS_AT,
        ELECTION_ENDS_AT=ENDS_AT,
        STORE_BACKEND="memory",
        RATE_LIMIT_ENABLED=False,
        SECRET_KEY="test-secret",
        STORE_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def app(settings, store, clock):
    return create_app(settings=settings, store=store, clock=clock)


@pytest.fixture
async def api_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to the ASGI app, no network involved."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def login(api_client):
    """Returns a coroutine function that logs a voter in and returns auth headers."""
    async def _login(voter_id: str) -> dict:
        response = await api_client.post("/api/v1/login", json={"voter_id": voter_id})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers",
        "docker: mark test as requiring PostgreSQL or Redis services"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running"
    )
