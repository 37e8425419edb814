"""Pytest configuration and shared fixtures."""

import httpx
import pytest
import respx

from runquest.app import create_app
from runquest.config import RunQuestConfig
from runquest.medals import MedalIssuer, MedalStore
from runquest.models import TokenResponse
from runquest.races import load_races
from runquest.sessions import SessionStore
from tests.fixtures.athlete_fixtures import TOKEN_RESPONSE


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, now: float = 1_760_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def mock_config():
    """Provide a RunQuest configuration for testing."""
    return RunQuestConfig(
        strava_client_id="test_client_id",
        strava_client_secret="test_client_secret",
        runquest_medal_signing_key="test_signing_key",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def medal_store():
    return MedalStore()


@pytest.fixture
def medal_issuer(medal_store, clock):
    return MedalIssuer(medal_store, signing_key=b"test_signing_key", clock=clock)


@pytest.fixture
def races():
    return load_races()


@pytest.fixture
async def active_session(session_store, clock):
    """A session for athlete 42 whose token expires in an hour."""
    token_data = TokenResponse(**{**TOKEN_RESPONSE, "expires_at": int(clock.now) + 3600})
    return await session_store.create_session(token_data)


@pytest.fixture
def respx_mock():
    """Provide a respx mock router for HTTP requests to Strava."""
    with respx.mock(base_url="https://www.strava.com", assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def app(mock_config, session_store, medal_store, medal_issuer, races):
    return create_app(
        mock_config,
        session_store=session_store,
        medal_store=medal_store,
        medal_issuer=medal_issuer,
        races=races,
    )


@pytest.fixture
async def client(app):
    """HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
