"""Session storage binding opaque session ids to Strava tokens."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from .dynamo import DynamoItemTable
from .errors import InternalError, SessionExpired, SessionNotFound
from .models import TokenResponse

logger = logging.getLogger(__name__)

SESSION_ID_PREFIX = "rq_"
MAX_ID_ATTEMPTS = 5


@dataclass
class RunQuestSession:
    """Per-user Strava credentials and profile held by the server."""

    session_id: str
    access_token: str
    refresh_token: str | None
    expires_at: int
    created_at: float
    athlete_id: int | None = None
    athlete_name: str | None = None
    athlete: dict[str, Any] | None = None

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def as_public_dict(self) -> dict[str, Any]:
        """Return a redacted view suitable for logging or diagnostics."""
        return {
            "session_id": self.session_id,
            "athlete_id": self.athlete_id,
            "athlete_name": self.athlete_name,
            "expires_at": self.expires_at,
            "created_at": self.created_at,
        }


def new_session_id() -> str:
    return SESSION_ID_PREFIX + secrets.token_urlsafe(32)


class SessionStore:
    """In-memory store for Strava sessions.

    Expiry is checked lazily on read. Expired entries are kept, so every read
    after ``expires_at`` keeps reporting :class:`SessionExpired` until the
    session is explicitly removed.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = asyncio.Lock()
        self._sessions_by_id: dict[str, RunQuestSession] = {}
        self._clock = clock

    async def create_session(self, token_data: TokenResponse) -> RunQuestSession:
        """Create and store a new session based on exchanged tokens."""
        athlete = token_data.athlete
        session = RunQuestSession(
            session_id="",
            access_token=token_data.access_token,
            refresh_token=token_data.refresh_token,
            expires_at=token_data.expires_at,
            created_at=self._clock(),
            athlete_id=athlete.id if athlete else None,
            athlete_name=(athlete.full_name or None) if athlete else None,
            athlete=athlete.model_dump(mode="json") if athlete else None,
        )

        for _ in range(MAX_ID_ATTEMPTS):
            session_id = new_session_id()
            if await self._load(session_id) is None:
                session.session_id = session_id
                await self.put(session)
                logger.info("Session created: %s", session.as_public_dict())
                return session
            logger.warning("Session id collision, regenerating")

        raise InternalError("Could not allocate a unique session id")

    async def put(self, session: RunQuestSession) -> None:
        async with self._lock:
            self._sessions_by_id[session.session_id] = session

    async def get_session(self, session_id: str | None) -> RunQuestSession:
        """Return the session for ``session_id`` regardless of token expiry."""
        if not session_id:
            raise SessionNotFound()
        session = await self._load(session_id)
        if session is None:
            raise SessionNotFound()
        return session

    async def get_active_session(self, session_id: str | None) -> RunQuestSession:
        """Return the session, failing if its Strava token has expired."""
        session = await self.get_session(session_id)
        if session.is_expired(self._clock()):
            logger.info("Session expired: %s", session.session_id)
            raise SessionExpired()
        return session

    async def remove_session(self, session_id: str | None) -> bool:
        """Remove a session; unknown ids are ignored."""
        if not session_id:
            return False
        async with self._lock:
            removed = self._sessions_by_id.pop(session_id, None)
        if removed:
            logger.info("Session disconnected: %s", session_id)
        return removed is not None

    async def _load(self, session_id: str) -> RunQuestSession | None:
        async with self._lock:
            return self._sessions_by_id.get(session_id)


class DynamoSessionStore(SessionStore):
    """DynamoDB-backed session store with an in-memory read cache."""

    def __init__(self, table: DynamoItemTable, clock: Callable[[], float] = time.time) -> None:
        super().__init__(clock)
        self._table = table

    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"session:{session_id}"

    async def put(self, session: RunQuestSession) -> None:
        await super().put(session)
        await self._table.put(self._session_key(session.session_id), asdict(session))

    async def remove_session(self, session_id: str | None) -> bool:
        removed = await super().remove_session(session_id)
        if session_id:
            await self._table.delete(self._session_key(session_id))
        return removed

    async def _load(self, session_id: str) -> RunQuestSession | None:
        session = await super()._load(session_id)
        if session is not None:
            return session
        data = await self._table.get(self._session_key(session_id))
        if data is None:
            return None
        session = RunQuestSession(**data)
        async with self._lock:
            self._sessions_by_id[session_id] = session
        return session
