"""Medal issuance, lookup and statistics."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import logging
import secrets
import time
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .dynamo import DynamoItemTable
from .errors import (
    DistanceRequirementNotMet,
    DuplicateMedal,
    InternalError,
    MedalNotFound,
    ValidationError,
)
from .models import ActivityData, CompletionData
from .races import Race
from .sessions import RunQuestSession

logger = logging.getLogger(__name__)

CODE_PREFIX = "RQ"
CODE_RANDOM_BYTES = 10  # 80 bits, 16 base32 characters
MAX_CODE_ATTEMPTS = 5
RECENT_MEDALS_LIMIT = 10


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class MedalVerification(_ApiModel):
    """Record asserting that an athlete completed a race with a tracked activity."""

    medal_code: str
    verification_id: str
    race_id: int
    race_name: str
    medal_emoji: str
    rarity: str
    difficulty: str
    required_distance: float
    activity_id: int
    activity_name: str | None = None
    activity_distance: float
    athlete_id: int
    athlete_name: str | None = None
    athlete_username: str | None = None
    completion_date: str
    timestamp: int
    verified: bool = True
    integrity_hash: str


class RecentMedal(_ApiModel):
    medal_code: str
    race_name: str
    medal_emoji: str
    rarity: str
    athlete_name: str | None = None
    completion_date: str


class MedalStats(_ApiModel):
    total_medals: int
    medals_by_rarity: dict[str, int]
    medals_by_race: dict[str, int]
    unique_athletes: int
    recent_medals: list[RecentMedal]


class MedalStore:
    """In-memory medal store keyed by code and indexed by athlete."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._medals_by_code: dict[str, MedalVerification] = {}
        self._codes_by_athlete: dict[int, list[str]] = {}
        self._claims: dict[tuple[int, int], str] = {}

    async def add(self, medal: MedalVerification) -> bool:
        """Store a medal; returns False if its code is already taken.

        Raises:
            DuplicateMedal: if the athlete already holds a medal for the race
        """
        async with self._lock:
            if medal.medal_code in self._medals_by_code:
                return False
            existing = self._claims.get((medal.athlete_id, medal.race_id))
            if existing:
                raise DuplicateMedal(existing)
            self._index_locked(medal)
        return True

    async def get(self, medal_code: str) -> MedalVerification | None:
        async with self._lock:
            return self._medals_by_code.get(medal_code)

    async def claim_for(self, athlete_id: int, race_id: int) -> str | None:
        """Return the code of the athlete's medal for a race, if any."""
        async with self._lock:
            return self._claims.get((athlete_id, race_id))

    async def by_athlete(self, athlete_id: int) -> list[MedalVerification]:
        async with self._lock:
            codes = self._codes_by_athlete.get(athlete_id, [])
            return [self._medals_by_code[code] for code in codes]

    async def all(self) -> list[MedalVerification]:
        async with self._lock:
            return list(self._medals_by_code.values())

    def _index_locked(self, medal: MedalVerification) -> None:
        self._medals_by_code[medal.medal_code] = medal
        self._codes_by_athlete.setdefault(medal.athlete_id, []).append(medal.medal_code)
        self._claims[(medal.athlete_id, medal.race_id)] = medal.medal_code


class DynamoMedalStore(MedalStore):
    """DynamoDB-backed medal store.

    Medals live under ``medal:{code}`` and each (athlete, race) pair under
    ``claim:{athlete}:{race}``. Listings scan the table; fine for the volumes
    RunQuest sees.
    """

    def __init__(self, table: DynamoItemTable) -> None:
        super().__init__()
        self._table = table

    @staticmethod
    def _medal_key(medal_code: str) -> str:
        return f"medal:{medal_code}"

    @staticmethod
    def _claim_key(athlete_id: int, race_id: int) -> str:
        return f"claim:{athlete_id}:{race_id}"

    async def add(self, medal: MedalVerification) -> bool:
        # Conditional writes: an existing claim or medal item is never replaced.
        claim_key = self._claim_key(medal.athlete_id, medal.race_id)
        claimed = await self._table.put(claim_key, {"medal_code": medal.medal_code}, only_new=True)
        if not claimed:
            existing = await self.claim_for(medal.athlete_id, medal.race_id)
            raise DuplicateMedal(existing or "")

        stored = await self._table.put(
            self._medal_key(medal.medal_code), medal.model_dump(mode="json"), only_new=True
        )
        if not stored:
            await self._table.delete(claim_key)
            return False
        return True

    async def get(self, medal_code: str) -> MedalVerification | None:
        data = await self._table.get(self._medal_key(medal_code))
        return MedalVerification.model_validate(data) if data else None

    async def claim_for(self, athlete_id: int, race_id: int) -> str | None:
        data = await self._table.get(self._claim_key(athlete_id, race_id))
        return data["medal_code"] if data else None

    async def by_athlete(self, athlete_id: int) -> list[MedalVerification]:
        return [medal for medal in await self.all() if medal.athlete_id == athlete_id]

    async def all(self) -> list[MedalVerification]:
        items = await self._table.scan_prefix("medal:")
        return [MedalVerification.model_validate(item) for item in items]


def generate_medal_code(race: Race, athlete_id: int, year: int) -> str:
    """Build a code like ``RQ-SAH-2026-042K3JX...`` with 80 random bits."""
    athlete_tail = str(abs(athlete_id))[-3:].zfill(3)
    suffix = base64.b32encode(secrets.token_bytes(CODE_RANDOM_BYTES)).decode().rstrip("=")
    return f"{CODE_PREFIX}-{race.abbreviation}-{year:04d}-{athlete_tail}{suffix}"


def generate_verification_id(timestamp_ms: int) -> str:
    return f"VER-{timestamp_ms}-{secrets.token_hex(6).upper()}"


class MedalIssuer:
    """Issue and look up medals.

    ``integrity_hash`` is an HMAC keyed with a server-side secret, so this
    server can recheck a record it issued. It is not a public signature.
    """

    def __init__(
        self,
        store: MedalStore,
        signing_key: bytes | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        if not signing_key:
            logger.warning("No medal signing key configured, using a per-process key")
            signing_key = secrets.token_bytes(32)
        self._signing_key = signing_key
        self._clock = clock

    def integrity_hash(
        self, medal_code: str, athlete_id: int, activity_id: int, timestamp: int
    ) -> str:
        message = f"{medal_code}|{athlete_id}|{activity_id}|{timestamp}".encode()
        return hmac.new(self._signing_key, message, hashlib.sha256).hexdigest()

    def check_integrity(self, medal: MedalVerification) -> bool:
        expected = self.integrity_hash(
            medal.medal_code, medal.athlete_id, medal.activity_id, medal.timestamp
        )
        return hmac.compare_digest(expected, medal.integrity_hash)

    async def issue(
        self,
        session: RunQuestSession,
        race: Race,
        activity: ActivityData,
        completion: CompletionData | None = None,
    ) -> MedalVerification:
        """Issue a medal for ``race`` to the session's athlete.

        Raises:
            DistanceRequirementNotMet: activity shorter than the race distance
            DuplicateMedal: the athlete already holds this race's medal
        """
        if session.athlete_id is None:
            raise ValidationError("Session has no athlete profile")
        athlete_id = session.athlete_id

        if activity.distance_km < race.distance_km:
            raise DistanceRequirementNotMet(race.distance_km, activity.distance_km)

        existing = await self.store.claim_for(athlete_id, race.id)
        if existing:
            raise DuplicateMedal(existing)

        now = self._clock()
        issued_at = datetime.fromtimestamp(now, tz=UTC)
        timestamp = int(now * 1000)
        completed_at = (completion.completion_date if completion else None) or issued_at
        athlete = session.athlete or {}

        for _ in range(MAX_CODE_ATTEMPTS):
            medal_code = generate_medal_code(race, athlete_id, issued_at.year)
            medal = MedalVerification(
                medal_code=medal_code,
                verification_id=generate_verification_id(timestamp),
                race_id=race.id,
                race_name=race.name,
                medal_emoji=race.medal,
                rarity=race.rarity,
                difficulty=race.difficulty,
                required_distance=race.distance_km,
                activity_id=activity.id,
                activity_name=activity.name,
                activity_distance=round(activity.distance_km, 2),
                athlete_id=athlete_id,
                athlete_name=session.athlete_name,
                athlete_username=athlete.get("username"),
                completion_date=completed_at.isoformat(),
                timestamp=timestamp,
                integrity_hash=self.integrity_hash(medal_code, athlete_id, activity.id, timestamp),
            )
            if await self.store.add(medal):
                logger.info(
                    "Medal %s issued to athlete %s for %s", medal_code, athlete_id, race.name
                )
                return medal
            logger.warning("Medal code collision on %s, regenerating", medal_code)

        raise InternalError("Could not allocate a unique medal code")

    async def verify(self, medal_code: str) -> MedalVerification:
        """Look up a medal by code, ignoring case."""
        normalized = (medal_code or "").strip().upper()
        medal = await self.store.get(normalized) if normalized else None
        if medal is None:
            raise MedalNotFound(normalized)
        return medal

    async def list_by_athlete(self, athlete_id: int) -> list[MedalVerification]:
        medals = await self.store.by_athlete(athlete_id)
        return sorted(medals, key=lambda medal: medal.timestamp, reverse=True)

    async def stats(self) -> MedalStats:
        medals = await self.store.all()
        recent = sorted(medals, key=lambda medal: medal.timestamp, reverse=True)
        return MedalStats(
            total_medals=len(medals),
            medals_by_rarity=dict(Counter(medal.rarity for medal in medals)),
            medals_by_race=dict(Counter(medal.race_name for medal in medals)),
            unique_athletes=len({medal.athlete_id for medal in medals}),
            recent_medals=[
                RecentMedal(
                    medal_code=medal.medal_code,
                    race_name=medal.race_name,
                    medal_emoji=medal.medal_emoji,
                    rarity=medal.rarity,
                    athlete_name=medal.athlete_name,
                    completion_date=medal.completion_date,
                )
                for medal in recent[:RECENT_MEDALS_LIMIT]
            ],
        )
