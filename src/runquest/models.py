"""Pydantic models for Strava API responses and RunQuest request bodies."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Sex = Literal["M", "F"]

# Profile fields returned to the front-end after a token exchange
PUBLIC_ATHLETE_FIELDS = (
    "id",
    "username",
    "firstname",
    "lastname",
    "profile",
    "profile_medium",
    "city",
    "state",
    "country",
    "follower_count",
    "friend_count",
)


class MetaAthlete(BaseModel):
    """Minimal athlete representation in other resources."""

    id: int
    resource_state: int | None = None


class SummaryAthlete(MetaAthlete):
    """Summary athlete representation."""

    firstname: str | None = None
    lastname: str | None = None
    profile_medium: str | None = None
    profile: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    sex: Sex | None = None
    premium: bool | None = None
    summit: bool | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Athlete(SummaryAthlete):
    """Athlete profile as embedded in the OAuth token response."""

    model_config = ConfigDict(extra="allow")

    username: str | None = None
    follower_count: int | None = None
    friend_count: int | None = None

    @property
    def full_name(self) -> str:
        return f"{self.firstname or ''} {self.lastname or ''}".strip()

    def public_profile(self) -> dict[str, Any]:
        """Return the subset of profile fields exposed to API callers."""
        data = self.model_dump(mode="json")
        return {field: data.get(field) for field in PUBLIC_ATHLETE_FIELDS}


class TokenResponse(BaseModel):
    """OAuth token response."""

    token_type: str | None = None
    expires_at: int
    expires_in: int | None = None
    refresh_token: str | None = None
    access_token: str
    athlete: Athlete | None = None


class CamelModel(BaseModel):
    """Request body model accepting camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActivityData(CamelModel):
    """The tracked activity a medal is claimed with, as listed by Strava."""

    id: int
    name: str | None = None
    distance: float = Field(ge=0, description="Distance in metres")
    type: str | None = None
    start_date: datetime | None = None

    @property
    def distance_km(self) -> float:
        return self.distance / 1000


class RaceRef(CamelModel):
    id: int


class CompletionData(CamelModel):
    completion_date: datetime | None = None


class MedalRequest(CamelModel):
    """Body of ``POST /api/medals``."""

    session_id: str = Field(min_length=1)
    race_data: RaceRef
    activity_data: ActivityData
    completion_data: CompletionData | None = None
