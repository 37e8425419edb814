"""Race catalog shared by the API and the front-end."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .errors import ValidationError

logger = logging.getLogger(__name__)

Rarity = Literal["common", "rare", "epic", "legendary", "mythic"]


class Race(BaseModel):
    """A virtual race and the medal it awards."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    name: str = Field(min_length=3)
    description: str = ""
    distance_km: float = Field(gt=0)
    duration: str
    difficulty: str
    medal: str
    rarity: Rarity

    @property
    def abbreviation(self) -> str:
        """Three-letter race code used in medal codes (``HIM``, ``SAH``...)."""
        letters = [c for c in self.name.upper() if c.isalpha()]
        return "".join(letters[:3])


class RaceCatalog:
    """Read-only lookup over the configured races."""

    def __init__(self, races: list[Race]):
        self._races = {race.id: race for race in races}
        if len(self._races) != len(races):
            raise ValueError("Race catalog contains duplicate race ids")

    def __iter__(self):
        return iter(self._races.values())

    def __len__(self) -> int:
        return len(self._races)

    def get(self, race_id: int) -> Race:
        race = self._races.get(race_id)
        if race is None:
            raise ValidationError(f"Unknown race: {race_id}")
        return race

    def as_json(self) -> list[dict]:
        return [race.model_dump(mode="json", by_alias=True) for race in self]


def load_races(path: str | Path | None = None) -> RaceCatalog:
    """Load the race catalog from ``path`` or from the packaged default."""
    if path:
        raw = Path(path).read_text(encoding="utf-8")
    else:
        raw = resources.files("runquest").joinpath("data/races.json").read_text(encoding="utf-8")

    races = TypeAdapter(list[Race]).validate_json(raw)
    logger.debug("Loaded %d races from %s", len(races), path or "package data")
    return RaceCatalog(races)
