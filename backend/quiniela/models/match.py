"""Canonical match records produced by the normalizer."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class MatchStatus(str, Enum):
    scheduled = "SCHEDULED"
    finished = "FINISHED"


class Outcome(str, Enum):
    home = "HOME"
    draw = "DRAW"
    away = "AWAY"


# Boundary codes used by the presentation layer ("1", "X", "2")
OUTCOME_CODES: dict[Outcome, str] = {
    Outcome.home: "1",
    Outcome.draw: "X",
    Outcome.away: "2",
}


class Team(BaseModel):
    id: int
    name: str = ""


class Score(BaseModel):
    home: int
    away: int


class Match(BaseModel):
    """A single fixture. Immutable once FINISHED."""
    id: int
    round: int
    kickoff_utc: Optional[datetime] = None
    status: MatchStatus = MatchStatus.scheduled
    home_team: Team
    away_team: Team
    score: Optional[Score] = None      # Only when FINISHED with a full-time score
    outcome: Optional[Outcome] = None  # Only when FINISHED
    provider_status: str = ""          # Raw provider status, e.g. "IN_PLAY"

    @property
    def is_finished(self) -> bool:
        return self.status == MatchStatus.finished


class OddsTriple(BaseModel):
    home: float
    draw: float
    away: float

    def for_outcome(self, outcome: Outcome) -> float:
        return getattr(self, outcome.value.lower())
