"""Prediction round data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from quiniela.models.match import OUTCOME_CODES, Outcome


class RoundState(str, Enum):
    open = "OPEN"          # Accepting exactly one submission per player
    locked = "LOCKED"      # Submitted, or fixtures already underway
    archived = "ARCHIVED"  # Scored and moved to the archive (terminal)


class Prediction(BaseModel):
    """One player's pick for one match of a round."""
    username: str
    round: int
    match_id: int
    home_team: str
    away_team: str
    pick: Outcome
    odds: float
    correct: Optional[bool] = None           # Filled once, at archival
    actual_outcome: Optional[Outcome] = None  # Filled once, at archival


class RoundSummary(BaseModel):
    correct_count: int = 0
    odds_sum: float = 0.0
    points: float = 0.0


class RoundSubmission(BaseModel):
    """All predictions one player submitted for one round."""
    username: str
    round: int
    submitted_at: datetime
    predictions: list[Prediction] = Field(default_factory=list)
    summary: Optional[RoundSummary] = None

    @property
    def is_scored(self) -> bool:
        return self.summary is not None


class OpenPredictions(BaseModel):
    """The single mutable "current" slot: open submissions for one round."""
    round: Optional[int] = None
    submissions: list[RoundSubmission] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.submissions


# ---------- Submission input ----------

class PickInput(BaseModel):
    """Single match pick from the client ("1"/"X"/"2" accepted)."""
    match_id: int
    pick: Outcome

    @field_validator("pick", mode="before")
    @classmethod
    def _accept_codes(cls, value):
        for outcome, code in OUTCOME_CODES.items():
            if value == code:
                return outcome
        return value
