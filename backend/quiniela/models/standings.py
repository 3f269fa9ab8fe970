"""League table and player ranking rows."""

from pydantic import BaseModel

from quiniela.models.match import Team


class StandingsRow(BaseModel):
    position: int = 0
    team: Team
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0


class PlayerStandingsRow(BaseModel):
    position: int = 0
    username: str
    points: float = 0.0
    correct_predictions: int = 0
    rounds_played: int = 0
