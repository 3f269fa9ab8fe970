"""League table from finished matches. Recomputed from scratch on every run."""

from typing import Iterable

from quiniela.models.match import Match, Team
from quiniela.models.standings import StandingsRow

POINTS_WIN = 3
POINTS_DRAW = 1


def _sort_key(row: StandingsRow) -> tuple[int, int, int]:
    # Public ranking contract: points, then goal difference, then goals for
    return (row.points, row.goal_difference, row.goals_for)


def calculate_league_standings(matches: Iterable[Match]) -> list[StandingsRow]:
    """Rank every team that has played at least one finished, scored match.

    Rows are created lazily on first appearance, so tied teams keep the
    order in which they first showed up in the match set.
    """
    rows: dict[int, StandingsRow] = {}

    def _row(team: Team) -> StandingsRow:
        row = rows.get(team.id)
        if row is None:
            row = StandingsRow(team=Team(id=team.id, name=team.name))
            rows[team.id] = row
        return row

    for match in matches:
        if not match.is_finished or match.score is None:
            continue

        home = _row(match.home_team)
        away = _row(match.away_team)
        home_goals = match.score.home
        away_goals = match.score.away

        home.played += 1
        away.played += 1
        home.goals_for += home_goals
        home.goals_against += away_goals
        away.goals_for += away_goals
        away.goals_against += home_goals

        if home_goals > away_goals:
            home.won += 1
            away.lost += 1
        elif home_goals < away_goals:
            away.won += 1
            home.lost += 1
        else:
            home.drawn += 1
            away.drawn += 1

    for row in rows.values():
        row.goal_difference = row.goals_for - row.goals_against
        row.points = POINTS_WIN * row.won + POINTS_DRAW * row.drawn

    # sorted() is stable: equal keys keep first-appearance order
    ranked = sorted(rows.values(), key=_sort_key, reverse=True)
    for position, row in enumerate(ranked, start=1):
        row.position = position
    return ranked
