"""
backend/quiniela/services/snapshot_service.py

Purpose:
    Presentation boundary. Builds the published snapshot documents
    (current round with odds, league table, player standings) and owns the
    round label format; rounds are plain integers everywhere else.

Dependencies:
    - quiniela.models
    - quiniela.utils
"""

import re
from datetime import datetime
from typing import Any, Iterable

from quiniela.models.match import OUTCOME_CODES, Match, OddsTriple
from quiniela.models.standings import PlayerStandingsRow, StandingsRow

CURRENT_ROUND = "current_round"
LEAGUE_TABLE = "league_table"
PLAYER_STANDINGS = "player_standings"

SNAPSHOT_VERSION = "1.0.0"

_ROUND_LABEL_PREFIX = "Regular season - "
_ROUND_LABEL_RE = re.compile(r"^\s*(?:Regular season\s*-\s*)?(\d+)\s*$", re.IGNORECASE)


def round_label(round_number: int) -> str:
    return f"{_ROUND_LABEL_PREFIX}{int(round_number)}"


def parse_round(value: int | str) -> int:
    """Accept 17, "17" or "Regular season - 17"."""
    if isinstance(value, bool):
        raise ValueError(f"invalid round {value!r}")
    if isinstance(value, int):
        return value
    m = _ROUND_LABEL_RE.match(str(value))
    if not m:
        raise ValueError(f"invalid round {value!r}")
    return int(m.group(1))


def score_text(match: Match) -> str:
    if match.score is None:
        return ""
    return f"{match.score.home} - {match.score.away}"


def _fixture_doc(match: Match, odds: OddsTriple) -> dict[str, Any]:
    return {
        "match_id": match.id,
        "round": match.round,
        "kickoff_utc": match.kickoff_utc,
        "status": match.status.value,
        "provider_status": match.provider_status,
        "home_team": {"id": match.home_team.id, "name": match.home_team.name},
        "away_team": {"id": match.away_team.id, "name": match.away_team.name},
        "score": score_text(match),
        "result": OUTCOME_CODES.get(match.outcome, "") if match.outcome else "",
        "odds": {"home": odds.home, "draw": odds.draw, "away": odds.away},
    }


def build_current_round_snapshot(
    round_number: int,
    priced: Iterable[tuple[Match, OddsTriple]],
    updated_at: datetime,
) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "round": round_number,
        "label": round_label(round_number),
        "updated_at": updated_at,
        "fixtures": [_fixture_doc(match, odds) for match, odds in priced],
    }


def build_league_table_snapshot(standings: Iterable[StandingsRow], updated_at: datetime) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "updated_at": updated_at,
        "standings": [row.model_dump() for row in standings],
    }


def build_player_standings_snapshot(
    standings: Iterable[PlayerStandingsRow], updated_at: datetime,
) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "updated_at": updated_at,
        "standings": [row.model_dump() for row in standings],
    }
