"""
backend/quiniela/services/match_normalizer.py

Purpose:
    Map football-data.org match payloads to canonical Match records.
    Malformed records are dropped one by one; a finished match that is
    already stored is never overwritten by a later ingest.

Dependencies:
    - quiniela.models.match
    - quiniela.utils
"""

import logging
from typing import Any, Iterable

from quiniela.errors import NormalizationError
from quiniela.models.match import Match, MatchStatus, Outcome, Score, Team
from quiniela.utils import parse_utc

logger = logging.getLogger("quiniela.match_normalizer")

_FINISHED_STATUS = "FINISHED"

_WINNER_TO_OUTCOME = {
    "HOME_TEAM": Outcome.home,
    "AWAY_TEAM": Outcome.away,
    "DRAW": Outcome.draw,
}


def _team(raw: Any, side: str) -> Team:
    if not isinstance(raw, dict) or raw.get("id") is None:
        raise NormalizationError(f"missing {side} team identity")
    try:
        team_id = int(raw["id"])
    except (TypeError, ValueError):
        raise NormalizationError(f"invalid {side} team id {raw.get('id')!r}")
    return Team(id=team_id, name=str(raw.get("name") or raw.get("shortName") or ""))


def _full_time_score(score_data: dict) -> Score | None:
    """Return the final score only when both sides are present."""
    full_time = score_data.get("fullTime") or {}
    home = full_time.get("home")
    away = full_time.get("away")
    if isinstance(home, bool) or isinstance(away, bool):
        return None
    if not isinstance(home, int) or not isinstance(away, int):
        return None
    return Score(home=home, away=away)


def _outcome_from_score(score: Score) -> Outcome:
    if score.home > score.away:
        return Outcome.home
    if score.home < score.away:
        return Outcome.away
    return Outcome.draw


def normalize_match(raw: dict) -> Match:
    """Normalize a single provider record. Raises NormalizationError."""
    if not isinstance(raw, dict):
        raise NormalizationError("match record is not an object")

    home = _team(raw.get("homeTeam"), "home")
    away = _team(raw.get("awayTeam"), "away")

    if raw.get("id") is None:
        raise NormalizationError("missing match id")
    if raw.get("matchday") is None:
        raise NormalizationError(f"match {raw.get('id')} has no matchday")
    try:
        match_id = int(raw["id"])
        round_number = int(raw["matchday"])
    except (TypeError, ValueError):
        raise NormalizationError(f"non-numeric id/matchday on match {raw.get('id')!r}")

    kickoff = None
    if raw.get("utcDate"):
        try:
            kickoff = parse_utc(raw["utcDate"])
        except (TypeError, ValueError):
            logger.warning("Unparseable kickoff %r on match %s", raw.get("utcDate"), match_id)

    provider_status = str(raw.get("status") or "")

    score = None
    outcome = None
    if provider_status == _FINISHED_STATUS:
        score_data = raw.get("score") or {}
        score = _full_time_score(score_data)
        outcome = _WINNER_TO_OUTCOME.get(score_data.get("winner"))
        if outcome is None and score is not None:
            outcome = _outcome_from_score(score)

    # FINISHED without a result stays pending until the provider fills it in
    status = MatchStatus.finished if outcome is not None else MatchStatus.scheduled

    return Match(
        id=match_id,
        round=round_number,
        kickoff_utc=kickoff,
        status=status,
        home_team=home,
        away_team=away,
        score=score,
        outcome=outcome,
        provider_status=provider_status,
    )


def normalize_matches(payload: Any) -> list[Match]:
    """Normalize a provider payload, preserving order and skipping bad records.

    Accepts the football-data.org body ({"matches": [...]}) or a bare list.
    """
    if isinstance(payload, dict):
        records = payload.get("matches")
    else:
        records = payload
    if not isinstance(records, list):
        raise NormalizationError("payload carries no match list")

    matches: list[Match] = []
    skipped = 0
    for raw in records:
        try:
            matches.append(normalize_match(raw))
        except NormalizationError as exc:
            skipped += 1
            logger.warning("Skipping malformed match record: %s", exc)

    if skipped:
        logger.info("Normalized %d matches (%d skipped)", len(matches), skipped)
    return matches


def freeze_finished(fresh: Iterable[Match], stored: Iterable[Match]) -> list[Match]:
    """Keep already-finished stored matches exactly as they were stored.

    Fresh records replace stored ones except when the stored record is
    FINISHED with a result. Stored matches missing from the fresh payload are kept.
    Order follows the fresh payload, then leftovers in stored order.
    """
    stored_by_id = {m.id: m for m in stored}
    merged: list[Match] = []
    seen: set[int] = set()
    frozen = 0

    for match in fresh:
        if match.id in seen:
            continue
        seen.add(match.id)
        previous = stored_by_id.get(match.id)
        if previous is not None and previous.is_finished and previous.outcome is not None:
            if previous != match:
                frozen += 1
            merged.append(previous)
        else:
            merged.append(match)

    for match_id, previous in stored_by_id.items():
        if match_id not in seen:
            merged.append(previous)

    if frozen:
        logger.info("Ignored changes to %d already-finished matches", frozen)
    return merged
