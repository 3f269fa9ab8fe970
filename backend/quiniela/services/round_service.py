"""Round selection and completeness checks over a match set."""

from datetime import datetime, timezone
from typing import Iterable

from quiniela.models.match import Match
from quiniela.utils import ensure_utc

_NO_KICKOFF = datetime.max.replace(tzinfo=timezone.utc)


def select_current_round(matches: Iterable[Match]) -> int:
    """The earliest round that still has an unfinished match.

    Rounds complete in order, so that round is the one open for betting.
    When every match is finished (season over) the last round is returned.
    """
    rounds: set[int] = set()
    pending: set[int] = set()
    for match in matches:
        rounds.add(match.round)
        if not match.is_finished:
            pending.add(match.round)

    if not rounds:
        raise ValueError("cannot select a round from an empty match set")
    if pending:
        return min(pending)
    return max(rounds)


def matches_for_round(matches: Iterable[Match], round_number: int) -> list[Match]:
    """Fixtures of one round in kickoff order."""
    selected = [m for m in matches if m.round == round_number]
    selected.sort(key=lambda m: (ensure_utc(m.kickoff_utc) if m.kickoff_utc else _NO_KICKOFF, m.id))
    return selected


def is_round_complete(round_matches: Iterable[Match]) -> bool:
    """True when the round has fixtures and all of them carry a final result."""
    found = False
    for match in round_matches:
        found = True
        if not match.is_finished or match.outcome is None:
            return False
    return found
