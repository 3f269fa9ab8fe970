"""Player ranking, rebuilt from the full archive on every run."""

from typing import Iterable

from quiniela.models.prediction import RoundSubmission
from quiniela.models.standings import PlayerStandingsRow
from quiniela.services.scoring_service import summarize
from quiniela.utils import normalize_username


def calculate_player_standings(archive: Iterable[RoundSubmission]) -> list[PlayerStandingsRow]:
    """Aggregate archived submissions per player.

    Sorted by points, then correct predictions (both descending), then
    username so equal players always come out in the same order.
    """
    rows: dict[str, PlayerStandingsRow] = {}
    rounds: dict[str, set[int]] = {}

    for submission in archive:
        username = normalize_username(submission.username)
        summary = submission.summary or summarize(submission.predictions)
        row = rows.get(username)
        if row is None:
            row = PlayerStandingsRow(username=username)
            rows[username] = row
            rounds[username] = set()
        row.points = round(row.points + summary.points, 2)
        row.correct_predictions += summary.correct_count
        rounds[username].add(submission.round)

    for username, row in rows.items():
        row.rounds_played = len(rounds[username])

    ranked = sorted(rows.values(), key=lambda r: (-r.points, -r.correct_predictions, r.username))
    for position, row in enumerate(ranked, start=1):
        row.position = position
    return ranked
