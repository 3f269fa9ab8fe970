"""Per-player archived history, one entry per round, newest first."""

from typing import Any

from quiniela.models.match import OUTCOME_CODES
from quiniela.models.prediction import RoundSubmission
from quiniela.services.scoring_service import summarize
from quiniela.services.snapshot_service import round_label
from quiniela.stores.base import ArchiveStore


def _history_entry(submission: RoundSubmission) -> dict[str, Any]:
    summary = submission.summary or summarize(submission.predictions)
    return {
        "round": submission.round,
        "label": round_label(submission.round),
        "submitted_at": submission.submitted_at,
        "summary": summary.model_dump(),
        "predictions": [
            {
                "match_id": p.match_id,
                "home_team": p.home_team,
                "away_team": p.away_team,
                "pick": OUTCOME_CODES[p.pick],
                "odds": p.odds,
                "correct": p.correct,
                "result": OUTCOME_CODES[p.actual_outcome] if p.actual_outcome else "",
            }
            for p in submission.predictions
        ],
    }


async def player_history(archive: ArchiveStore, username: str) -> list[dict[str, Any]]:
    submissions = await archive.read_for_username(username)
    ordered = sorted(submissions, key=lambda s: s.round, reverse=True)
    return [_history_entry(s) for s in ordered]
