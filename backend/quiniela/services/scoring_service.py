"""
backend/quiniela/services/scoring_service.py

Purpose:
    Score one player's round submission against the round's final results
    and build the round summary (correct picks, odds sum, points).

Dependencies:
    - quiniela.models
"""

import logging
from typing import Callable, Iterable

from quiniela.errors import AlreadyScoredError, RoundNotCompleteError
from quiniela.models.match import Match
from quiniela.models.prediction import Prediction, RoundSubmission, RoundSummary
from quiniela.services.round_service import is_round_complete

logger = logging.getLogger("quiniela.scoring_service")

PointsPolicy = Callable[[list[Prediction]], float]


def correct_odds_points(predictions: list[Prediction]) -> float:
    """Default policy: a correct pick earns its locked odds, a miss earns 0."""
    return round(sum(p.odds for p in predictions if p.correct), 2)


def summarize(predictions: list[Prediction], points_policy: PointsPolicy = correct_odds_points) -> RoundSummary:
    return RoundSummary(
        correct_count=sum(1 for p in predictions if p.correct),
        # Every pick counts here, hit or miss; bold picks raise the sum
        odds_sum=round(sum(p.odds for p in predictions), 2),
        points=points_policy(predictions),
    )


def score_submission(
    submission: RoundSubmission,
    round_matches: Iterable[Match],
    points_policy: PointsPolicy = correct_odds_points,
) -> RoundSubmission:
    """Return a scored copy of the submission.

    Raises RoundNotCompleteError unless every match of the round is final,
    and AlreadyScoredError when the submission already carries a summary.
    """
    if submission.is_scored:
        raise AlreadyScoredError(
            f"submission of {submission.username} for round {submission.round} is already scored"
        )

    round_matches = [m for m in round_matches if m.round == submission.round]
    if not is_round_complete(round_matches):
        raise RoundNotCompleteError(f"round {submission.round} has unfinished matches")

    by_id = {m.id: m for m in round_matches}
    scored: list[Prediction] = []
    for prediction in submission.predictions:
        match = by_id.get(prediction.match_id)
        if match is None:
            logger.warning(
                "Prediction of %s references match %s outside round %s",
                submission.username, prediction.match_id, submission.round,
            )
            scored.append(prediction.model_copy(update={"correct": False, "actual_outcome": None}))
            continue
        scored.append(prediction.model_copy(update={
            "correct": prediction.pick == match.outcome,
            "actual_outcome": match.outcome,
        }))

    return submission.model_copy(update={
        "predictions": scored,
        "summary": summarize(scored, points_policy),
    })
