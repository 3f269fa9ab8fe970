"""
backend/tests/test_scoring_service.py

Purpose:
    Round submission scoring, summaries and the completeness gate.
"""

from datetime import datetime, timezone

import pytest

from quiniela.errors import AlreadyScoredError, RoundNotCompleteError
from quiniela.models.match import Match, MatchStatus, Outcome, Score, Team
from quiniela.models.prediction import Prediction, RoundSubmission, RoundSummary
from quiniela.services.scoring_service import score_submission, summarize

_SUBMITTED = datetime(2024, 8, 16, 12, 0, tzinfo=timezone.utc)


def _final(match_id, outcome, round_number=1):
    goals = {Outcome.home: (2, 0), Outcome.draw: (1, 1), Outcome.away: (0, 1)}[outcome]
    return Match(
        id=match_id, round=round_number, status=MatchStatus.finished,
        home_team=Team(id=match_id * 10, name="H"), away_team=Team(id=match_id * 10 + 1, name="A"),
        score=Score(home=goals[0], away=goals[1]), outcome=outcome,
    )


def _submission(picks, username="alice", round_number=1):
    return RoundSubmission(
        username=username,
        round=round_number,
        submitted_at=_SUBMITTED,
        predictions=[
            Prediction(
                username=username, round=round_number, match_id=match_id,
                home_team="H", away_team="A", pick=pick, odds=odds,
            )
            for match_id, pick, odds in picks
        ],
    )


def test_scores_each_prediction_and_summarizes():
    matches = [_final(1, Outcome.home), _final(2, Outcome.draw), _final(3, Outcome.away)]
    submission = _submission([
        (1, Outcome.home, 1.5),
        (2, Outcome.away, 3.2),
        (3, Outcome.away, 2.0),
    ])

    scored = score_submission(submission, matches)

    assert [p.correct for p in scored.predictions] == [True, False, True]
    assert [p.actual_outcome for p in scored.predictions] == [Outcome.home, Outcome.draw, Outcome.away]
    assert scored.summary == RoundSummary(correct_count=2, odds_sum=6.7, points=3.5)
    # The input stays open
    assert submission.summary is None
    assert submission.predictions[0].correct is None


def test_incomplete_round_is_not_scored():
    scheduled = Match(id=2, round=1, home_team=Team(id=1), away_team=Team(id=2))
    submission = _submission([(1, Outcome.home, 1.5), (2, Outcome.draw, 3.0)])
    with pytest.raises(RoundNotCompleteError):
        score_submission(submission, [_final(1, Outcome.home), scheduled])


def test_matches_from_other_rounds_are_ignored():
    submission = _submission([(1, Outcome.home, 1.5)])
    with pytest.raises(RoundNotCompleteError):
        score_submission(submission, [_final(1, Outcome.home, round_number=2)])


def test_already_scored_submission_is_rejected():
    scored = score_submission(_submission([(1, Outcome.home, 1.5)]), [_final(1, Outcome.home)])
    with pytest.raises(AlreadyScoredError):
        score_submission(scored, [_final(1, Outcome.home)])


def test_prediction_outside_round_counts_as_miss():
    submission = _submission([(1, Outcome.home, 1.5), (99, Outcome.home, 4.0)])
    scored = score_submission(submission, [_final(1, Outcome.home)])
    assert scored.predictions[1].correct is False
    assert scored.predictions[1].actual_outcome is None
    assert scored.summary.correct_count == 1
    assert scored.summary.odds_sum == 5.5


def test_custom_points_policy():
    scored = score_submission(
        _submission([(1, Outcome.home, 1.5), (2, Outcome.home, 2.5)]),
        [_final(1, Outcome.home), _final(2, Outcome.home)],
        points_policy=lambda preds: float(sum(1 for p in preds if p.correct)),
    )
    assert scored.summary.points == 2.0


def test_summarize_empty():
    assert summarize([]) == RoundSummary(correct_count=0, odds_sum=0.0, points=0.0)
