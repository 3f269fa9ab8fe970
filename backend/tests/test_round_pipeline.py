"""
backend/tests/test_round_pipeline.py

Purpose:
    End-to-end pipeline runs against a scripted provider and the in-memory
    stores: publication, archival of finished rounds, unchanged-payload
    skips, crash recovery and failure isolation.
"""

from datetime import datetime, timezone

import pytest

from quiniela.errors import ProviderError, StoreError
from quiniela.models.match import Match, MatchStatus, Outcome, Score, Team
from quiniela.models.prediction import OpenPredictions, RoundSubmission, RoundSummary
from quiniela.providers.base import BaseMatchProvider, FetchResult
from quiniela.services.snapshot_service import CURRENT_ROUND, LEAGUE_TABLE, PLAYER_STANDINGS
from quiniela.services.submission_service import SubmissionService
from quiniela.stores.memory import (
    MemoryArchiveStore,
    MemoryCurrentRoundStore,
    MemoryMatchRepository,
    MemorySnapshotPublisher,
    MemorySubmissionRegistry,
)
from quiniela.workers.round_pipeline import RoundPipeline

BEFORE_KICKOFF = datetime(2024, 8, 16, 12, 0, tzinfo=timezone.utc)


def _raw(match_id, matchday, home, away, score=None, status=None, kickoff="2024-08-17T17:00:00Z"):
    record = {
        "id": match_id,
        "matchday": matchday,
        "utcDate": kickoff,
        "status": status or ("FINISHED" if score else "TIMED"),
        "homeTeam": {"id": home, "name": f"Team {home}"},
        "awayTeam": {"id": away, "name": f"Team {away}"},
        "score": {"winner": None, "fullTime": {"home": None, "away": None}},
    }
    if score:
        record["score"]["fullTime"] = {"home": score[0], "away": score[1]}
    return record


def _payload(*records):
    return {"matches": list(records)}


class _ScriptedProvider(BaseMatchProvider):
    def __init__(self, *results):
        self.results = list(results)
        self.tokens = []

    async def fetch(self, cache_token=None):
        self.tokens.append(cache_token)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _fresh(payload, token):
    return FetchResult(payload=payload, cache_token=token)


def _unchanged(token):
    return FetchResult(payload=None, cache_token=token, unchanged=True)


class _Env:
    def __init__(self, *results, current=None, archive=None, matches=None):
        self.provider = _ScriptedProvider(*results)
        self.matches = matches or MemoryMatchRepository()
        self.current = current or MemoryCurrentRoundStore()
        self.archive = archive or MemoryArchiveStore()
        self.publisher = MemorySnapshotPublisher()
        self.pipeline = RoundPipeline(self.provider, self.matches, self.current, self.archive, self.publisher)
        self.submissions = SubmissionService(self.current, MemorySubmissionRegistry(), self.publisher)


ROUND_ONE_SCHEDULED = _payload(
    _raw(101, 1, 1, 2),
    _raw(102, 1, 3, 4),
    _raw(201, 2, 2, 3, kickoff="2024-08-24T17:00:00Z"),
)
ROUND_ONE_FINISHED = _payload(
    _raw(101, 1, 1, 2, score=(2, 0)),
    _raw(102, 1, 3, 4, score=(1, 1)),
    _raw(201, 2, 2, 3, kickoff="2024-08-24T17:00:00Z"),
)
ROUND_ONE_HALF_FINISHED = _payload(
    _raw(101, 1, 1, 2, score=(2, 0)),
    _raw(102, 1, 3, 4, status="IN_PLAY"),
    _raw(201, 2, 2, 3, kickoff="2024-08-24T17:00:00Z"),
)


@pytest.mark.asyncio
async def test_round_lifecycle_from_publication_to_archive():
    env = _Env(_fresh(ROUND_ONE_SCHEDULED, '"e1"'), _fresh(ROUND_ONE_FINISHED, '"e2"'), _unchanged('"e2"'))

    first = await env.pipeline.run()
    assert first.status == "ok"
    assert first.current_round == 1
    assert first.fixtures == 2
    assert env.current.cache_token == '"e1"'
    snapshot = env.publisher.documents[CURRENT_ROUND]
    assert [f["match_id"] for f in snapshot["fixtures"]] == [101, 102]
    # No results yet: every team sits on the floor strength
    assert snapshot["fixtures"][0]["odds"] == {"home": 20.0, "draw": 1.11, "away": 20.0}
    assert env.publisher.documents[LEAGUE_TABLE]["standings"] == []

    await env.submissions.submit(
        "alice", [{"match_id": 101, "pick": "1"}, {"match_id": 102, "pick": "X"}], now=BEFORE_KICKOFF,
    )
    await env.submissions.submit("bob", [{"match_id": 101, "pick": "X"}], now=BEFORE_KICKOFF)

    second = await env.pipeline.run()
    assert env.provider.tokens[1] == '"e1"'
    assert second.open_round == 1
    assert second.open_round_state == "ARCHIVED"
    assert second.archived == 2
    assert second.current_round == 2
    assert env.current.cache_token == '"e2"'
    assert (await env.current.read_open()).is_empty

    by_user = {s.username: s for s in env.archive.entries}
    assert by_user["alice"].summary == RoundSummary(correct_count=2, odds_sum=21.11, points=21.11)
    assert by_user["bob"].summary.points == 0.0
    assert [p.correct for p in by_user["bob"].predictions] == [False]

    players = env.publisher.documents[PLAYER_STANDINGS]["standings"]
    assert [(p["position"], p["username"], p["points"]) for p in players] == [(1, "alice", 21.11), (2, "bob", 0.0)]

    third = await env.pipeline.run()
    assert third.unchanged
    assert third.archived == 0
    assert len(env.archive.entries) == 2
    assert env.current.cache_token == '"e2"'


@pytest.mark.asyncio
async def test_unfinished_round_keeps_predictions_open():
    open_predictions = OpenPredictions(
        round=1,
        submissions=[RoundSubmission(username="carol", round=1, submitted_at=BEFORE_KICKOFF)],
    )
    env = _Env(_fresh(ROUND_ONE_HALF_FINISHED, '"e3"'), current=MemoryCurrentRoundStore(open_predictions))

    report = await env.pipeline.run()

    assert report.open_round == 1
    assert report.open_round_state == "LOCKED"
    assert report.archived == 0
    assert report.current_round == 1
    assert env.archive.entries == []
    assert (await env.current.read_open()).round == 1


@pytest.mark.asyncio
async def test_rerun_after_partial_archive_does_not_double_score():
    scored_alice = RoundSubmission(
        username="alice", round=1, submitted_at=BEFORE_KICKOFF,
        summary=RoundSummary(correct_count=0, odds_sum=0.0, points=0.0),
    )
    archive = MemoryArchiveStore()
    await archive.append_batch([scored_alice])
    open_predictions = OpenPredictions(
        round=1,
        submissions=[
            RoundSubmission(username="Alice", round=1, submitted_at=BEFORE_KICKOFF),
            RoundSubmission(username="bob", round=1, submitted_at=BEFORE_KICKOFF),
        ],
    )
    env = _Env(
        _fresh(ROUND_ONE_FINISHED, '"e2"'),
        current=MemoryCurrentRoundStore(open_predictions),
        archive=archive,
    )

    report = await env.pipeline.run()

    assert report.archived == 1
    assert sorted(s.username for s in archive.entries) == ["alice", "bob"]
    assert (await env.current.read_open()).is_empty


@pytest.mark.asyncio
async def test_provider_failure_leaves_state_untouched():
    env = _Env(ProviderError("football-data.org returned 503"), current=MemoryCurrentRoundStore(cache_token='"e1"'))

    with pytest.raises(ProviderError):
        await env.pipeline.run()

    assert env.current.cache_token == '"e1"'
    assert env.publisher.documents == {}
    assert env.matches.matches == []


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"errorCode": 400}, _payload({"id": 1}, "junk")])
async def test_unusable_payload_aborts_run(payload):
    env = _Env(_fresh(payload, '"bad"'))

    with pytest.raises(ProviderError):
        await env.pipeline.run()

    assert env.current.cache_token is None
    assert env.publisher.documents == {}


class _BrokenArchive(MemoryArchiveStore):
    async def read_all(self):
        raise StoreError("archive read timed out")


@pytest.mark.asyncio
async def test_player_standings_failure_is_only_a_warning():
    env = _Env(_fresh(ROUND_ONE_SCHEDULED, '"e1"'), archive=_BrokenArchive())

    report = await env.pipeline.run()

    assert report.status == "ok"
    assert report.warnings and "archive read timed out" in report.warnings[0]
    assert CURRENT_ROUND in env.publisher.documents
    assert PLAYER_STANDINGS not in env.publisher.documents
    assert env.current.cache_token == '"e1"'


@pytest.mark.asyncio
async def test_finished_matches_are_frozen():
    stored = Match(
        id=101, round=1, status=MatchStatus.finished, provider_status="FINISHED",
        home_team=Team(id=1, name="Team 1"), away_team=Team(id=2, name="Team 2"),
        score=Score(home=2, away=0), outcome=Outcome.home,
    )
    corrected = _payload(_raw(101, 1, 1, 2, score=(0, 3)), _raw(102, 1, 3, 4))
    env = _Env(_fresh(corrected, '"e5"'), matches=MemoryMatchRepository([stored]))

    await env.pipeline.run()

    kept = next(m for m in env.matches.matches if m.id == 101)
    assert kept == stored
    table = env.publisher.documents[LEAGUE_TABLE]["standings"]
    assert table[0]["team"]["id"] == 1
    assert table[0]["points"] == 3


@pytest.mark.asyncio
async def test_force_ignores_token_and_skip_archive_keeps_it():
    open_predictions = OpenPredictions(
        round=1,
        submissions=[RoundSubmission(username="dan", round=1, submitted_at=BEFORE_KICKOFF)],
    )
    env = _Env(
        _fresh(ROUND_ONE_FINISHED, '"e9"'),
        current=MemoryCurrentRoundStore(open_predictions, cache_token='"e1"'),
    )

    report = await env.pipeline.run(force=True, archive=False)

    assert env.provider.tokens == [None]
    assert report.archived == 0
    assert env.current.cache_token == '"e1"'
    assert (await env.current.read_open()).round == 1
    assert env.archive.entries == []


@pytest.mark.asyncio
async def test_finished_without_result_is_settled_once_result_arrives():
    no_result = _raw(101, 1, 1, 2, status="FINISHED")
    early = _payload(no_result, _raw(102, 1, 3, 4, score=(1, 1)), _raw(201, 2, 2, 3, kickoff="2024-08-24T17:00:00Z"))
    open_predictions = OpenPredictions(
        round=1,
        submissions=[RoundSubmission(username="erin", round=1, submitted_at=BEFORE_KICKOFF)],
    )
    env = _Env(
        _fresh(early, '"e1"'),
        _fresh(ROUND_ONE_FINISHED, '"e2"'),
        current=MemoryCurrentRoundStore(open_predictions),
    )

    first = await env.pipeline.run()
    assert first.current_round == 1
    assert first.open_round_state == "LOCKED"
    pending = next(m for m in env.matches.matches if m.id == 101)
    assert pending.status == MatchStatus.scheduled
    assert pending.provider_status == "FINISHED"

    second = await env.pipeline.run()
    settled = next(m for m in env.matches.matches if m.id == 101)
    assert settled.outcome == Outcome.home
    assert settled.score == Score(home=2, away=0)
    assert second.open_round_state == "ARCHIVED"
    assert second.archived == 1
    assert second.current_round == 2

    later = datetime(2024, 8, 20, 12, 0, tzinfo=timezone.utc)
    submission = await env.submissions.submit("erin", [{"match_id": 201, "pick": "2"}], now=later)
    assert submission.round == 2
