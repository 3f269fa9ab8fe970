"""
backend/quiniela/workers/round_pipeline.py

Purpose:
    Scheduled round pipeline. One run:

    1. conditional fetch with the stored cache token (unchanged: skip 2-4)
    2. normalize, freeze finished matches, persist, standings, current
       round, odds, publish current-round and league-table snapshots
    3. check whether the open predictions' round is fully finished
    4. if so, score the open submissions, append them to the archive and
       clear the open slot
    5. rebuild player standings from the whole archive and publish them

    The cache token is stored only after 2-4 succeed, so an aborted run is
    redone in full on the next tick. Archive writes are unique per
    (username, round); overlapping runs cannot double-score a round.

Dependencies:
    - quiniela.providers.base
    - quiniela.stores.base
    - quiniela.services (normalizer, standings, odds, rounds, scoring)
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from quiniela.errors import NormalizationError, ProviderError, QuinielaError
from quiniela.models.match import Match
from quiniela.models.prediction import RoundState
from quiniela.providers.base import BaseMatchProvider
from quiniela.services.match_normalizer import freeze_finished, normalize_matches
from quiniela.services.odds_service import DEFAULT_ODDS_POLICY, OddsPolicy, price_fixtures
from quiniela.services.player_standings_service import calculate_player_standings
from quiniela.services.round_service import is_round_complete, matches_for_round, select_current_round
from quiniela.services.scoring_service import PointsPolicy, correct_odds_points, score_submission
from quiniela.services.snapshot_service import (
    CURRENT_ROUND,
    LEAGUE_TABLE,
    PLAYER_STANDINGS,
    build_current_round_snapshot,
    build_league_table_snapshot,
    build_player_standings_snapshot,
)
from quiniela.services.standings_service import calculate_league_standings
from quiniela.stores.base import ArchiveStore, CurrentRoundStore, MatchRepository, SnapshotPublisher
from quiniela.utils import normalize_username, utcnow

logger = logging.getLogger("quiniela.round_pipeline")


@dataclass
class PipelineReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: str = "running"  # ok | aborted
    unchanged: bool = False
    matches: int = 0
    teams: int = 0
    current_round: Optional[int] = None
    fixtures: int = 0
    open_round: Optional[int] = None
    open_round_state: Optional[str] = None
    archived: int = 0
    players: Optional[int] = None
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    def as_log(self) -> dict:
        return asdict(self)


class RoundPipeline:
    """Sequences the pipeline stages against the provider and the stores."""

    def __init__(
        self,
        provider: BaseMatchProvider,
        matches: MatchRepository,
        current: CurrentRoundStore,
        archive: ArchiveStore,
        publisher: SnapshotPublisher,
        *,
        odds_policy: OddsPolicy = DEFAULT_ODDS_POLICY,
        points_policy: PointsPolicy = correct_odds_points,
    ):
        self.provider = provider
        self.matches = matches
        self.current = current
        self.archive = archive
        self.publisher = publisher
        self.odds_policy = odds_policy
        self.points_policy = points_policy

    async def run(self, *, force: bool = False, archive: bool = True) -> PipelineReport:
        """Run once. ``force`` ignores the cache token (administrative re-run).

        ProviderError/StoreError from stages 1-4 propagate after logging; the
        archive is untouched in that case. Stage 5 failures are only logged.
        """
        report = PipelineReport(started_at=utcnow())
        try:
            token = None if force else await self.current.get_cache_token()
            result = await self.provider.fetch(token)

            if result.unchanged:
                report.unchanged = True
                logger.info("Provider reports no changes, skipping refresh and archival")
            else:
                all_matches = await self._refresh(result.payload, report)
                if archive:
                    await self._archive_completed_round(all_matches, report)
                    # Only after stages 2-4 succeeded
                    await self.current.set_cache_token(result.cache_token)
        except QuinielaError as exc:
            report.status = "aborted"
            report.error = f"{type(exc).__name__}: {exc}"
            report.finished_at = utcnow()
            logger.warning(json.dumps(report.as_log(), default=str))
            raise

        try:
            await self._publish_player_standings(report)
        except QuinielaError as exc:
            logger.error("Player standings refresh failed: %s", exc)
            report.warnings.append(f"player_standings: {exc}")

        report.status = "ok"
        report.finished_at = utcnow()
        logger.info(json.dumps(report.as_log(), default=str))
        return report

    async def _refresh(self, payload, report: PipelineReport) -> list[Match]:
        try:
            fresh = normalize_matches(payload)
        except NormalizationError as exc:
            raise ProviderError(f"malformed provider payload: {exc}") from exc

        stored = await self.matches.load()
        all_matches = freeze_finished(fresh, stored)
        if not all_matches:
            raise ProviderError("provider payload contained no usable matches")

        await self.matches.replace_all(all_matches)
        report.matches = len(all_matches)

        standings = calculate_league_standings(all_matches)
        report.teams = len(standings)

        current_round = select_current_round(all_matches)
        fixtures = matches_for_round(all_matches, current_round)
        priced = price_fixtures(fixtures, standings, self.odds_policy)
        report.current_round = current_round
        report.fixtures = len(priced)

        now = utcnow()
        await self.publisher.publish(CURRENT_ROUND, build_current_round_snapshot(current_round, priced, now))
        await self.publisher.publish(LEAGUE_TABLE, build_league_table_snapshot(standings, now))
        logger.info("Round %d published with %d fixtures", current_round, len(priced))
        return all_matches

    async def _archive_completed_round(self, all_matches: list[Match], report: PipelineReport) -> None:
        open_predictions = await self.current.read_open()
        if open_predictions.round is None:
            return

        round_number = open_predictions.round
        report.open_round = round_number
        round_matches = matches_for_round(all_matches, round_number)
        if not is_round_complete(round_matches):
            report.open_round_state = RoundState.locked.value if open_predictions.submissions else RoundState.open.value
            logger.debug("Round %d not finished yet, keeping predictions open", round_number)
            return

        already = await self.archive.archived_usernames(round_number)
        pending = [
            s for s in open_predictions.submissions
            if normalize_username(s.username) not in already
        ]
        if len(pending) < len(open_predictions.submissions):
            logger.info(
                "Round %d: %d submissions were archived by an earlier run",
                round_number, len(open_predictions.submissions) - len(pending),
            )

        scored = [score_submission(s, round_matches, self.points_policy) for s in pending]
        report.archived = await self.archive.append_batch(scored)
        await self.current.clear_open(round_number)
        report.open_round_state = RoundState.archived.value
        logger.info("Round %d finished: archived %d submissions", round_number, report.archived)

    async def _publish_player_standings(self, report: PipelineReport) -> None:
        history = await self.archive.read_all()
        standings = calculate_player_standings(history)
        await self.publisher.publish(PLAYER_STANDINGS, build_player_standings_snapshot(standings, utcnow()))
        report.players = len(standings)
