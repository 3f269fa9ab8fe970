"""
backend/quiniela/services/submission_service.py

Purpose:
    Accept a player's picks for the open round, exactly once per
    (username, round). Odds are locked server-side from the published
    current-round snapshot, never taken from the client.

Dependencies:
    - quiniela.stores.base
    - quiniela.services.snapshot_service
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from quiniela.errors import (
    DuplicateSubmissionError,
    InvalidSubmissionError,
    RoundLockedError,
    StoreError,
)
from quiniela.models.match import MatchStatus
from quiniela.models.prediction import PickInput, Prediction, RoundSubmission
from quiniela.services.snapshot_service import CURRENT_ROUND, parse_round
from quiniela.stores.base import CurrentRoundStore, SnapshotPublisher, SubmissionRegistry
from quiniela.utils import normalize_username, parse_utc, utcnow

logger = logging.getLogger("quiniela.submission_service")


def _parse_picks(picks: Iterable[Any]) -> list[PickInput]:
    parsed = []
    for raw in picks:
        if isinstance(raw, PickInput):
            parsed.append(raw)
            continue
        try:
            parsed.append(PickInput.model_validate(raw))
        except ValidationError as exc:
            raise InvalidSubmissionError(f"invalid pick {raw!r}") from exc
    return parsed


def _is_open_fixture(fixture: dict, now: datetime) -> bool:
    if fixture.get("status") != MatchStatus.scheduled.value:
        return False
    if fixture.get("provider_status") not in (None, "", "SCHEDULED", "TIMED"):
        return False
    kickoff = fixture.get("kickoff_utc")
    if kickoff is not None and parse_utc(kickoff) <= now:
        return False
    return True


class SubmissionService:
    def __init__(
        self,
        current: CurrentRoundStore,
        registry: SubmissionRegistry,
        publisher: SnapshotPublisher,
    ):
        self.current = current
        self.registry = registry
        self.publisher = publisher

    async def submit(
        self, username: str, picks: Iterable[Any], *, now: Optional[datetime] = None,
    ) -> RoundSubmission:
        """Create the player's submission for the current round.

        Raises InvalidSubmissionError for malformed input, RoundLockedError
        when the round no longer accepts picks, DuplicateSubmissionError
        when the player already submitted for this round.
        """
        user = normalize_username(username)
        if not user:
            raise InvalidSubmissionError("username is required")

        parsed = _parse_picks(picks)
        if not parsed:
            raise InvalidSubmissionError("at least one pick is required")
        match_ids = [p.match_id for p in parsed]
        if len(set(match_ids)) != len(match_ids):
            raise InvalidSubmissionError("a match can only be picked once")

        snapshot = await self.publisher.read(CURRENT_ROUND)
        if not snapshot or not snapshot.get("fixtures"):
            raise RoundLockedError("no round is open for predictions")
        round_number = int(snapshot["round"])
        fixtures = {int(f["match_id"]): f for f in snapshot["fixtures"]}

        now = now or utcnow()
        for pick in parsed:
            fixture = fixtures.get(pick.match_id)
            if fixture is None:
                raise InvalidSubmissionError(f"match {pick.match_id} is not part of round {round_number}")
            if not _is_open_fixture(fixture, now):
                raise RoundLockedError(f"match {pick.match_id} has already started")

        open_predictions = await self.current.read_open()
        if open_predictions.round not in (None, round_number):
            raise RoundLockedError(
                f"round {open_predictions.round} is still being settled; round {round_number} is locked"
            )

        if not await self.registry.register(user, round_number):
            raise DuplicateSubmissionError(user, round_number)

        submission = RoundSubmission(
            username=user,
            round=round_number,
            submitted_at=now,
            predictions=[
                Prediction(
                    username=user,
                    round=round_number,
                    match_id=pick.match_id,
                    home_team=fixtures[pick.match_id]["home_team"]["name"],
                    away_team=fixtures[pick.match_id]["away_team"]["name"],
                    pick=pick.pick,
                    odds=float(fixtures[pick.match_id]["odds"][pick.pick.value.lower()]),
                )
                for pick in parsed
            ],
        )

        try:
            await self.current.add_submission(submission)
        except (StoreError, RoundLockedError):
            # All-or-nothing: free the key so the player can retry
            await self.registry.release(user, round_number)
            raise

        logger.info("Submission stored: user=%s round=%d picks=%d", user, round_number, len(parsed))
        return submission

    async def has_submitted(self, username: str, round_value: int | str) -> bool:
        return await self.registry.exists(normalize_username(username), parse_round(round_value))

    async def current_submission(self, username: str) -> Optional[RoundSubmission]:
        """The player's still-open submission, if any."""
        user = normalize_username(username)
        open_predictions = await self.current.read_open()
        for submission in open_predictions.submissions:
            if normalize_username(submission.username) == user:
                return submission
        return None
