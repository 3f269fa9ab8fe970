"""In-process store implementations used by dry runs of the admin tool."""

import asyncio
from typing import Any, Optional

from quiniela.errors import RoundLockedError
from quiniela.models.match import Match
from quiniela.models.prediction import OpenPredictions, RoundSubmission
from quiniela.stores.base import (
    ArchiveStore,
    CurrentRoundStore,
    MatchRepository,
    SnapshotPublisher,
    SubmissionRegistry,
)
from quiniela.utils import normalize_username


class MemoryMatchRepository(MatchRepository):
    def __init__(self, matches: list[Match] | None = None):
        self.matches: list[Match] = list(matches or [])

    async def load(self) -> list[Match]:
        return list(self.matches)

    async def replace_all(self, matches: list[Match]) -> None:
        self.matches = list(matches)


class MemoryCurrentRoundStore(CurrentRoundStore):
    def __init__(self, open_predictions: OpenPredictions | None = None, cache_token: str | None = None):
        self.open = open_predictions or OpenPredictions()
        self.cache_token = cache_token
        self._lock = asyncio.Lock()

    async def read_open(self) -> OpenPredictions:
        return self.open.model_copy(deep=True)

    async def add_submission(self, submission: RoundSubmission) -> None:
        async with self._lock:
            if self.open.round not in (None, submission.round):
                raise RoundLockedError(
                    f"predictions for round {self.open.round} are still open; round {submission.round} is locked"
                )
            self.open = OpenPredictions(
                round=submission.round,
                submissions=[*self.open.submissions, submission],
            )

    async def clear_open(self, round_number: int) -> bool:
        async with self._lock:
            if self.open.round != round_number:
                return False
            self.open = OpenPredictions()
            return True

    async def get_cache_token(self) -> Optional[str]:
        return self.cache_token

    async def set_cache_token(self, token: Optional[str]) -> None:
        self.cache_token = token


class MemoryArchiveStore(ArchiveStore):
    def __init__(self):
        self.entries: list[RoundSubmission] = []

    def _keys(self) -> set[tuple[str, int]]:
        return {(normalize_username(s.username), s.round) for s in self.entries}

    async def append_batch(self, submissions: list[RoundSubmission]) -> int:
        keys = self._keys()
        added = 0
        for submission in submissions:
            key = (normalize_username(submission.username), submission.round)
            if key in keys:
                continue
            keys.add(key)
            self.entries.append(submission)
            added += 1
        return added

    async def read_all(self) -> list[RoundSubmission]:
        return list(self.entries)

    async def read_for_username(self, username: str) -> list[RoundSubmission]:
        wanted = normalize_username(username)
        found = [s for s in self.entries if normalize_username(s.username) == wanted]
        return sorted(found, key=lambda s: s.round, reverse=True)

    async def archived_usernames(self, round_number: int) -> set[str]:
        return {normalize_username(s.username) for s in self.entries if s.round == round_number}


class MemorySubmissionRegistry(SubmissionRegistry):
    def __init__(self):
        self.entries: set[tuple[str, int]] = set()
        self._lock = asyncio.Lock()

    async def exists(self, username: str, round_number: int) -> bool:
        return (normalize_username(username), round_number) in self.entries

    async def register(self, username: str, round_number: int) -> bool:
        key = (normalize_username(username), round_number)
        async with self._lock:
            if key in self.entries:
                return False
            self.entries.add(key)
            return True

    async def release(self, username: str, round_number: int) -> None:
        async with self._lock:
            self.entries.discard((normalize_username(username), round_number))


class MemorySnapshotPublisher(SnapshotPublisher):
    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}

    async def publish(self, name: str, document: dict[str, Any]) -> None:
        self.documents[name] = dict(document)

    async def read(self, name: str) -> Optional[dict[str, Any]]:
        doc = self.documents.get(name)
        return dict(doc) if doc is not None else None
