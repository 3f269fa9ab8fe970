from abc import ABC, abstractmethod
from typing import Any, Optional

from quiniela.models.match import Match
from quiniela.models.prediction import OpenPredictions, RoundSubmission


class MatchRepository(ABC):
    """Full normalized match set of the season."""

    @abstractmethod
    async def load(self) -> list[Match]:
        ...

    @abstractmethod
    async def replace_all(self, matches: list[Match]) -> None:
        ...


class CurrentRoundStore(ABC):
    """Single-slot store: the open predictions object and the provider cache token.

    The slot is never merged field by field: it is filled by appending whole
    submissions for a single round and emptied in one conditional write
    when that round is archived.
    """

    @abstractmethod
    async def read_open(self) -> OpenPredictions:
        """Return the open slot; an empty OpenPredictions when nothing is open."""
        ...

    @abstractmethod
    async def add_submission(self, submission: RoundSubmission) -> None:
        """Append one submission to the slot.

        Raises RoundLockedError when the slot is held by another round.
        """
        ...

    @abstractmethod
    async def clear_open(self, round_number: int) -> bool:
        """Empty the slot if it still holds ``round_number``. Returns True when cleared."""
        ...

    @abstractmethod
    async def get_cache_token(self) -> Optional[str]:
        ...

    @abstractmethod
    async def set_cache_token(self, token: Optional[str]) -> None:
        ...


class ArchiveStore(ABC):
    """Append-only log of scored submissions, unique per (username, round)."""

    @abstractmethod
    async def append_batch(self, submissions: list[RoundSubmission]) -> int:
        """Append submissions, ignoring ones already archived. Returns the number added."""
        ...

    @abstractmethod
    async def read_all(self) -> list[RoundSubmission]:
        ...

    @abstractmethod
    async def read_for_username(self, username: str) -> list[RoundSubmission]:
        ...

    @abstractmethod
    async def archived_usernames(self, round_number: int) -> set[str]:
        ...


class SubmissionRegistry(ABC):
    """Atomic guard against duplicate (username, round) submissions."""

    @abstractmethod
    async def exists(self, username: str, round_number: int) -> bool:
        ...

    @abstractmethod
    async def register(self, username: str, round_number: int) -> bool:
        """Claim the key. False when it was already taken."""
        ...

    @abstractmethod
    async def release(self, username: str, round_number: int) -> None:
        """Undo a claim whose submission could not be stored."""
        ...


class SnapshotPublisher(ABC):
    """Full-replace documents read by the presentation layer."""

    @abstractmethod
    async def publish(self, name: str, document: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def read(self, name: str) -> Optional[dict[str, Any]]:
        ...
