"""
backend/quiniela/stores/mongo.py

Purpose:
    MongoDB (motor) implementations of the store contracts. Uniqueness of
    (username, round) in the registry and the archive is enforced by unique
    indexes, so concurrent pipeline runs and concurrent submissions cannot
    double-write.

Dependencies:
    - motor (collections passed in via the database handle)
    - pymongo.errors
    - quiniela.stores.base
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from pymongo import ReplaceOne
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from quiniela.errors import RoundLockedError, StoreError
from quiniela.models.match import Match
from quiniela.models.prediction import OpenPredictions, RoundSubmission
from quiniela.stores.base import (
    ArchiveStore,
    CurrentRoundStore,
    MatchRepository,
    SnapshotPublisher,
    SubmissionRegistry,
)
from quiniela.utils import normalize_username, utcnow

logger = logging.getLogger("quiniela.stores.mongo")

T = TypeVar("T")

_DUPLICATE_KEY = 11000
OPEN_PREDICTIONS_ID = "open_predictions"
MATCH_CACHE_TOKEN_ID = "match_cache_token"


class _MongoStore:
    def __init__(self, db, timeout: float = 10.0):
        self._db = db
        self._timeout = timeout

    async def _call(self, what: str, awaitable: Awaitable[T]) -> T:
        """Await a driver call with a deadline, translating driver failures to StoreError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreError(f"{what} timed out after {self._timeout:.0f}s") from exc
        except (DuplicateKeyError, BulkWriteError):
            # Uniqueness outcomes, interpreted by the caller
            raise
        except PyMongoError as exc:
            raise StoreError(f"{what} failed: {exc}") from exc


class MongoMatchRepository(_MongoStore, MatchRepository):
    async def load(self) -> list[Match]:
        docs = await self._call(
            "load matches",
            self._db.matches.find({}).to_list(length=None),
        )
        return [Match.model_validate(doc) for doc in docs]

    async def replace_all(self, matches: list[Match]) -> None:
        ops = []
        for match in matches:
            doc = match.model_dump(mode="json")
            doc["_id"] = match.id
            ops.append(ReplaceOne({"_id": match.id}, doc, upsert=True))
        if ops:
            await self._call("write matches", self._db.matches.bulk_write(ops, ordered=False))
        # Upsert first, then prune, so readers never see an empty set
        await self._call(
            "prune matches",
            self._db.matches.delete_many({"_id": {"$nin": [m.id for m in matches]}}),
        )


class MongoCurrentRoundStore(_MongoStore, CurrentRoundStore):
    @property
    def _coll(self):
        return self._db.current_round

    async def read_open(self) -> OpenPredictions:
        doc = await self._call("read open predictions", self._coll.find_one({"_id": OPEN_PREDICTIONS_ID}))
        if not doc:
            return OpenPredictions()
        return OpenPredictions(
            round=doc.get("round"),
            submissions=[RoundSubmission.model_validate(s) for s in doc.get("submissions") or []],
        )

    async def _push(self, submission: RoundSubmission) -> bool:
        result = await self._call(
            "add submission",
            self._coll.update_one(
                {"_id": OPEN_PREDICTIONS_ID, "round": {"$in": [None, submission.round]}},
                {
                    "$set": {"round": submission.round, "updated_at": utcnow()},
                    "$push": {"submissions": submission.model_dump(mode="json")},
                },
            ),
        )
        return result.matched_count > 0

    async def add_submission(self, submission: RoundSubmission) -> None:
        if await self._push(submission):
            return
        try:
            await self._call(
                "create open predictions",
                self._coll.insert_one({
                    "_id": OPEN_PREDICTIONS_ID,
                    "round": submission.round,
                    "submissions": [submission.model_dump(mode="json")],
                    "updated_at": utcnow(),
                }),
            )
            return
        except DuplicateKeyError:
            pass
        # Lost the creation race to another submitter; the slot now exists
        if not await self._push(submission):
            raise RoundLockedError(
                f"predictions for another round are still open; round {submission.round} is locked"
            )

    async def clear_open(self, round_number: int) -> bool:
        result = await self._call(
            "clear open predictions",
            self._coll.update_one(
                {"_id": OPEN_PREDICTIONS_ID, "round": round_number},
                {"$set": {"round": None, "submissions": [], "updated_at": utcnow()}},
            ),
        )
        return result.matched_count > 0

    async def get_cache_token(self) -> Optional[str]:
        doc = await self._call("read cache token", self._coll.find_one({"_id": MATCH_CACHE_TOKEN_ID}))
        return doc.get("token") if doc else None

    async def set_cache_token(self, token: Optional[str]) -> None:
        await self._call(
            "write cache token",
            self._coll.update_one(
                {"_id": MATCH_CACHE_TOKEN_ID},
                {"$set": {"token": token, "updated_at": utcnow()}},
                upsert=True,
            ),
        )


class MongoArchiveStore(_MongoStore, ArchiveStore):
    @property
    def _coll(self):
        return self._db.predictions_archive

    async def append_batch(self, submissions: list[RoundSubmission]) -> int:
        if not submissions:
            return 0
        docs = []
        for submission in submissions:
            doc = submission.model_dump(mode="json")
            doc["username"] = normalize_username(submission.username)
            doc["archived_at"] = utcnow()
            docs.append(doc)
        try:
            result = await self._call("append archive", self._coll.insert_many(docs, ordered=False))
        except BulkWriteError as exc:
            errors = exc.details.get("writeErrors", [])
            if any(err.get("code") != _DUPLICATE_KEY for err in errors):
                raise StoreError(f"append archive failed: {errors[:3]}") from exc
            inserted = int(exc.details.get("nInserted", 0))
            logger.info(
                "Archive append skipped %d already-archived submissions", len(errors),
            )
            return inserted
        return len(result.inserted_ids)

    @staticmethod
    def _to_model(doc: dict[str, Any]) -> RoundSubmission:
        doc = dict(doc)
        doc.pop("_id", None)
        doc.pop("archived_at", None)
        return RoundSubmission.model_validate(doc)

    async def read_all(self) -> list[RoundSubmission]:
        docs = await self._call(
            "read archive",
            self._coll.find({}).sort([("round", 1), ("username", 1)]).to_list(length=None),
        )
        return [self._to_model(d) for d in docs]

    async def read_for_username(self, username: str) -> list[RoundSubmission]:
        docs = await self._call(
            "read player archive",
            self._coll.find({"username": normalize_username(username)}).sort("round", -1).to_list(length=None),
        )
        return [self._to_model(d) for d in docs]

    async def archived_usernames(self, round_number: int) -> set[str]:
        docs = await self._call(
            "read archived usernames",
            self._coll.find({"round": round_number}, {"username": 1}).to_list(length=None),
        )
        return {d["username"] for d in docs}


class MongoSubmissionRegistry(_MongoStore, SubmissionRegistry):
    @property
    def _coll(self):
        return self._db.submission_registry

    async def exists(self, username: str, round_number: int) -> bool:
        doc = await self._call(
            "check registry",
            self._coll.find_one({"username": normalize_username(username), "round": round_number}),
        )
        return doc is not None

    async def register(self, username: str, round_number: int) -> bool:
        try:
            await self._call(
                "register submission",
                self._coll.insert_one({
                    "username": normalize_username(username),
                    "round": round_number,
                    "created_at": utcnow(),
                }),
            )
        except DuplicateKeyError:
            return False
        return True

    async def release(self, username: str, round_number: int) -> None:
        await self._call(
            "release submission",
            self._coll.delete_one({"username": normalize_username(username), "round": round_number}),
        )


class MongoSnapshotPublisher(_MongoStore, SnapshotPublisher):
    async def publish(self, name: str, document: dict[str, Any]) -> None:
        doc = dict(document)
        doc["_id"] = name
        await self._call(
            f"publish {name}",
            self._db.snapshots.replace_one({"_id": name}, doc, upsert=True),
        )

    async def read(self, name: str) -> Optional[dict[str, Any]]:
        doc = await self._call(f"read {name}", self._db.snapshots.find_one({"_id": name}))
        if doc is None:
            return None
        doc.pop("_id", None)
        return doc
