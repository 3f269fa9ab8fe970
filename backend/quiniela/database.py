"""
backend/quiniela/database.py

Purpose:
    MongoDB connection bootstrap and index management for the pipeline
    collections.

Dependencies:
    - motor.motor_asyncio
    - quiniela.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("quiniela.database")


async def connect_db(settings) -> AsyncIOMotorDatabase:
    global client, db
    timeout_ms = int(settings.EXTERNAL_CALL_TIMEOUT_SECONDS * 1000)
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        serverSelectionTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    return db


async def close_db() -> None:
    global client
    if client:
        client.close()


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # At most one submission per player and round
    await db.submission_registry.create_index([("username", 1), ("round", 1)], unique=True)

    # A round is archived once per player, even across overlapping runs
    await db.predictions_archive.create_index([("username", 1), ("round", 1)], unique=True)
    await db.predictions_archive.create_index("round")

    await db.matches.create_index([("round", 1), ("status", 1)])

    logger.debug("Indexes ensured")
