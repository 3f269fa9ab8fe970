"""
backend/quiniela/main.py

Purpose:
    Process entry points: a single scheduled pipeline run
    (``quiniela-update``) and an in-process interval scheduler
    (``quiniela-scheduler``).

    Exit status: 0 success, 1 run aborted (provider/store failure, retried
    on the next tick), 2 configuration error (fatal).

Dependencies:
    - apscheduler
    - quiniela.database
    - quiniela.workers.round_pipeline
"""

import asyncio
import logging
import os
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pymongo.errors import PyMongoError

import quiniela.database as _db
from quiniela.config import Settings, load_settings
from quiniela.errors import ConfigurationError, QuinielaError, StoreError
from quiniela.logging_setup import setup_logging
from quiniela.providers.football_data import FootballDataProvider
from quiniela.services.odds_service import OddsPolicy
from quiniela.stores.mongo import (
    MongoArchiveStore,
    MongoCurrentRoundStore,
    MongoMatchRepository,
    MongoSnapshotPublisher,
)
from quiniela.workers.round_pipeline import PipelineReport, RoundPipeline

logger = logging.getLogger("quiniela")

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2


async def _connect(settings: Settings):
    try:
        return await _db.connect_db(settings)
    except PyMongoError as exc:
        raise StoreError(f"database unavailable: {exc}") from exc


def build_pipeline(settings: Settings, db) -> RoundPipeline:
    timeout = settings.EXTERNAL_CALL_TIMEOUT_SECONDS
    return RoundPipeline(
        provider=FootballDataProvider.from_settings(settings),
        matches=MongoMatchRepository(db, timeout),
        current=MongoCurrentRoundStore(db, timeout),
        archive=MongoArchiveStore(db, timeout),
        publisher=MongoSnapshotPublisher(db, timeout),
        odds_policy=OddsPolicy.from_settings(settings),
    )


async def run_once(settings: Settings, *, force: bool = False, archive: bool = True) -> PipelineReport:
    db = await _connect(settings)
    pipeline = build_pipeline(settings, db)
    try:
        return await pipeline.run(force=force, archive=archive)
    finally:
        await pipeline.provider.aclose()
        await _db.close_db()


def update() -> int:
    """Single no-argument pipeline run."""
    # Until settings load, so configuration errors are reported
    setup_logging(os.environ.get("LOG_LEVEL", "INFO"))
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    setup_logging(settings.LOG_LEVEL)

    try:
        asyncio.run(run_once(settings))
    except QuinielaError as exc:
        logger.error("Pipeline run aborted: %s", exc)
        return EXIT_RUN_FAILED
    return EXIT_OK


async def _serve(settings: Settings) -> None:
    db = await _connect(settings)
    pipeline = build_pipeline(settings, db)

    async def _tick() -> None:
        try:
            await pipeline.run()
        except QuinielaError as exc:
            logger.error("Scheduled run aborted, retrying next tick: %s", exc)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        _tick,
        "interval",
        minutes=settings.PIPELINE_INTERVAL_MINUTES,
        id="round_pipeline",
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Round pipeline scheduled every %d minutes", settings.PIPELINE_INTERVAL_MINUTES)
    try:
        await _tick()
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await pipeline.provider.aclose()
        await _db.close_db()


def serve() -> int:
    """Run the pipeline now and then every PIPELINE_INTERVAL_MINUTES."""
    setup_logging(os.environ.get("LOG_LEVEL", "INFO"))
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR
    setup_logging(settings.LOG_LEVEL)

    try:
        asyncio.run(_serve(settings))
    except StoreError as exc:
        logger.error("Scheduler could not start: %s", exc)
        return EXIT_RUN_FAILED
    except KeyboardInterrupt:
        logger.info("Scheduler stopped")
    return EXIT_OK


def main() -> None:
    sys.exit(update())


if __name__ == "__main__":
    main()
