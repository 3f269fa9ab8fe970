"""
Manual round refresh: unconditional re-run of the round pipeline.

Uses the same pipeline as the scheduled job, but ignores the stored
provider cache token so every stage is recomputed.

Usage:
    # Refresh matches, standings and odds; archive a finished round:
    python -m tools.manual_update

    # Refresh snapshots only, leave open predictions alone:
    python -m tools.manual_update --skip-archive

    # Fetch and compute without touching the database:
    python -m tools.manual_update --dry-run
"""

import argparse
import asyncio
import json
import logging
import sys

# Add backend to Python path so we can import quiniela modules
sys.path.insert(0, "backend")

from quiniela.config import load_settings  # noqa: E402
from quiniela.errors import ConfigurationError, QuinielaError  # noqa: E402
from quiniela.providers.football_data import FootballDataProvider  # noqa: E402
from quiniela.services.odds_service import OddsPolicy  # noqa: E402
from quiniela.services.snapshot_service import CURRENT_ROUND, LEAGUE_TABLE  # noqa: E402
from quiniela.stores.memory import (  # noqa: E402
    MemoryArchiveStore,
    MemoryCurrentRoundStore,
    MemoryMatchRepository,
    MemorySnapshotPublisher,
)
from quiniela.workers.round_pipeline import RoundPipeline  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("manual_update")


async def dry_run(settings) -> int:
    publisher = MemorySnapshotPublisher()
    pipeline = RoundPipeline(
        provider=FootballDataProvider.from_settings(settings),
        matches=MemoryMatchRepository(),
        current=MemoryCurrentRoundStore(),
        archive=MemoryArchiveStore(),
        publisher=publisher,
        odds_policy=OddsPolicy.from_settings(settings),
    )
    try:
        report = await pipeline.run(force=True, archive=False)
    finally:
        await pipeline.provider.aclose()

    current = await publisher.read(CURRENT_ROUND) or {}
    table = await publisher.read(LEAGUE_TABLE) or {}
    log.info("%d matches, %d teams", report.matches, report.teams)
    log.info("%s: %d fixtures", current.get("label"), len(current.get("fixtures", [])))
    for fixture in current.get("fixtures", []):
        odds = fixture["odds"]
        log.info(
            "  %-28s vs %-28s  %5.2f %5.2f %5.2f",
            fixture["home_team"]["name"], fixture["away_team"]["name"],
            odds["home"], odds["draw"], odds["away"],
        )
    for row in table.get("standings", [])[:5]:
        log.info("  %2d. %-28s %3d pts", row["position"], row["team"]["name"], row["points"])
    return 0


async def live_run(settings, skip_archive: bool) -> int:
    from quiniela.main import run_once

    report = await run_once(settings, force=True, archive=not skip_archive)
    log.info("Done: %s", json.dumps(report.as_log(), default=str))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Unconditional round pipeline re-run")
    parser.add_argument("--dry-run", action="store_true", help="Compute only, write nothing")
    parser.add_argument("--skip-archive", action="store_true", help="Do not archive a finished round")
    args = parser.parse_args()

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        log.error("%s", exc)
        log.info("Usage: FOOTBALL_DATA_API_TOKEN=xxx python -m tools.manual_update")
        return 2

    try:
        if args.dry_run:
            return asyncio.run(dry_run(settings))
        return asyncio.run(live_run(settings, args.skip_archive))
    except QuinielaError as exc:
        log.error("Manual update failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
