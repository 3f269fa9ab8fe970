"""
backend/quiniela/config.py

Purpose:
    Central settings loading for the round pipeline, provider client and
    stores.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from quiniela.errors import ConfigurationError

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    FOOTBALL_DATA_API_TOKEN: str = Field(min_length=1)
    FOOTBALL_DATA_BASE_URL: str = "https://api.football-data.org/v4"
    COMPETITION_CODE: str = "PD"
    SEASON: int = 2024

    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "quiniela"

    # Every provider/store call is bounded by this; a timeout fails the run
    EXTERNAL_CALL_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    PROVIDER_MAX_RETRIES: int = 2
    PROVIDER_BASE_DELAY_SECONDS: float = 2.0

    # Odds pricing
    DRAW_STRENGTH: float = Field(default=80.0, gt=0)
    OVERROUND_MARGIN: float = Field(default=1.08, gt=0)
    ODDS_CEILING: float = Field(default=20.0, ge=1.0)

    # Scheduler
    PIPELINE_INTERVAL_MINUTES: int = Field(default=15, ge=1)

    LOG_LEVEL: str = "INFO"

    model_config = {
        "str_strip_whitespace": True,
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


def load_settings(**overrides) -> Settings:
    """Build settings from env/.env, raising ConfigurationError when invalid."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        missing = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        raise ConfigurationError(
            f"Invalid or missing configuration: {', '.join(missing)}"
        ) from exc
