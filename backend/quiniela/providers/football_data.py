"""
backend/quiniela/providers/football_data.py

Purpose:
    football-data.org v4 adapter: conditional fetch (ETag / If-None-Match)
    of one competition season's full match list.

Dependencies:
    - quiniela.providers.http_client
    - quiniela.providers.base
"""

import logging
from typing import Any, Optional

import httpx

from quiniela.errors import ProviderError
from quiniela.providers.base import BaseMatchProvider, FetchResult
from quiniela.providers.http_client import ResilientClient, safe_url

logger = logging.getLogger("quiniela.football_data")

PROVIDER_NAME = "football_data"


class FootballDataProvider(BaseMatchProvider):
    """football-data.org provider for a single competition and season."""

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = "https://api.football-data.org/v4",
        competition: str = "PD",
        season: int = 2024,
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 2.0,
    ):
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._competition = competition
        self._season = season
        self._client = ResilientClient(
            PROVIDER_NAME, timeout=timeout, max_retries=max_retries, base_delay=base_delay,
        )

    @classmethod
    def from_settings(cls, settings) -> "FootballDataProvider":
        return cls(
            settings.FOOTBALL_DATA_API_TOKEN,
            base_url=settings.FOOTBALL_DATA_BASE_URL,
            competition=settings.COMPETITION_CODE,
            season=settings.SEASON,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
            max_retries=settings.PROVIDER_MAX_RETRIES,
            base_delay=settings.PROVIDER_BASE_DELAY_SECONDS,
        )

    @property
    def matches_url(self) -> str:
        return f"{self._base_url}/competitions/{self._competition}/matches"

    async def fetch(self, cache_token: Optional[str] = None) -> FetchResult:
        headers = {"X-Auth-Token": self._api_token}
        if cache_token:
            headers["If-None-Match"] = cache_token

        try:
            resp = await self._client.get(
                self.matches_url,
                params={"season": self._season},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"football-data.org request failed: {exc}") from exc

        if resp.status_code == 304:
            logger.info("football-data.org: no changes since last fetch")
            return FetchResult(payload=None, cache_token=cache_token, unchanged=True)

        if resp.status_code != 200:
            raise ProviderError(
                f"football-data.org returned {resp.status_code} for {safe_url(self.matches_url)}"
            )

        try:
            payload: Any = resp.json()
        except ValueError as exc:
            raise ProviderError("football-data.org returned a non-JSON body") from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("matches"), list):
            raise ProviderError("football-data.org payload has no 'matches' list")

        logger.info(
            "football-data.org: %d matches for %s/%s",
            len(payload["matches"]), self._competition, self._season,
        )
        return FetchResult(
            payload=payload,
            cache_token=resp.headers.get("etag"),
            unchanged=False,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
