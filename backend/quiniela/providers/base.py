from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class FetchResult:
    """Outcome of a conditional fetch.

    unchanged=True means the provider confirmed nothing changed since
    ``cache_token``; payload is None and downstream snapshots stay as they are.
    """
    payload: Optional[Any]
    cache_token: Optional[str]
    unchanged: bool = False


class BaseMatchProvider(ABC):
    """Abstract base class for match data providers."""

    @abstractmethod
    async def fetch(self, cache_token: Optional[str] = None) -> FetchResult:
        """Fetch the season's full match list.

        Raises ProviderError on network/HTTP failures and malformed payloads.
        """
        ...

    async def aclose(self) -> None:
        return None
