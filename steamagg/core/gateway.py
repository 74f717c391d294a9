"""Rate-limited client for the Steam Web API."""

import asyncio
import time
from typing import Any, Awaitable, Callable

import httpx

from steamagg.exceptions import ConfigError, UpstreamError
from steamagg.logging import get_logger


class RateLimiter:
    """
    Enforces a minimum spacing between call starts.

    Waiters are served in arrival order. The last-call instant is the only
    shared state; share one instance to throttle every caller in the process.
    """

    def __init__(
        self,
        min_interval_s: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            min_interval_s: Minimum seconds between two call starts
            clock: Monotonic time source
            sleep: Coroutine used to wait, injectable for tests
        """
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = asyncio.Lock()
        self._log = get_logger("rate_limiter")

    @property
    def last_call(self) -> float | None:
        return self._last_call

    async def acquire(self, label: str = "") -> float:
        """
        Wait for this caller's turn and claim the next call slot.

        Returns:
            Clock reading taken as the start of the call
        """
        async with self._lock:
            if self._last_call is not None:
                wait = self.min_interval_s - (self._clock() - self._last_call)
                if wait > 0:
                    self._log.debug("rate_limit_wait", label=label, wait_ms=round(wait * 1000))
                    await self._sleep(wait)
            self._last_call = self._clock()
            return self._last_call


class StatsGateway:
    """
    Steam Web API client that funnels every call through one RateLimiter.

    No retries: failures surface as UpstreamError and the caller decides
    whether to fall back to stored data.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://api.steampowered.com",
        limiter: RateLimiter | None = None,
        recently_played_count: int = 20,
    ):
        self._client = client
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter or RateLimiter()
        self.recently_played_count = recently_played_count
        self._log = get_logger("gateway")

    async def fetch(self, path: str, params: dict[str, Any], label: str = "") -> Any:
        """
        Issue one rate-limited GET and decode the JSON body.

        Args:
            path: API path, e.g. "/ISteamUser/GetPlayerSummaries/v2/"
            params: Query parameters (the API key is added here)
            label: Name used in log events

        Returns:
            Decoded response body

        Raises:
            ConfigError: If no API key is configured
            UpstreamError: On transport failure, non-2xx status or invalid JSON
        """
        label = label or path
        if not self._api_key:
            raise ConfigError("Steam Web API key is not configured (set STEAM_API_KEY)")
        await self.limiter.acquire(label)
        self._log.info("api_fetch", endpoint=label)

        query = {"key": self._api_key, **params}
        try:
            response = await self._client.get(self.base_url + path, params=query)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(f"{label} returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"{label} request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"{label} returned invalid JSON: {e}") from e

    async def get_badges(self, steam64: str) -> Any:
        return await self.fetch(
            "/IPlayerService/GetBadges/v1/", {"steamid": steam64}, "GetBadges"
        )

    async def get_recently_played(self, steam64: str) -> Any:
        return await self.fetch(
            "/IPlayerService/GetRecentlyPlayedGames/v1/",
            {"steamid": steam64, "count": self.recently_played_count},
            "GetRecentlyPlayedGames",
        )

    async def get_player_summaries(self, steam64: str) -> Any:
        return await self.fetch(
            "/ISteamUser/GetPlayerSummaries/v2/", {"steamids": steam64}, "GetPlayerSummaries"
        )
