"""FastAPI web server for the steamagg aggregator."""

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from steamagg import Aggregator, AggregatorConfig, __version__
from steamagg.core.merger import to_response
from steamagg.exceptions import InputError, SteamAggError
from steamagg.logging import get_logger


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str


class TooManyRequests(Exception):
    """Caller exceeded the per-client request window."""


class ClientThrottle:
    """Allows one request per window per client address."""

    def __init__(self, window_seconds: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_seen: dict[str, float] = {}

    def hit(self, client_id: str) -> bool:
        """Record a request; False if it falls inside the client's window."""
        now = self._clock()
        last = self._last_seen.get(client_id)
        if last is not None and now - last < self.window_seconds:
            return False
        self._last_seen[client_id] = now
        # Drop clients whose window has long passed
        if len(self._last_seen) > 10000:
            cutoff = now - self.window_seconds
            self._last_seen = {k: v for k, v in self._last_seen.items() if v >= cutoff}
        return True


def create_app(
    config: AggregatorConfig | None = None,
    aggregator: Aggregator | None = None,
) -> FastAPI:
    """
    Build the HTTP application.

    Args:
        config: AggregatorConfig instance, uses defaults if None
        aggregator: Pre-built Aggregator (entered by the app lifespan)
    """
    config = config or (aggregator.config if aggregator else AggregatorConfig())
    throttle = ClientThrottle(config.client_rate_limit_seconds)
    log = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage aggregator lifecycle."""
        app.state.aggregator = aggregator or Aggregator(config)
        await app.state.aggregator.__aenter__()
        yield
        await app.state.aggregator.__aexit__(None, None, None)

    app = FastAPI(
        title="steamagg API",
        description="Steam profile aggregator API",
        version=__version__,
        lifespan=lifespan,
    )

    def limit_per_client(request: Request) -> None:
        client_id = request.client.host if request.client else "unknown"
        if not throttle.hit(client_id):
            raise TooManyRequests()

    @app.exception_handler(TooManyRequests)
    async def too_many_requests(request: Request, exc: TooManyRequests):
        window = f"{config.client_rate_limit_seconds:g}"
        return JSONResponse(
            status_code=429,
            content={
                "status": 429,
                "error": f"Too many requests, please wait {window} seconds before trying again.",
            },
        )

    @app.exception_handler(InputError)
    async def input_error(request: Request, exc: InputError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(SteamAggError)
    async def aggregation_error(request: Request, exc: SteamAggError):
        log.error("request_failed", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        log.exception("request_failed_unexpected", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Check API health status."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now().isoformat(),
        )

    @app.get("/steam", tags=["Aggregation"], dependencies=[Depends(limit_per_client)])
    async def steam_profile(
        request: Request,
        user: str | None = Query(None, description="Vanity name, profile URL or any Steam id"),
    ):
        """
        Aggregate a Steam profile.

        Combines the identity record, the scraped profile page and the Steam
        Web API documents into one response, with flags describing what changed.
        """
        if not user or not user.strip():
            raise InputError("Missing user parameter")
        profile = await request.app.state.aggregator.aggregate(user)
        return to_response(profile)

    @app.get("/findid", tags=["Collaborators"])
    async def find_id(
        request: Request,
        user: str | None = Query(None, description="Token to resolve"),
    ):
        """Resolve a token to its identity record without touching the store."""
        if not user or not user.strip():
            raise InputError("Missing user parameter")
        identity = await request.app.state.aggregator.resolver.resolve(user.strip())
        return identity.model_dump(mode="json")

    @app.get("/scrape", tags=["Collaborators"])
    async def scrape(
        request: Request,
        url: str | None = Query(None, description="Profile URL to scrape"),
    ):
        """Scrape one profile page without touching the store."""
        if not url:
            raise InputError("Missing url parameter")
        snapshot = await request.app.state.aggregator.scraper.scrape(url)
        return snapshot.model_dump(mode="json")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
