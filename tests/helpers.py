"""Fakes and builders for aggregator tests - no internet, no browser."""

import asyncio
from datetime import datetime

import httpx

from steamagg.exceptions import ResolutionError
from steamagg.models.identity import IdentityRecord
from steamagg.models.snapshot import ScrapeSnapshot


STEAM64 = "76561197960287930"
PERMALINK = f"https://steamcommunity.com/profiles/{STEAM64}/"
VANITY_URL = "https://steamcommunity.com/id/robinwalker/"


class FakeClock:
    """Manually advanced monotonic clock; sleep() advances it instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def badges_body(count: int) -> dict:
    return {
        "response": {
            "badges": [
                {"badgeid": i + 1, "level": 1, "xp": 100, "scarcity": 1000 + i}
                for i in range(count)
            ],
            "player_xp": 1250,
            "player_level": 12,
            "player_xp_needed_to_level_up": 50,
            "player_xp_needed_current_level": 1200,
        }
    }


def recent_body() -> dict:
    return {
        "response": {
            "total_count": 1,
            "games": [
                {"appid": 570, "name": "Dota 2", "playtime_2weeks": 750, "playtime_forever": 74040},
            ],
        }
    }


def summary_body(personastate: int | None = 1, **extra) -> dict:
    player = {
        "steamid": STEAM64,
        "personaname": "Robin",
        "realname": "Robin Walker",
        "avatar": "https://avatars.example.com/3f2a.jpg",
        "avatarmedium": "https://avatars.example.com/3f2a_medium.jpg",
        "avatarfull": "https://avatars.example.com/3f2a_full.jpg",
        "avatarhash": "3f2a",
        "loccountrycode": "US",
        **extra,
    }
    if personastate is not None:
        player["personastate"] = personastate
    return {"response": {"players": [player]}}


def make_identity(profile_url: str | None = PERMALINK, steam64: str = STEAM64) -> IdentityRecord:
    return IdentityRecord(
        steam64=steam64,
        steam_id="STEAM_0:0:11101",
        steam_id3="[U:1:22202]",
        steam32="22202",
        profile_url=profile_url,
        real_name="Robin Walker",
        country="United States",
        account_created="12 Sep 2003",
    )


def make_snapshot(
    status: str | None = "online",
    badge_count: int = 2,
    avatar: str | None = "https://avatars.example.com/3f2a_full.jpg",
    game: str | None = None,
    summary_avatar: str | None = None,
) -> ScrapeSnapshot:
    return ScrapeSnapshot.model_validate({
        "profile": {
            "persona_name": "Robin",
            "status": status,
            "game": game,
            "avatar": avatar,
            "avatar_frame": "https://cdn.example.com/frames/gold.png",
            "background_image": "https://cdn.example.com/backgrounds/forest.jpg",
            "level": 42,
            "level_stage": "lvl_40",
            "bio": {"raw": "Hello", "text": "Hello"},
        },
        "side_panel": {
            "badges": {"count": badge_count, "badges": []},
            "awards": {"count": 1, "awards": [{"image": None, "name": "Helpful"}]},
            "stats": {
                "games": {"name": "Games", "count": 123},
                "screenshots": {"name": "Screenshots", "count": 1024},
            },
            "friends": {"count": 88, "top": [{"name": "Pal", "link": "https://steamcommunity.com/id/pal"}]},
            "groups": {"count": 5, "primary": {"name": "Valve", "link": "https://steamcommunity.com/groups/valve"}},
        },
        "scraped_at": datetime(2026, 10, 18, 12, 0, 0),
        "summary_avatar": summary_avatar,
    })


class FakeSteam:
    """
    httpx MockTransport handler standing in for both the Web API and steamcommunity.com.

    Web API bodies are configurable per endpoint; endpoints listed in `failing`
    answer 503. Community URLs listed in `redirects` answer 302.
    """

    def __init__(self):
        self.bodies = {
            "GetBadges": badges_body(2),
            "GetRecentlyPlayedGames": recent_body(),
            "GetPlayerSummaries": summary_body(1),
        }
        self.failing: set[str] = set()
        self.redirects: dict[str, str] = {}
        self.calls: list[str] = []
        self.probes: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.steampowered.com":
            endpoint = request.url.path.strip("/").split("/")[1]
            self.calls.append(endpoint)
            if endpoint in self.failing:
                return httpx.Response(503, text="Service Unavailable")
            return httpx.Response(200, json=self.bodies[endpoint])

        url = str(request.url)
        self.probes.append(url)
        if url in self.redirects:
            return httpx.Response(302, headers={"location": self.redirects[url]})
        return httpx.Response(200, text="<html></html>")

    def count(self, endpoint: str) -> int:
        return self.calls.count(endpoint)


class FakeScraper:
    def __init__(self, snapshot: ScrapeSnapshot | None = None):
        self.snapshot = snapshot or make_snapshot()
        self.error: Exception | None = None
        self.urls: list[str] = []

    async def scrape(self, url: str) -> ScrapeSnapshot:
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.snapshot


class FakeResolver:
    def __init__(self, identity: IdentityRecord | None = None):
        self.identity = identity or make_identity(VANITY_URL)
        self.tokens: list[str] = []

    async def resolve(self, token: str) -> IdentityRecord:
        self.tokens.append(token)
        if self.identity is None:
            raise ResolutionError(f"No profile matches {token!r}")
        return self.identity


