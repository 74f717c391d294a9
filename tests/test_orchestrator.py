"""Unit tests for the Aggregator pipeline - fake collaborators, no internet."""

import asyncio
import json
from pathlib import Path

import pytest

from steamagg.cache.memory_cache import MemoryCache
from steamagg.core.merger import to_response
from steamagg.core.orchestrator import Aggregator
from steamagg.exceptions import InputError, ResolutionError, ScrapeError
from steamagg.store.alias_index import AliasIndex
from steamagg.store.documents import CanonicalStore, DocumentKind
from tests.helpers import (
    PERMALINK,
    STEAM64,
    VANITY_URL,
    FakeClock,
    badges_body,
    make_identity,
    make_snapshot,
    summary_body,
)


NEW_VANITY = "https://steamcommunity.com/id/robin2/"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_aggregator(config, resolver, scraper, http_client, clock):
    """Factory for aggregators wired to the fakes and a controllable cache clock."""
    def factory(settings=None, **overrides) -> Aggregator:
        kwargs = {
            "resolver": resolver,
            "scraper": scraper,
            "http_client": http_client,
            "cache": MemoryCache(default_ttl=config.snapshot_ttl_seconds, clock=clock),
        }
        kwargs.update(overrides)
        return Aggregator(settings or config, **kwargs)
    return factory


def read_doc(config, name: str) -> dict | None:
    path = Path(config.data_dir) / STEAM64 / f"{name}.json"
    if not path.exists():
        return None
    return json.loads(path.read_text(encoding="utf-8"))


async def seed_identity(config, profile_url: str | None = VANITY_URL) -> None:
    store = CanonicalStore(config.data_dir)
    await store.write(DocumentKind.IDENTITY, STEAM64, make_identity(profile_url).model_dump(mode="json"))


class TestFirstRequest:
    """Test a request for an account with nothing stored."""

    @pytest.mark.asyncio
    async def test_numeric_token_creates_partition(self, make_aggregator, config, resolver, scraper, steam):
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert merged.is_new_user is False
        assert resolver.tokens == [STEAM64]
        assert scraper.urls == [PERMALINK]
        assert sorted(p.name for p in (Path(config.data_dir) / STEAM64).iterdir()) == [
            "badges.json", "id.json", "recently-played.json", "scrape.json", "summary.json",
        ]
        assert read_doc(config, "id")["profile_permalink"] == PERMALINK
        assert steam.calls == ["GetBadges", "GetRecentlyPlayedGames", "GetPlayerSummaries"]

    @pytest.mark.asyncio
    async def test_merged_fields(self, make_aggregator):
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert merged.steamid == STEAM64
        assert merged.profile.url == VANITY_URL
        assert merged.profile.permalink == PERMALINK
        assert merged.profile.status == "online"
        assert merged.badges.count == 2
        assert merged.badges.xp == 1250
        assert merged.recently_played.games[0].name == "Dota 2"
        assert merged.badge_count_changed is True
        assert merged.avatar_changed is False
        assert merged.vanity_changed is False

    @pytest.mark.asyncio
    async def test_vanity_token_is_new_user(self, make_aggregator, resolver):
        async with make_aggregator() as aggregator:
            first = await aggregator.aggregate("robinwalker")
            second = await aggregator.aggregate("robinwalker")

        assert first.is_new_user is True
        assert second.is_new_user is False
        assert resolver.tokens == ["robinwalker"]

    @pytest.mark.asyncio
    async def test_every_id_variant_hits_index(self, make_aggregator, resolver):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(VANITY_URL)
            for token in ("robinwalker", "STEAM_0:0:11101", "[U:1:22202]", VANITY_URL.rstrip("/")):
                merged = await aggregator.aggregate(token)
                assert merged.steamid == STEAM64

        assert resolver.tokens == [VANITY_URL]

    @pytest.mark.asyncio
    async def test_identity_without_vanity_uses_permalink(self, make_aggregator, resolver, config, steam):
        resolver.identity = make_identity(None)
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert merged.profile.url == PERMALINK
        assert read_doc(config, "id")["profile_url"] == PERMALINK
        assert steam.probes == []


class TestWarmCache:
    """Test repeated requests within the snapshot TTL."""

    @pytest.mark.asyncio
    async def test_second_call_makes_no_upstream_calls(self, make_aggregator, scraper, steam, clock):
        async with make_aggregator() as aggregator:
            first = await aggregator.aggregate(STEAM64)
            calls = len(steam.calls)
            clock.advance(5)
            second = await aggregator.aggregate(STEAM64)
            third = await aggregator.aggregate(STEAM64)

        assert len(steam.calls) == calls
        assert len(scraper.urls) == 1
        assert to_response(second) == to_response(third)
        assert second.badge_count_changed is False
        assert first.profile == second.profile

    @pytest.mark.asyncio
    async def test_snapshot_rescraped_after_ttl(self, make_aggregator, scraper, clock):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            clock.advance(61)
            await aggregator.aggregate(STEAM64)

        assert len(scraper.urls) == 2


class TestBadgeRefresh:
    """Test badge refresh triggered by count drift."""

    @pytest.mark.asyncio
    async def test_matching_count_makes_no_call(self, make_aggregator, steam, clock):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            clock.advance(61)
            merged = await aggregator.aggregate(STEAM64)

        assert steam.count("GetBadges") == 1
        assert steam.count("GetRecentlyPlayedGames") == 1
        assert merged.badge_count_changed is False

    @pytest.mark.asyncio
    async def test_count_drift_refreshes(self, make_aggregator, scraper, steam, clock):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            clock.advance(61)
            scraper.snapshot = make_snapshot(badge_count=3)
            steam.bodies["GetBadges"] = badges_body(3)
            merged = await aggregator.aggregate(STEAM64)

        assert steam.count("GetBadges") == 2
        assert merged.badge_count_changed is True
        assert len(merged.badges.items) == 3

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_stored_badges(self, make_aggregator, scraper, steam, config, clock):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            clock.advance(61)
            scraper.snapshot = make_snapshot(badge_count=3)
            steam.failing.add("GetBadges")
            merged = await aggregator.aggregate(STEAM64)

        assert steam.count("GetBadges") == 2
        assert merged.badge_count_changed is False
        assert merged.badges.count == 3
        assert len(merged.badges.items) == 2
        assert merged.badges.xp == 1250
        assert read_doc(config, "badges") == badges_body(2)

    @pytest.mark.asyncio
    async def test_all_categories_failing_still_responds(self, make_aggregator, steam, config):
        steam.failing.update({"GetBadges", "GetRecentlyPlayedGames", "GetPlayerSummaries"})
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert merged.profile.status == "online"
        assert merged.badges.items == []
        assert merged.recently_played.games == []
        assert read_doc(config, "badges") is None
        assert read_doc(config, "summary") is None


class TestPresence:
    """Test summary refreshes driven by presence and avatar."""

    @pytest.mark.asyncio
    async def test_in_game_skips_summary(self, make_aggregator, scraper, steam):
        scraper.snapshot = make_snapshot(status="in-game", game="Dota 2")
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert steam.count("GetPlayerSummaries") == 0
        assert merged.profile.status == "in-game"
        assert merged.profile.game == "Dota 2"

    @pytest.mark.asyncio
    async def test_offline_skips_summary(self, make_aggregator, scraper, steam):
        scraper.snapshot = make_snapshot(status="offline")
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert steam.count("GetPlayerSummaries") == 0
        assert merged.profile.status == "offline"

    @pytest.mark.asyncio
    async def test_online_maps_persona_state(self, make_aggregator, steam):
        steam.bodies["GetPlayerSummaries"] = summary_body(3)
        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert merged.profile.status == "away"

    @pytest.mark.asyncio
    async def test_status_recheck_cooldown(self, make_aggregator, steam, clock):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            clock.advance(10)
            await aggregator.aggregate(STEAM64)
            assert steam.count("GetPlayerSummaries") == 1

            clock.advance(21)
            await aggregator.aggregate(STEAM64)

        assert steam.count("GetPlayerSummaries") == 2

    @pytest.mark.asyncio
    async def test_avatar_change_fetches_summary_once(self, make_aggregator, scraper, steam, clock):
        new_avatar = "https://avatars.example.com/9b1c_full.jpg"
        scraper.snapshot = make_snapshot(status="offline")
        async with make_aggregator() as aggregator:
            first = await aggregator.aggregate(STEAM64)

            clock.advance(61)
            scraper.snapshot = make_snapshot(status="offline", avatar=new_avatar)
            steam.bodies["GetPlayerSummaries"] = summary_body(1, avatarfull=new_avatar)
            changed = await aggregator.aggregate(STEAM64)

            clock.advance(61)
            settled = await aggregator.aggregate(STEAM64)

        assert first.avatar_changed is False
        assert changed.avatar_changed is True
        assert changed.profile.avatars.avatarfull == new_avatar
        assert settled.avatar_changed is False
        assert steam.count("GetPlayerSummaries") == 1

    @pytest.mark.asyncio
    async def test_avatar_change_while_online_is_one_call(self, make_aggregator, scraper, steam, clock):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            clock.advance(61)
            scraper.snapshot = make_snapshot(avatar="https://avatars.example.com/9b1c_full.jpg")
            merged = await aggregator.aggregate(STEAM64)

        assert merged.avatar_changed is True
        assert steam.count("GetPlayerSummaries") == 2

    @pytest.mark.asyncio
    async def test_avatar_change_survives_failed_summary(self, make_aggregator, scraper, steam, config, clock):
        new_avatar = "https://avatars.example.com/9b1c_full.jpg"
        scraper.snapshot = make_snapshot(status="offline")
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)

            clock.advance(61)
            scraper.snapshot = make_snapshot(status="offline", avatar=new_avatar)
            steam.failing.add("GetPlayerSummaries")
            failed = await aggregator.aggregate(STEAM64)
            assert read_doc(config, "scrape")["summary_avatar"] != new_avatar

            clock.advance(61)
            steam.failing.clear()
            steam.bodies["GetPlayerSummaries"] = summary_body(1, avatarfull=new_avatar)
            recovered = await aggregator.aggregate(STEAM64)

            clock.advance(61)
            settled = await aggregator.aggregate(STEAM64)

        assert failed.avatar_changed is False
        assert recovered.avatar_changed is True
        assert recovered.profile.avatars.avatarfull == new_avatar
        assert settled.avatar_changed is False
        assert steam.count("GetPlayerSummaries") == 2
        assert read_doc(config, "scrape")["summary_avatar"] == new_avatar
        assert read_doc(config, "summary") == summary_body(1, avatarfull=new_avatar)

    @pytest.mark.asyncio
    async def test_pending_avatar_retried_from_cache(self, make_aggregator, scraper, steam, clock):
        new_avatar = "https://avatars.example.com/9b1c_full.jpg"
        scraper.snapshot = make_snapshot(status="offline")
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)

            clock.advance(61)
            scraper.snapshot = make_snapshot(status="offline", avatar=new_avatar)
            steam.failing.add("GetPlayerSummaries")
            await aggregator.aggregate(STEAM64)

            steam.failing.clear()
            clock.advance(5)
            merged = await aggregator.aggregate(STEAM64)

        assert len(scraper.urls) == 2
        assert merged.avatar_changed is True
        assert steam.count("GetPlayerSummaries") == 2


class TestVanityReconciliation:
    """Test detection of a vanity URL that now redirects."""

    @pytest.mark.asyncio
    async def test_redirect_updates_identity_and_index(self, make_aggregator, steam, config):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            steam.redirects[VANITY_URL] = NEW_VANITY
            merged = await aggregator.aggregate(STEAM64)
            again = await aggregator.aggregate("robin2")

        assert merged.vanity_changed is True
        assert merged.profile.url == NEW_VANITY
        assert read_doc(config, "id")["profile_url"] == NEW_VANITY
        assert again.vanity_changed is False
        assert again.steamid == STEAM64

        async with AliasIndex(config.resolved_index_path) as index:
            assert await index.lookup("robinwalker") is None
            assert await index.lookup("robin2") == STEAM64

    @pytest.mark.asyncio
    async def test_redirect_to_permalink_is_not_a_change(self, make_aggregator, steam):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            steam.redirects[VANITY_URL] = PERMALINK
            merged = await aggregator.aggregate(STEAM64)

        assert merged.vanity_changed is False
        assert merged.profile.url == VANITY_URL


class TestFailures:
    """Test load-bearing failures and input validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "   ", None])
    async def test_empty_token(self, make_aggregator, resolver, config, token):
        async with make_aggregator() as aggregator:
            with pytest.raises(InputError):
                await aggregator.aggregate(token)

        assert resolver.tokens == []
        assert not (Path(config.data_dir) / STEAM64).exists()

    @pytest.mark.asyncio
    async def test_resolution_failure_persists_nothing(self, make_aggregator, resolver, scraper, steam, config):
        resolver.identity = None
        async with make_aggregator() as aggregator:
            with pytest.raises(ResolutionError):
                await aggregator.aggregate("ghost")
            assert await aggregator.store.partitions() == []

        assert scraper.urls == []
        assert steam.calls == []

    @pytest.mark.asyncio
    async def test_scrape_failure_aborts(self, make_aggregator, scraper, steam, config):
        scraper.error = ScrapeError("Profile markup not found")
        async with make_aggregator() as aggregator:
            with pytest.raises(ScrapeError):
                await aggregator.aggregate(STEAM64)

        assert steam.calls == []
        assert read_doc(config, "scrape") is None
        assert read_doc(config, "badges") is None

    @pytest.mark.asyncio
    async def test_corrupt_identity_resolves_again(self, make_aggregator, resolver, config):
        path = Path(config.data_dir) / STEAM64 / "id.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")

        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert resolver.tokens == [STEAM64]
        assert merged.is_new_user is False
        assert read_doc(config, "id")["steam64"] == STEAM64

    @pytest.mark.asyncio
    async def test_identity_for_other_account_is_ignored(self, make_aggregator, resolver, config):
        store = CanonicalStore(config.data_dir)
        await store.write(
            DocumentKind.IDENTITY, STEAM64, make_identity(steam64="76561198000000001").model_dump(mode="json")
        )

        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)

        assert resolver.tokens == [STEAM64]


class TestIndexMaintenance:
    """Test alias index rebuild and account removal."""

    @pytest.mark.asyncio
    async def test_reindex_on_enter(self, make_aggregator, resolver, config):
        await seed_identity(config)

        async with make_aggregator() as aggregator:
            merged = await aggregator.aggregate("robinwalker")

        assert resolver.tokens == []
        assert merged.is_new_user is False

    @pytest.mark.asyncio
    async def test_reindex_counts_identities(self, make_aggregator, config):
        await seed_identity(config)
        async with make_aggregator() as aggregator:
            assert await aggregator.reindex() == 1

    @pytest.mark.asyncio
    async def test_forget(self, make_aggregator, resolver, config):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate("robinwalker")
            await aggregator.forget(STEAM64)
            assert await aggregator.store.partitions() == []
            merged = await aggregator.aggregate("robinwalker")

        assert merged.is_new_user is True
        assert resolver.tokens == ["robinwalker", "robinwalker"]


class TestConcurrency:
    """Test per-account serialization."""

    @pytest.mark.asyncio
    async def test_same_account_scraped_once(self, make_aggregator, scraper, steam, config):
        await seed_identity(config)
        async with make_aggregator() as aggregator:
            results = await asyncio.gather(*(aggregator.aggregate(STEAM64) for _ in range(3)))

        assert len(scraper.urls) == 1
        assert steam.count("GetBadges") == 1
        assert {r.steamid for r in results} == {STEAM64}

    @pytest.mark.asyncio
    async def test_concurrent_vanity_change_reported_once(self, make_aggregator, steam, config):
        await seed_identity(config)
        steam.redirects[VANITY_URL] = NEW_VANITY
        async with make_aggregator() as aggregator:
            results = await asyncio.gather(*(aggregator.aggregate(STEAM64) for _ in range(2)))

        assert sorted(r.vanity_changed for r in results) == [False, True]
        assert steam.probes.count(VANITY_URL) == 1
        assert {r.profile.url for r in results} == {NEW_VANITY}
        assert read_doc(config, "id")["profile_url"] == NEW_VANITY

    @pytest.mark.asyncio
    async def test_locks_released(self, make_aggregator):
        async with make_aggregator() as aggregator:
            await aggregator.aggregate(STEAM64)
            assert STEAM64 not in aggregator._locks


class TestWithoutCaching:
    """Zero TTLs disable the in-process cache without changing results."""

    @pytest.mark.asyncio
    async def test_every_call_rescrapes(self, make_aggregator, config, scraper, steam):
        uncached = config.model_copy(update={"snapshot_ttl_seconds": 0, "status_recheck_seconds": 0})
        async with make_aggregator(uncached, cache=MemoryCache(default_ttl=0)) as aggregator:
            first = await aggregator.aggregate(STEAM64)
            second = await aggregator.aggregate(STEAM64)

        assert len(scraper.urls) == 2
        assert steam.count("GetBadges") == 1
        assert steam.count("GetPlayerSummaries") == 2
        assert second.avatar_changed is False
        assert to_response(first)["profile"] == to_response(second)["profile"]


class TestWithoutApiKey:
    @pytest.mark.asyncio
    async def test_serves_scraped_data(self, make_aggregator, config, steam):
        keyless = config.model_copy(update={"steam_api_key": ""})
        async with make_aggregator(keyless) as aggregator:
            merged = await aggregator.aggregate(STEAM64)

        assert steam.calls == []
        assert merged.profile.level == 42
        assert merged.badges.count == 2
        assert merged.badge_count_changed is False
