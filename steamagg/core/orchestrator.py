"""Aggregation pipeline - identify, resolve, reconcile, snapshot, refresh, merge."""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol

import httpx
from pydantic import ValidationError

from steamagg.cache.base import CacheProvider
from steamagg.cache.memory_cache import MemoryCache
from steamagg.config import AggregatorConfig
from steamagg.core.fetcher import USER_AGENTS, ProfileScraper, resolve_redirect
from steamagg.core.gateway import RateLimiter, StatsGateway
from steamagg.core.identity import IdentityResolver
from steamagg.core.locks import KeyedLock
from steamagg.core.merger import ChangeFlags, merge_profile
from steamagg.core.policy import plan_refresh
from steamagg.exceptions import ConfigError, InputError, StoreError, UpstreamError
from steamagg.logging import configure_logging, get_logger
from steamagg.models.identity import IdentityRecord
from steamagg.models.profile import MergedProfile
from steamagg.models.snapshot import ScrapeSnapshot
from steamagg.store.alias_index import AliasIndex
from steamagg.store.documents import CanonicalStore, DocumentKind, is_steam64


class Resolver(Protocol):
    async def resolve(self, token: str) -> IdentityRecord: ...


class Scraper(Protocol):
    async def scrape(self, url: str) -> ScrapeSnapshot: ...


@dataclass
class RefreshOutcome:
    """Statistics-API documents in effect after the refresh step."""

    badges: Any = None
    recently_played: Any = None
    summary: Any = None
    badges_refreshed: bool = False
    avatar_refreshed: bool = False


class Aggregator:
    """
    Builds a MergedProfile for one user token per call.

    Example:
        async with Aggregator() as aggregator:
            profile = await aggregator.aggregate("gabelogannewell")
            print(profile.profile.status)
    """

    def __init__(
        self,
        config: AggregatorConfig | None = None,
        *,
        resolver: Resolver | None = None,
        scraper: Scraper | None = None,
        gateway: StatsGateway | None = None,
        cache: CacheProvider | None = None,
        store: CanonicalStore | None = None,
        index: AliasIndex | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize aggregator. Any collaborator left as None is built from config on entry.

        Args:
            config: AggregatorConfig instance, uses defaults if None
        """
        self.config = config or AggregatorConfig()
        self._resolver = resolver
        self._scraper = scraper
        self._gateway = gateway
        self._cache = cache
        self._store = store
        self._index = index
        self._http = http_client
        self._owns_http = http_client is None
        self._locks = KeyedLock()
        self._log = get_logger("aggregator")

    async def __aenter__(self) -> "Aggregator":
        """Async context manager entry - initialize resources."""
        configure_logging(self.config)
        config = self.config

        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=config.http_timeout_seconds,
                headers={"User-Agent": config.user_agent or USER_AGENTS[0]},
            )
        if self._store is None:
            self._store = CanonicalStore(config.data_dir)
        if self._index is None:
            self._index = AliasIndex(config.resolved_index_path)
        if self._cache is None:
            self._cache = MemoryCache(default_ttl=config.snapshot_ttl_seconds)
        if self._gateway is None:
            self._gateway = StatsGateway(
                self._http,
                config.steam_api_key,
                base_url=config.steam_api_base,
                limiter=RateLimiter(config.api_min_interval_ms / 1000),
                recently_played_count=config.recently_played_count,
            )
        if self._scraper is None:
            self._scraper = ProfileScraper(self._http)
        if self._resolver is None:
            self._resolver = IdentityResolver(
                config.resolver_url,
                headless=config.headless,
                timeout_ms=config.browser_timeout_ms,
                user_agent=config.user_agent,
            )

        if not config.steam_api_key:
            self._log.warning("api_key_missing", hint="set STEAM_API_KEY; only scraped data will be served")
        if await self._index.count() == 0:
            await self.reindex()

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - cleanup resources."""
        if self._index:
            await self._index.close()
        if self._cache:
            await self._cache.close()
        if self._http and self._owns_http:
            await self._http.aclose()
            self._http = None

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    @property
    def scraper(self) -> Scraper:
        return self._scraper

    @property
    def store(self) -> CanonicalStore:
        return self._store

    async def aggregate(self, token: str | None) -> MergedProfile:
        """
        Produce the merged profile for a user token.

        Args:
            token: Vanity name, profile URL, any Steam id form

        Returns:
            MergedProfile with change flags for this request

        Raises:
            InputError: If token is empty
            ResolutionError: If the token cannot be resolved
            ScrapeError: If the profile page cannot be scraped
            StoreError: If a load-bearing document cannot be written
        """
        token = (token or "").strip()
        if not token:
            raise InputError("Missing user parameter")

        start = datetime.now()
        self._log.info("aggregate_start", token=token)

        steam64, identity, is_new_user = await self._identify(token)
        resolved = None
        if identity is None:
            resolved = await self._resolver.resolve(token)
            steam64 = resolved.steam64

        flags = ChangeFlags(is_new_user=is_new_user)
        permalink = self.config.permalink_for(steam64)

        async with self._locks.hold(steam64):
            if resolved is not None:
                identity = await self._adopt_identity(resolved, permalink)
            else:
                # A request that held the lock before us may have rewritten it
                identity = await self._read_identity(steam64) or identity

            identity, flags.vanity_changed = await self._reconcile(identity, permalink)
            snapshot = await self._snapshot(steam64, permalink)
            outcome = await self._refresh(steam64, snapshot)
            flags.avatar_changed = outcome.avatar_refreshed
            flags.badge_count_changed = outcome.badges_refreshed

        merged = merge_profile(
            identity,
            permalink,
            snapshot,
            outcome.badges,
            outcome.recently_played,
            outcome.summary,
            flags,
        )

        self._log.info(
            "aggregate_complete",
            steam64=steam64,
            status=merged.profile.status,
            is_new_user=flags.is_new_user,
            vanity_changed=flags.vanity_changed,
            avatar_changed=flags.avatar_changed,
            badge_count_changed=flags.badge_count_changed,
            duration_ms=(datetime.now() - start).total_seconds() * 1000,
        )
        return merged

    async def _identify(self, token: str) -> tuple[str | None, IdentityRecord | None, bool]:
        """Return (steam64, stored identity, is_new_user) for a token."""
        if is_steam64(token):
            return token, await self._read_identity(token), False

        steam64 = await self._index.lookup(token)
        if steam64 is not None:
            identity = await self._read_identity(steam64)
            if identity is not None:
                self._log.debug("alias_hit", token=token, steam64=steam64)
                return steam64, identity, False

        return None, None, True

    async def _adopt_identity(self, resolved: IdentityRecord, permalink: str) -> IdentityRecord:
        """Persist a freshly resolved identity unless a concurrent request already did."""
        stored = await self._read_identity(resolved.steam64)
        if stored is not None:
            return stored

        identity = resolved.model_copy(update={
            "profile_permalink": permalink,
            "profile_url": resolved.profile_url or permalink,
        })
        await self._store.write(DocumentKind.IDENTITY, identity.steam64, identity.model_dump(mode="json"))
        try:
            await self._index.register(identity)
        except sqlite3.Error as e:
            # Document is on disk; reindex() picks it up later
            self._log.warning("alias_register_failed", steam64=identity.steam64, error=str(e))
        self._log.info("identity_created", steam64=identity.steam64, profile_url=identity.profile_url)
        return identity

    async def _reconcile(self, identity: IdentityRecord, permalink: str) -> tuple[IdentityRecord, bool]:
        """Detect a vanity URL that now redirects elsewhere. Best-effort."""
        current = identity.profile_url
        if not current or current == permalink:
            return identity, False

        target = await resolve_redirect(self._http, current)
        if target in (current, permalink):
            return identity, False

        updated = identity.model_copy(update={"profile_url": target, "profile_permalink": permalink})
        try:
            await self._store.write(DocumentKind.IDENTITY, updated.steam64, updated.model_dump(mode="json"))
            await self._index.register(updated)
        except (StoreError, sqlite3.Error) as e:
            self._log.warning("vanity_update_failed", steam64=identity.steam64, error=str(e))
            return identity, False

        self._log.info("vanity_changed", steam64=identity.steam64, old=current, new=target)
        return updated, True

    async def _snapshot(self, steam64: str, permalink: str) -> ScrapeSnapshot:
        """
        Return the snapshot for this request, scraping when the cache has none.

        A fresh scrape inherits the summary avatar basis of the stored snapshot.
        The first snapshot of an account takes its own avatar as the basis.
        """
        key = f"snapshot:{steam64}"
        cached = await self._cache.get(key)
        if cached is not None:
            self._log.debug("snapshot_cache_hit", steam64=steam64)
            return cached

        previous = await self._read_snapshot(steam64)
        scraped = await self._scraper.scrape(permalink)
        if previous is None:
            basis = scraped.profile.avatar
        else:
            basis = previous.summary_avatar or previous.profile.avatar
        snapshot = scraped.model_copy(update={"summary_avatar": basis})

        await self._store.write(DocumentKind.SNAPSHOT, steam64, snapshot.model_dump(mode="json"))
        await self._cache.set(key, snapshot, self.config.snapshot_ttl_seconds)
        return snapshot

    async def _refresh(self, steam64: str, snapshot: ScrapeSnapshot) -> RefreshOutcome:
        """Re-fetch whatever the change policy selects. Failures keep the stored document."""
        outcome = RefreshOutcome(
            badges=await self._store.read(DocumentKind.BADGES, steam64),
            recently_played=await self._store.read(DocumentKind.RECENTLY_PLAYED, steam64),
            summary=await self._store.read(DocumentKind.SUMMARY, steam64),
        )

        recheck_key = f"status-recheck:{steam64}"
        recheck_due = await self._cache.get(recheck_key) is None
        plan = plan_refresh(snapshot, outcome.badges, outcome.recently_played, recheck_due)
        if plan.any:
            self._log.debug(
                "refresh_plan",
                steam64=steam64,
                badges=plan.badges,
                recently_played=plan.recently_played,
                summary=plan.summary,
            )

        if plan.badges:
            body = await self._refresh_category(DocumentKind.BADGES, steam64, self._gateway.get_badges)
            if body is not None:
                outcome.badges = body
                outcome.badges_refreshed = True

        if plan.recently_played:
            body = await self._refresh_category(
                DocumentKind.RECENTLY_PLAYED, steam64, self._gateway.get_recently_played
            )
            if body is not None:
                outcome.recently_played = body

        if plan.summary:
            body = await self._refresh_category(
                DocumentKind.SUMMARY, steam64, self._gateway.get_player_summaries
            )
            if body is not None:
                outcome.summary = body
                outcome.avatar_refreshed = plan.avatar_changed
                await self._cache.set(recheck_key, True, self.config.status_recheck_seconds)
                await self._settle_avatar(steam64, snapshot)

        return outcome

    async def _settle_avatar(self, steam64: str, snapshot: ScrapeSnapshot) -> None:
        """Move the summary avatar basis to the scraped avatar after a successful summary fetch."""
        avatar = snapshot.profile.avatar
        if not avatar or snapshot.summary_avatar == avatar:
            return

        # Same object as the cached snapshot, so cache hits see the new basis
        snapshot.summary_avatar = avatar
        try:
            await self._store.write(DocumentKind.SNAPSHOT, steam64, snapshot.model_dump(mode="json"))
        except StoreError as e:
            self._log.warning("snapshot_update_failed", steam64=steam64, error=str(e))

    async def _refresh_category(
        self,
        kind: DocumentKind,
        steam64: str,
        fetch: Callable[[str], Awaitable[Any]],
    ) -> Any | None:
        try:
            body = await fetch(steam64)
            await self._store.write(kind, steam64, body)
        except (UpstreamError, StoreError, ConfigError) as e:
            self._log.warning("refresh_failed", steam64=steam64, category=kind.value, error=str(e))
            return None
        return body

    async def _read_identity(self, steam64: str) -> IdentityRecord | None:
        doc = await self._store.read(DocumentKind.IDENTITY, steam64)
        if doc is None:
            return None
        try:
            identity = IdentityRecord.model_validate(doc)
        except ValidationError as e:
            self._log.warning("identity_invalid", steam64=steam64, error=str(e))
            return None
        if identity.steam64 != steam64:
            self._log.warning("identity_mismatch", steam64=steam64, stored=identity.steam64)
            return None
        return identity

    async def _read_snapshot(self, steam64: str) -> ScrapeSnapshot | None:
        doc = await self._store.read(DocumentKind.SNAPSHOT, steam64)
        if doc is None:
            return None
        try:
            return ScrapeSnapshot.model_validate(doc)
        except ValidationError as e:
            self._log.warning("snapshot_invalid", steam64=steam64, error=str(e))
            return None

    async def reindex(self) -> int:
        """
        Rebuild the alias index from every identity document in the store.

        Returns:
            Number of identities indexed
        """
        await self._index.clear()
        count = 0
        for steam64 in await self._store.partitions():
            identity = await self._read_identity(steam64)
            if identity is not None:
                await self._index.register(identity)
                count += 1
        self._log.info("alias_index_rebuilt", identities=count)
        return count

    async def forget(self, steam64: str) -> None:
        """Drop every stored and cached trace of one account."""
        async with self._locks.hold(steam64):
            await self._store.remove(steam64)
            await self._index.remove(steam64)
            await self._cache.invalidate(f"snapshot:{steam64}")
            await self._cache.invalidate(f"status-recheck:{steam64}")
