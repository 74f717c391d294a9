"""httpx-based fetching of Steam community pages."""

from urllib.parse import urljoin

import httpx

from steamagg.core.parser import parse_profile_page
from steamagg.exceptions import ScrapeError
from steamagg.logging import get_logger
from steamagg.models.snapshot import ScrapeSnapshot


# Desktop browser user agents; the first is the default
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
]

REDIRECT_STATUSES = {301, 302, 303, 307, 308}

_log = get_logger("fetcher")


async def resolve_redirect(client: httpx.AsyncClient, url: str) -> str:
    """
    Follow at most one redirect hop.

    Args:
        client: Shared HTTP client
        url: Profile URL, typically a vanity alias

    Returns:
        The redirect target, or url itself when there is no redirect or the
        request fails
    """
    try:
        response = await client.get(url, follow_redirects=False)
    except httpx.HTTPError as e:
        _log.warning("redirect_probe_failed", url=url, error=str(e))
        return url

    location = response.headers.get("location")
    if response.status_code in REDIRECT_STATUSES and location:
        return urljoin(url, location)
    return url


async def fetch_profile_html(client: httpx.AsyncClient, url: str) -> str:
    """
    Fetch the HTML of a profile page.

    Raises:
        ScrapeError: On transport failure or non-2xx status
    """
    try:
        response = await client.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        raise ScrapeError(f"Failed to fetch {url}: {e}") from e

    if response.status_code >= 400:
        raise ScrapeError(f"Failed to fetch {url}: HTTP {response.status_code}")
    return response.text


class ProfileScraper:
    """Turns a profile permalink into a ScrapeSnapshot."""

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def scrape(self, url: str) -> ScrapeSnapshot:
        html = await fetch_profile_html(self._client, url)
        snapshot = parse_profile_page(html)
        _log.info(
            "profile_scraped",
            url=url,
            status=snapshot.profile.status,
            badge_count=snapshot.badge_count,
        )
        return snapshot
