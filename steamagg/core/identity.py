"""Playwright-driven identity resolution via a public Steam id lookup site."""

from playwright.async_api import async_playwright, Browser, Page, Error as PlaywrightError

from steamagg.core.fetcher import USER_AGENTS
from steamagg.core.parser import parse_identity_page
from steamagg.exceptions import ResolutionError
from steamagg.logging import get_logger
from steamagg.models.identity import IdentityRecord


class IdentityResolver:
    """
    Resolves a free-form handle (vanity name, profile URL, any id form)
    to a full IdentityRecord.

    Example:
        resolver = IdentityResolver()
        identity = await resolver.resolve("gabelogannewell")
        print(identity.steam64)
    """

    def __init__(
        self,
        resolver_url: str = "https://steamid.xyz/",
        headless: bool = True,
        timeout_ms: int = 30000,
        user_agent: str | None = None,
    ):
        self.resolver_url = resolver_url
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.user_agent = user_agent
        self._log = get_logger("resolver")

    async def fetch_result_page(self, token: str) -> str:
        """
        Submit token to the resolver form and return the rendered result page.

        Raises:
            ResolutionError: If the browser fails or no result table appears
        """
        async with async_playwright() as p:
            browser: Browser = await p.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            try:
                context = await browser.new_context(user_agent=self.user_agent or USER_AGENTS[0])
                page: Page = await context.new_page()
                await page.goto(self.resolver_url, wait_until="networkidle", timeout=self.timeout_ms)

                await page.fill('input[name="id"]', token)
                async with page.expect_navigation(wait_until="networkidle", timeout=self.timeout_ms):
                    await page.click('input[type="submit"]')

                await page.wait_for_selector("#guide table", timeout=10000)
                return await page.content()
            except PlaywrightError as e:
                raise ResolutionError(f"Could not resolve {token!r}: {e}") from e
            finally:
                await browser.close()

    async def resolve(self, token: str) -> IdentityRecord:
        """
        Resolve token to an identity.

        Raises:
            ResolutionError: If the token matches no profile
        """
        self._log.info("resolve_start", token=token)
        html = await self.fetch_result_page(token)
        identity = parse_identity_page(html)
        self._log.info("resolve_complete", token=token, steam64=identity.steam64)
        return identity
