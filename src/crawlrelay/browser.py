"""
Playwright browser engine for worker pools.

Each worker pool launches one browser. Every job gets its own page in a
fresh browser context so that cookies and the proxy are isolated per job.
A blank page is held open for the lifetime of the pool to keep the browser
process warm between jobs.
"""

import logging
from typing import Any, Iterable, List, Optional

from .constants import DEFAULT_BLOCKED_URL_PATTERNS, KEEP_ALIVE_URL
from .proxy import ProxyEntry

logger = logging.getLogger(__name__)


class PlaywrightEngine:
    """Owns the Playwright driver and browser of one worker pool."""

    def __init__(self, headless: bool = True, browser_type: str = "chromium"):
        self.headless = headless
        self.browser_type = browser_type

        self._playwright = None
        self._browser = None
        self._keep_alive_page = None
        self._active_pages = 0

    async def start(self) -> None:
        """Launch the browser and open the keep-alive page."""
        if self._browser:
            return

        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ImportError(
                "playwright package not installed. "
                "Install with: pip install playwright && playwright install"
            )

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.browser_type)
        self._browser = await launcher.launch(headless=self.headless)
        logger.info(f"Launched {self.browser_type} (headless={self.headless})")

        logger.info("Opening separate blank page to keep browser alive.")
        self._keep_alive_page = await self._browser.new_page()
        await self._keep_alive_page.goto(KEEP_ALIVE_URL)

    async def new_page(self, proxy: Optional[ProxyEntry] = None) -> Any:
        """Open a page in a new context, routed through ``proxy`` if given."""
        if not self._browser:
            raise RuntimeError("Browser engine not started. Call start() first.")

        context_options: dict = {"ignore_https_errors": True}
        if proxy:
            context_options["proxy"] = proxy.config.playwright_proxy

        context = await self._browser.new_context(**context_options)
        page = await context.new_page()
        self._active_pages += 1
        logger.debug(f"Browser has {self._active_pages} active pages.")
        return page

    async def release_page(self, page: Any) -> None:
        """Close a job's page together with its context."""
        self._active_pages = max(0, self._active_pages - 1)
        try:
            await page.context.close()
        except Exception as e:
            logger.warning(f"Error closing page context: {e}")

    @property
    def active_pages(self) -> int:
        return self._active_pages

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def stop(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None
            self._keep_alive_page = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")
            self._playwright = None

        logger.info("Browser engine stopped")


def blocked_patterns(extra_patterns: Optional[Iterable[str]] = None) -> List[str]:
    return DEFAULT_BLOCKED_URL_PATTERNS + list(extra_patterns or [])


async def block_requests(page: Any, extra_patterns: Optional[Iterable[str]] = None) -> None:
    """Abort requests whose URL contains a blocked pattern."""
    patterns = blocked_patterns(extra_patterns)

    async def _route(route):
        url = route.request.url
        if any(pattern in url for pattern in patterns):
            await route.abort()
        else:
            await route.continue_()

    await page.route("**/*", _route)
