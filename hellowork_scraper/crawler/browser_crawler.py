"""
Browser-based rendering using Playwright for pages that need JavaScript or
block plain HTTP clients.
"""
import time
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Route
from playwright.async_api import Error as PlaywrightError

from ..config import BrowserSettings
from ..core.errors import CrawlConfigError, FetchError, RenderError
from ..core.net import ProxyRotator, get_random_user_agent

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = {'image', 'stylesheet', 'font', 'media'}

LAUNCH_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-blink-features=AutomationControlled',
    '--mute-audio',
    '--disable-background-networking',
    '--lang=fr-FR',
]

CONSENT_BUTTON_SELECTOR = '#didomi-notice-agree-button'
COUNTRY_SELECT_SELECTOR = 'select'
COUNTRY_LABEL = 'France'
COUNTRY_CONFIRM_SELECTOR = 'button:has-text("OK")'


class Renderer(ABC):
    """Capability: return the final DOM of a URL after page scripts ran."""

    async def start(self):
        """Initialize the transport. Raises CrawlConfigError when it cannot be initialized."""
        pass

    @abstractmethod
    async def render(self, url: str) -> str:
        """
        Render a page.

        Raises:
            RenderError: transient navigation failure (retried by the tier)
            FetchError: terminal failure
        """
        pass

    async def close(self):
        pass


class PooledBrowser:
    """One browser instance with its context and usage counters."""

    def __init__(self, browser: Browser, context: BrowserContext, proxy: Optional[str]):
        self.browser = browser
        self.context = context
        self.proxy = proxy
        self.launched_at = time.monotonic()
        self.pages_served = 0
        self.open_pages = 0
        self.retired = False

    def age(self) -> float:
        return time.monotonic() - self.launched_at


class BrowserPool:
    """
    Lifetime-bounded pool of browser instances.

    A browser is retired after serving retire_after_pages pages or after
    max_browser_age_secs, and closed once its last open page is released.
    Each launch takes the next proxy, so retiring also rotates the exit IP.
    """

    def __init__(self, settings: BrowserSettings, proxy_rotator: Optional[ProxyRotator] = None):
        self.settings = settings
        self.proxy_rotator = proxy_rotator or ProxyRotator()
        self._playwright = None
        self._browsers: List[PooledBrowser] = []
        self._lock = asyncio.Lock()
        self.launched = 0

    async def start(self):
        if self._playwright is not None:
            return
        try:
            self._playwright = await async_playwright().start()
        except Exception as e:
            raise CrawlConfigError(f"Cannot start Playwright: {e}") from e
        logger.info("[browser_pool] Playwright started")

    async def _launch(self) -> PooledBrowser:
        proxy = self.proxy_rotator.next_proxy()
        launch_kwargs = {"headless": self.settings.headless, "args": LAUNCH_ARGS}
        if proxy:
            launch_kwargs["proxy"] = {"server": proxy}

        try:
            browser = await self._playwright.chromium.launch(**launch_kwargs)
        except PlaywrightError as e:
            raise CrawlConfigError(f"Cannot launch browser: {e}") from e

        try:
            context = await browser.new_context(
                locale=self.settings.locale,
                timezone_id=self.settings.timezone_id,
                user_agent=get_random_user_agent(),
                extra_http_headers={"Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8"},
            )
        except PlaywrightError as e:
            try:
                await browser.close()
            except PlaywrightError as close_error:
                logger.debug(f"[browser_pool] Error closing browser: {close_error}")
            raise CrawlConfigError(f"Cannot create browser context: {e}") from e
        self.launched += 1
        logger.info(f"[browser_pool] Launched browser #{self.launched} (proxy={'yes' if proxy else 'no'})")
        return PooledBrowser(browser, context, proxy)

    async def _acquire(self) -> PooledBrowser:
        async with self._lock:
            if self._playwright is None:
                await self.start()

            pooled = next(
                (b for b in self._browsers
                 if not b.retired and b.open_pages < self.settings.max_open_pages_per_browser),
                None
            )
            if pooled is None:
                pooled = await self._launch()
                self._browsers.append(pooled)

            pooled.open_pages += 1
            pooled.pages_served += 1
            if (pooled.pages_served >= self.settings.retire_after_pages
                    or pooled.age() >= self.settings.max_browser_age_secs):
                pooled.retired = True
                logger.info(f"[browser_pool] Retiring browser after {pooled.pages_served} pages, {pooled.age():.0f}s")
            return pooled

    async def _release(self, pooled: PooledBrowser):
        async with self._lock:
            pooled.open_pages -= 1
            if pooled.retired and pooled.open_pages <= 0 and pooled in self._browsers:
                self._browsers.remove(pooled)
                await self._close_browser(pooled)

    async def _close_browser(self, pooled: PooledBrowser):
        try:
            await pooled.context.close()
            await pooled.browser.close()
        except PlaywrightError as e:
            logger.debug(f"[browser_pool] Error closing browser: {e}")

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Acquire a page; it is closed and released on every exit path."""
        pooled = await self._acquire()
        page = None
        try:
            page = await pooled.context.new_page()
            yield page
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.debug(f"[browser_pool] Error closing page: {e}")
            await self._release(pooled)

    async def close(self):
        async with self._lock:
            browsers, self._browsers = self._browsers, []
            for pooled in browsers:
                await self._close_browser(pooled)
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("[browser_pool] Closed")


async def _block_heavy_resources(route: Route):
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class PlaywrightRenderer(Renderer):
    """Use headless Chromium for JavaScript-rendered or blocked pages"""

    def __init__(
        self,
        settings: Optional[BrowserSettings] = None,
        proxy_rotator: Optional[ProxyRotator] = None
    ):
        self.settings = settings or BrowserSettings()
        self.pool = BrowserPool(self.settings, proxy_rotator)

    async def start(self):
        await self.pool.start()

    async def _dismiss_modals(self, page: Page):
        """Best effort: consent banner and country selector. Absence is normal."""
        timeout_ms = self.settings.modal_timeout_secs * 1000
        try:
            await page.click(CONSENT_BUTTON_SELECTOR, timeout=timeout_ms)
        except PlaywrightError:
            pass
        try:
            if await page.query_selector(COUNTRY_SELECT_SELECTOR):
                await page.select_option(COUNTRY_SELECT_SELECTOR, label=COUNTRY_LABEL, timeout=timeout_ms)
                await page.click(COUNTRY_CONFIRM_SELECTOR, timeout=timeout_ms)
        except PlaywrightError:
            pass

    async def render(self, url: str) -> str:
        """
        Fetch final DOM for a URL.

        Args:
            url: Detail page URL

        Returns:
            Rendered HTML content
        """
        async with self.pool.page() as page:
            await page.route('**/*', _block_heavy_resources)

            try:
                response = await page.goto(
                    url,
                    wait_until='domcontentloaded',
                    timeout=self.settings.navigation_timeout_secs * 1000
                )
            except PlaywrightError as e:
                logger.warning(f"[render] Navigation failed for {url}: {e}")
                raise RenderError(url, f"navigation failed: {type(e).__name__}") from e

            if response is not None and response.status >= 500:
                raise RenderError(url, f"HTTP {response.status}", status_code=response.status)
            if response is not None and response.status == 404:
                raise FetchError(url, "HTTP 404", status_code=404)

            await self._dismiss_modals(page)

            try:
                await page.wait_for_selector(
                    self.settings.ready_selector,
                    timeout=self.settings.ready_timeout_secs * 1000
                )
            except PlaywrightError:
                logger.debug(f"[render] Ready selector {self.settings.ready_selector!r} not found on {url}")

            try:
                return await page.content()
            except PlaywrightError as e:
                raise RenderError(url, f"content read failed: {type(e).__name__}") from e

    async def close(self):
        await self.pool.close()
