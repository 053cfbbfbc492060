"""Rendered page fetching through a shared headless browser.

Catalog pages are client-rendered, so every fetch goes through Playwright.
One FetchEngine owns one browser for the whole run; all workers share it along
with the politeness clock.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from unitsync.core.context import RunContext
from unitsync.core.errors import (
    BrowserLaunchError,
    ErrorKind,
    FetchError,
    HttpStatusError,
    NotFoundError,
)

from .config import ScrapeConfig

logger = logging.getLogger(__name__)

BrowserLauncher = Callable[[], Awaitable[object]]

_GONE_STATUSES = (404, 410)

_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
]


class FetchEngine:
    """Fetches rendered HTML with politeness throttling and linear-backoff retries."""

    def __init__(
        self,
        config: Optional[ScrapeConfig] = None,
        context: Optional[RunContext] = None,
        launcher: Optional[BrowserLauncher] = None,
    ):
        """
        Initialize fetch engine.

        Args:
            config: Scraping configuration (uses environment defaults if None)
            context: Run context supplying the error classifier
            launcher: Coroutine factory returning a started browser; defaults to
                Playwright Chromium
        """
        self.config = config or ScrapeConfig.from_env()
        self.context = context or RunContext()
        self._launcher = launcher or self._launch_chromium
        self._playwright = None
        self._browser = None
        self._launch_lock = asyncio.Lock()
        self._throttle_lock = asyncio.Lock()
        self._last_request_at = 0.0
        self.launch_count = 0
        self.request_count = 0

    async def __aenter__(self) -> "FetchEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _launch_chromium(self):
        self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=_BROWSER_ARGS,
        )

    async def _ensure_browser(self):
        """Return the shared browser, launching it on first use.

        Only one launch runs at a time; concurrent callers wait on the lock and
        then reuse the browser the first caller started.
        """
        if self._browser is not None:
            return self._browser

        async with self._launch_lock:
            if self._browser is None:
                logger.debug("Launching browser")
                try:
                    self._browser = await self._launcher()
                except Exception as e:
                    raise BrowserLaunchError(str(e)) from e
                self.launch_count += 1
                logger.debug("Browser launched")
        return self._browser

    async def _polite_wait(self) -> None:
        """Hold the caller until rate_limit seconds have passed since the last request."""
        async with self._throttle_lock:
            wait = self.config.rate_limit - (time.monotonic() - self._last_request_at)
            if wait > 0:
                logger.debug(f"Rate limiting: sleeping {wait:.2f}s")
                await self._sleep(wait)
            # Reserve the slot so waiting callers measure from this request
            self._last_request_at = time.monotonic()

    def _mark_request_end(self) -> None:
        self._last_request_at = max(self._last_request_at, time.monotonic())

    async def _render(self, browser, url: str) -> str:
        page = await browser.new_page(user_agent=self.config.user_agent)
        try:
            response = await page.goto(url, wait_until="networkidle", timeout=self.config.timeout * 1000)
            if response is not None and response.status >= 400:
                if response.status in _GONE_STATUSES:
                    raise NotFoundError(url, f"{response.status} - Unit not found")
                raise HttpStatusError(url, response.status)

            try:
                await page.wait_for_selector(self.config.marker_selector, timeout=self.config.marker_timeout * 1000)
            except PlaywrightTimeoutError:
                # Some pages lack the marker but still carry data
                logger.debug(f"Marker {self.config.marker_selector!r} not found on {url}")

            await self._sleep(self.config.settle_delay)
            return await page.content()
        finally:
            await page.close()

    async def fetch(self, url: str) -> str:
        """
        Fetch rendered HTML for a URL.

        Args:
            url: Page to render

        Returns:
            Page HTML after rendering settles

        Raises:
            NotFoundError: The server answered 404/410 (not retried)
            FetchError: Every attempt failed; carries the last classification
            BrowserLaunchError: The browser could not be started
        """
        browser = await self._ensure_browser()

        last_error: Optional[BaseException] = None
        for attempt in range(1, self.config.max_retries + 1):
            # Retries wait out the backoff and then the politeness gap
            await self._polite_wait()
            start = time.monotonic()
            if attempt > 1:
                logger.info(f"Retry {attempt}/{self.config.max_retries} {url}")
            else:
                logger.debug(f"GET {url}")

            try:
                html = await self._render(browser, url)
            except NotFoundError:
                self._mark_request_end()
                raise
            except Exception as e:
                self._mark_request_end()
                last_error = e
                duration_ms = int((time.monotonic() - start) * 1000)
                logger.warning(
                    f"Fetch error attempt {attempt} {url} ({duration_ms}ms): "
                    f"{self.context.classifier.describe(e)}"
                )
                if attempt < self.config.max_retries:
                    await self._sleep(self.config.backoff * attempt)
                continue

            self._mark_request_end()
            self.request_count += 1
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.debug(f"OK {url} {len(html)} bytes in {duration_ms}ms")
            return html

        kind = self.context.classifier.classify(last_error) if last_error else ErrorKind.UNKNOWN
        message = str(last_error) if last_error is not None and str(last_error) else type(last_error).__name__
        raise FetchError(url, kind, message, attempts=self.config.max_retries)

    async def close(self) -> None:
        """Close the browser. Safe to call more than once."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None
        if browser is not None:
            logger.debug("Closing browser")
            await browser.close()
        if playwright is not None:
            await playwright.stop()


class PageCache:
    """Read-through cache of rendered pages keyed by URL.

    Wraps a fetcher and exposes the same fetch/close surface, so the
    validation pass and the crawl pass can share one rendering per page.
    """

    def __init__(self, fetcher: FetchEngine):
        self.fetcher = fetcher
        self._pages: Dict[str, str] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, url: str) -> bool:
        return url in self._pages

    def get(self, url: str) -> Optional[str]:
        return self._pages.get(url)

    def put(self, url: str, html: str) -> None:
        self._pages[url] = html

    def discard(self, url: str) -> None:
        self._pages.pop(url, None)

    def clear(self) -> None:
        self._pages.clear()

    async def fetch(self, url: str) -> str:
        cached = self._pages.get(url)
        if cached is not None:
            self.hits += 1
            logger.debug(f"Cache hit {url}")
            return cached
        self.misses += 1
        html = await self.fetcher.fetch(url)
        self._pages[url] = html
        return html

    async def close(self) -> None:
        await self.fetcher.close()
