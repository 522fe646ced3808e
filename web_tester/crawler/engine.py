"""Browser automation engine.

The crawler needs a narrow slice of a browser: launch once, open an isolated
page per visit, close everything at the end. ``BrowserEngine`` is that slice;
``PlaywrightEngine`` implements it with Playwright's async API.
"""

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import structlog
from playwright.async_api import Browser, async_playwright

from web_tester.errors import EngineLaunchError

logger = structlog.get_logger()


class BrowserEngine(Protocol):
    """Anything that can hand out a browser handle for the duration of a run.

    The handle must provide ``await new_page()``; the pages it returns must
    provide the Playwright ``Page`` methods used by the session collector.
    """

    def launch(self) -> AbstractAsyncContextManager[Any]:
        ...


class PlaywrightEngine:
    """Launches a headless Playwright browser, released exactly once.

    Example:
        engine = PlaywrightEngine()
        async with engine.launch() as browser:
            page = await browser.new_page()
    """

    def __init__(self, headless: bool = True, browser_type: str = "chromium"):
        self.headless = headless
        self.browser_type = browser_type
        self.log = logger.bind(component="playwright_engine")

    @asynccontextmanager
    async def launch(self) -> AsyncIterator[Browser]:
        playwright = None
        try:
            playwright = await async_playwright().start()
            launcher = getattr(playwright, self.browser_type)
            browser = await launcher.launch(headless=self.headless)
        except Exception as e:
            self.log.error("Browser launch failed", browser_type=self.browser_type, error=str(e))
            if playwright is not None:
                await playwright.stop()
            raise EngineLaunchError(f"Could not launch {self.browser_type}: {e}") from e

        self.log.debug("Browser launched", browser_type=self.browser_type, headless=self.headless)
        try:
            yield browser
        finally:
            try:
                await browser.close()
            finally:
                await playwright.stop()
            self.log.debug("Browser closed")
