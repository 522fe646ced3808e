"""Shared fixtures for web tester tests."""

import os
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from web_tester.config import ScanConfig
from web_tester.crawler.session import PageVisit
from web_tester.errors import EngineLaunchError
from web_tester.models import ConsoleLog, SignalBundle


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (fast, critical path - included in CI)"
    )


# Keep settings deterministic regardless of the developer's environment
os.environ.setdefault("WEB_TESTER_SCREENSHOT_DIR", "/tmp/web-tester-tests/screenshots")


BASE_URL = "https://example.com/"


class FakeEngine:
    """Browser engine double that records launches and releases."""

    def __init__(self, fail_launch: bool = False):
        self.fail_launch = fail_launch
        self.browser = MagicMock(name="browser")
        self.launches = 0
        self.releases = 0

    @asynccontextmanager
    async def launch(self):
        self.launches += 1
        if self.fail_launch:
            raise EngineLaunchError("Could not launch chromium: executable missing")
        try:
            yield self.browser
        finally:
            self.releases += 1


class FakeCollector:
    """Page session collector double.

    ``pages`` maps a URL to a ``PageVisit`` or an exception to raise.
    Unknown URLs produce an empty 200 page without links.
    """

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.visited: list[str] = []

    async def visit(self, url, browser):
        self.visited.append(url)
        outcome = self.pages.get(url)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return PageVisit(bundle=SignalBundle(url=url, http_status=200), links=[])
        return outcome


def make_visit(url, links=(), console_errors=(), http_status=200, **bundle_fields):
    """Build a PageVisit with console errors and outbound links."""
    logs = [ConsoleLog(type="error", message=message) for message in console_errors]
    bundle = SignalBundle(url=url, http_status=http_status, console_logs=logs, **bundle_fields)
    return PageVisit(bundle=bundle, links=list(links))


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
def scan_config():
    """Scan configuration without screenshots."""
    return ScanConfig(base_url=BASE_URL, capture_screenshots=False)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def failing_engine():
    return FakeEngine(fail_launch=True)


@pytest.fixture
def collector_factory():
    """Build a FakeCollector from a ``{url: PageVisit | exception}`` mapping."""
    return FakeCollector


@pytest.fixture
def visit_factory():
    return make_visit


@pytest.fixture
def mock_playwright_page():
    """Create a mock Playwright page."""
    page = AsyncMock()
    page.goto = AsyncMock(return_value=MagicMock(status=200))
    page.url = BASE_URL
    page.wait_for_timeout = AsyncMock()
    page.route = AsyncMock()
    page.set_viewport_size = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"fake_screenshot_data")
    page.close = AsyncMock()
    # page.on registers synchronous callbacks
    page.on = MagicMock()
    page.evaluate = AsyncMock(return_value=[])
    return page


@pytest.fixture
def mock_browser(mock_playwright_page):
    """Create a mock Playwright browser."""
    browser = AsyncMock()
    browser.new_page = AsyncMock(return_value=mock_playwright_page)
    browser.close = AsyncMock()
    return browser
