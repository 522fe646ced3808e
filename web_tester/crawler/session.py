"""
Page session collector.

Drives a single page visit against the browser: installs request
interception, subscribes to console and network events, navigates, waits for
late output, reads performance timings, captures screenshots and enumerates
links. The result is a fresh ``SignalBundle`` plus the absolute links found on
the rendered page; link admission is left to the orchestrator.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import structlog

from web_tester.config import ScanConfig
from web_tester.crawler.frontier import is_same_origin
from web_tester.errors import NavigationError
from web_tester.models import (
    VIEWPORT_SIZES,
    ConsoleLog,
    NetworkRequest,
    PerformanceMetrics,
    Screenshot,
    SignalBundle,
)
from web_tester.utils.helpers import generate_id

logger = structlog.get_logger()

NAVIGATION_TIMEOUT_MS = 30_000
SETTLE_DELAY_MS = 1_000

PERFORMANCE_SCRIPT = """
async () => {
    const observe = (type) => new Promise((resolve) => {
        try {
            new PerformanceObserver((list) => resolve(list.getEntries()))
                .observe({ type, buffered: true });
        } catch (e) {
            resolve([]);
        }
        setTimeout(() => resolve([]), 100);
    });

    const nav = performance.getEntriesByType('navigation')[0];
    const lcpEntries = await observe('largest-contentful-paint');
    const shifts = await observe('layout-shift');

    return {
        loadTime: nav ? Math.max(0, nav.loadEventEnd - nav.fetchStart) : 0,
        ttfb: nav ? Math.max(0, nav.responseStart - nav.requestStart) : 0,
        lcp: lcpEntries.length ? lcpEntries[lcpEntries.length - 1].startTime : null,
        cls: shifts.length
            ? shifts.filter((s) => !s.hadRecentInput).reduce((sum, s) => sum + s.value, 0)
            : null,
    };
}
"""

LINKS_SCRIPT = """
() => Array.from(document.querySelectorAll('a[href]'))
    .map((a) => a.href)
    .filter((href) => href.startsWith('http'))
"""


@dataclass
class PageVisit:
    """Outcome of one successful page visit."""
    bundle: SignalBundle
    links: list[str] = field(default_factory=list)


class PageSessionCollector:
    """Collects the signals of one page per ``visit`` call.

    Args:
        config: Scan options (capture toggles, blocking policy, viewports)
        screenshot_dir: Where screenshots are written
    """

    def __init__(self, config: ScanConfig, screenshot_dir: str = "/tmp/web-tester/screenshots"):
        self.config = config
        self.screenshot_dir = Path(screenshot_dir)
        self.log = logger.bind(component="page_session")

    async def visit(self, url: str, browser: Any) -> PageVisit:
        """Visit ``url`` in a new isolated page.

        Args:
            url: Page to visit
            browser: Engine handle providing ``new_page()``

        Returns:
            PageVisit with the signal bundle and discovered links

        Raises:
            NavigationError: If any step of the visit fails
        """
        try:
            page = await browser.new_page()
        except Exception as e:
            raise NavigationError.from_exception(url, e) from e

        try:
            return await self._collect(page, url)
        except NavigationError:
            raise
        except Exception as e:
            raise NavigationError.from_exception(url, e) from e
        finally:
            await page.close()

    async def _collect(self, page: Any, url: str) -> PageVisit:
        config = self.config
        console_logs: list[ConsoleLog] = []
        network_requests: list[NetworkRequest] = []
        request_started: dict[str, float] = {}

        if config.resource_blocking_enabled:
            await page.route("**/*", self._handle_route)

        if config.capture_console_logs:
            page.on("console", lambda msg: console_logs.append(self._console_log(msg)))

        if config.capture_network_requests:
            def on_request(request):
                request_started[request.url] = time.monotonic()

            def on_response(response):
                network_requests.append(self._network_request(response, request_started))

            page.on("request", on_request)
            page.on("response", on_response)

        response = await page.goto(
            url,
            wait_until=config.wait_strategy.value,
            timeout=NAVIGATION_TIMEOUT_MS,
        )
        http_status = response.status if response is not None else 0

        # Late console output and dynamic content
        await page.wait_for_timeout(SETTLE_DELAY_MS)

        performance = await self._collect_performance(page) if config.measure_performance else None
        screenshots = await self._capture_screenshots(page) if config.capture_screenshots else None
        links = list(await page.evaluate(LINKS_SCRIPT) or [])

        self.log.debug(
            "Page collected",
            url=url,
            http_status=http_status,
            console_logs=len(console_logs),
            network_requests=len(network_requests),
            links_count=len(links),
        )

        return PageVisit(
            bundle=SignalBundle(
                url=url,
                http_status=http_status,
                console_logs=list(console_logs),
                network_requests=list(network_requests),
                performance=performance,
                screenshots=screenshots,
            ),
            links=links,
        )

    # =========================================================================
    # Interception
    # =========================================================================

    def should_block(self, request_url: str, resource_type: str) -> bool:
        """Resource blocking policy for one sub-request."""
        config = self.config
        if config.block_external_resources and not is_same_origin(request_url, config.base_url):
            if not any(domain in request_url for domain in config.allowed_domains):
                return True
        return resource_type in config.blocked_resource_types

    async def _handle_route(self, route) -> None:
        request = route.request
        if self.should_block(request.url, request.resource_type):
            self.log.debug("Request blocked", request_url=request.url, resource_type=request.resource_type)
            await route.abort()
        else:
            await route.continue_()

    # =========================================================================
    # Signal capture
    # =========================================================================

    @staticmethod
    def _console_log(msg) -> ConsoleLog:
        location = msg.location or {}
        source = location.get("url") or None
        if source:
            # Playwright reports 0-based positions
            line = location.get("lineNumber", 0) + 1
            column = location.get("columnNumber", 0) + 1
            source = f"{source}:{line}:{column}"
        return ConsoleLog(type=msg.type, message=msg.text, source=source)

    @staticmethod
    def _network_request(response, request_started: dict[str, float]) -> NetworkRequest:
        started = request_started.get(response.url)
        duration = (time.monotonic() - started) * 1000 if started is not None else 0
        return NetworkRequest(
            url=response.url,
            method=response.request.method,
            status=response.status,
            status_text=response.status_text,
            duration=round(duration, 1),
            failed=response.status >= 400,
        )

    async def _collect_performance(self, page) -> Optional[PerformanceMetrics]:
        raw = await page.evaluate(PERFORMANCE_SCRIPT)
        return PerformanceMetrics.model_validate(raw or {})

    async def _capture_screenshots(self, page) -> list[Screenshot]:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        screenshots = []

        for viewport in self.config.viewports:
            width, height = VIEWPORT_SIZES[viewport]
            await page.set_viewport_size({"width": width, "height": height})

            path = self.screenshot_dir / f"{generate_id()}-{viewport}.png"
            await page.screenshot(path=str(path), full_page=False)

            screenshots.append(
                Screenshot(viewport=viewport, path=str(path), width=width, height=height)
            )

        return screenshots
