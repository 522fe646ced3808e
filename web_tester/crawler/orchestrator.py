"""
Crawl orchestrator.

Owns the frontier and the run counters, sequences page visits, contains
per-page failures and emits the event stream in order:

    scan_start
    for each page:  page(scanning) -> [critical issues] -> page(complete|failed)
                    -> remaining issues -> progress
    [analysis]
    scan_complete

With ``parallel_pages > 1`` several workers share one browser; each worker
owns its page, URLs are handed out under a single condition lock, and the
per-page ordering above still holds for every page.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from web_tester.config import ScanConfig, get_settings
from web_tester.crawler.engine import BrowserEngine, PlaywrightEngine
from web_tester.crawler.frontier import Frontier, LinkPolicy, UrlFilter
from web_tester.crawler.session import PageSessionCollector, PageVisit
from web_tester.detection import PatternTracker, detect_issues
from web_tester.errors import EngineLaunchError, NavigationError
from web_tester.events import (
    PageScanResult,
    PageStatus,
    ScanComplete,
    ScanEvent,
    ScanProgress,
    ScanStart,
)
from web_tester.models import Issue, RunState
from web_tester.utils.helpers import format_timestamp

logger = structlog.get_logger()

_WORKER_DONE = object()


@dataclass
class _CrawlState:
    """Frontier and counters shared by the workers of one run."""
    frontier: Frontier
    run: RunState
    max_pages: int
    dispatched: int = 0
    in_flight: int = 0
    condition: asyncio.Condition = field(default_factory=asyncio.Condition)

    async def next_url(self) -> Optional[str]:
        """Hand out the next URL, waiting while other visits may add links.

        Returns ``None`` once ``max_pages`` URLs were handed out, or the frontier is
        empty with no visit still in flight.
        """
        async with self.condition:
            while True:
                if self.dispatched >= self.max_pages:
                    return None
                url = self.frontier.pop()
                if url is not None:
                    self.dispatched += 1
                    self.in_flight += 1
                    return url
                if self.in_flight == 0:
                    return None
                await self.condition.wait()

    async def finish(self) -> None:
        async with self.condition:
            self.in_flight -= 1
            self.condition.notify_all()


class CrawlOrchestrator:
    """Runs one scan and yields its events.

    Args:
        config: Resolved scan options
        engine: Browser engine (defaults to a headless Playwright chromium)
        collector: Page session collector (defaults to one built from config)

    Example:
        orchestrator = CrawlOrchestrator(ScanConfig(base_url="https://example.com"))
        async for event in orchestrator.run():
            print(to_json_line(event))
    """

    def __init__(
        self,
        config: ScanConfig,
        engine: Optional[BrowserEngine] = None,
        collector: Optional[PageSessionCollector] = None,
    ):
        self.config = config
        if engine is None or collector is None:
            settings = get_settings()
            engine = engine or PlaywrightEngine(headless=settings.headless)
            collector = collector or PageSessionCollector(config, screenshot_dir=settings.screenshot_dir)
        self.engine = engine
        self.collector = collector
        self.policy = LinkPolicy(
            config.base_url,
            UrlFilter(config.include_patterns, config.exclude_patterns),
        )
        self.log = logger.bind(component="crawl_orchestrator")

    async def run(self) -> AsyncIterator[ScanEvent]:
        """Crawl from the base URL, yielding events in emission order.

        Raises:
            EngineLaunchError: If the browser cannot be started
        """
        config = self.config
        run = RunState()
        frontier = Frontier()
        frontier.push(config.base_url)
        crawl = _CrawlState(frontier=frontier, run=run, max_pages=config.max_pages)
        tracker = PatternTracker() if config.analyze_patterns else None
        log = self.log.bind(run_id=run.run_id)

        log.info(
            "Starting crawl",
            base_url=config.base_url,
            max_pages=config.max_pages,
            parallel_pages=config.parallel_pages,
        )
        yield ScanStart(
            run_id=run.run_id,
            base_url=config.base_url,
            total_pages=config.max_pages,
            timestamp=format_timestamp(run.started_at),
        )

        try:
            async with self.engine.launch() as browser:
                events: asyncio.Queue = asyncio.Queue()
                workers = [
                    asyncio.create_task(self._worker(browser, crawl, tracker, events.put_nowait))
                    for _ in range(config.parallel_pages)
                ]
                try:
                    finished = 0
                    while finished < len(workers):
                        event = await events.get()
                        if event is _WORKER_DONE:
                            finished += 1
                            continue
                        yield event
                    await asyncio.gather(*workers)
                finally:
                    pending = [worker for worker in workers if not worker.done()]
                    for worker in pending:
                        worker.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)

                if tracker is not None:
                    yield tracker.analysis()

                log.info(
                    "Crawl completed",
                    pages_scanned=run.pages_scanned,
                    issues_found=run.issues_found,
                    critical_issues=run.critical_issues,
                )
                yield ScanComplete(
                    run_id=run.run_id,
                    total_pages=run.pages_scanned,
                    issues_found=run.issues_found,
                    duration=round(run.elapsed_seconds, 3),
                )
        except EngineLaunchError:
            log.error("Scan aborted: browser could not be launched")
            raise

    async def run_with_callback(self, on_event: Callable[[ScanEvent], Any]) -> None:
        """Drive ``run`` to completion, calling ``on_event`` once per event."""
        async with aclosing(self.run()) as events:
            async for event in events:
                on_event(event)

    # =========================================================================
    # Workers
    # =========================================================================

    async def _worker(
        self,
        browser: Any,
        crawl: _CrawlState,
        tracker: Optional[PatternTracker],
        emit: Callable[[Any], None],
    ) -> None:
        try:
            while True:
                url = await crawl.next_url()
                if url is None:
                    return
                try:
                    await self._scan_page(url, browser, crawl, tracker, emit)
                finally:
                    await crawl.finish()
        finally:
            emit(_WORKER_DONE)

    async def _scan_page(
        self,
        url: str,
        browser: Any,
        crawl: _CrawlState,
        tracker: Optional[PatternTracker],
        emit: Callable[[ScanEvent], None],
    ) -> None:
        started = time.monotonic()
        emit(PageScanResult(url=url, status=PageStatus.SCANNING))

        try:
            visit = await self.collector.visit(url, browser)
        except Exception as e:
            error = e if isinstance(e, NavigationError) else NavigationError.from_exception(url, e)
            self.log.warning(
                "Failed to scan page",
                url=url,
                error_type=error.error_type,
                error=str(e),
            )
            crawl.run.record_page([])
            emit(
                PageScanResult(
                    url=url,
                    status=PageStatus.FAILED,
                    duration=round(time.monotonic() - started, 3),
                    error=str(e),
                )
            )
            self._emit_progress(crawl, emit)
            return

        issues = detect_issues(visit.bundle)
        async with crawl.condition:
            crawl.frontier.ingest(visit.links, self.policy)
            crawl.run.record_page(issues)
            crawl.condition.notify_all()

        if tracker is not None:
            tracker.add(issues)

        self._emit_page(visit, issues, round(time.monotonic() - started, 3), emit)
        self._emit_progress(crawl, emit)

    def _emit_page(
        self,
        visit: PageVisit,
        issues: list[Issue],
        duration: float,
        emit: Callable[[ScanEvent], None],
    ) -> None:
        config = self.config
        bundle = visit.bundle
        critical_first = config.progressive and config.prioritize_critical

        if critical_first:
            for issue in issues:
                if issue.is_critical:
                    emit(issue)

        emit(
            PageScanResult(
                url=bundle.url,
                status=PageStatus.COMPLETE,
                http_status=bundle.http_status,
                issues=issues,
                console_logs=bundle.console_logs if config.capture_console_logs else None,
                network_requests=bundle.network_requests if config.capture_network_requests else None,
                performance=bundle.performance,
                screenshots=bundle.screenshots,
                scanned_at=format_timestamp(),
                duration=duration,
            )
        )

        for issue in issues:
            if not (critical_first and issue.is_critical):
                emit(issue)

    def _emit_progress(self, crawl: _CrawlState, emit: Callable[[ScanEvent], None]) -> None:
        if not self.config.progressive:
            return
        emit(
            ScanProgress(
                pages_scanned=crawl.run.pages_scanned,
                total_pages=crawl.frontier.estimated_total,
                issues_found=crawl.run.issues_found,
                critical_issues=crawl.run.critical_issues,
            )
        )


async def run_scan(
    config: ScanConfig,
    on_event: Callable[[ScanEvent], Any],
    engine: Optional[BrowserEngine] = None,
) -> None:
    """Convenience wrapper: scan ``config.base_url`` and stream events to ``on_event``.

    Example:
        events = []
        await run_scan(ScanConfig(base_url="https://example.com"), events.append)
    """
    await CrawlOrchestrator(config, engine=engine).run_with_callback(on_event)


__all__ = [
    "CrawlOrchestrator",
    "run_scan",
]
