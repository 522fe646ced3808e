"""Tests for the crawl orchestrator."""

from contextlib import aclosing

import pytest

from web_tester.config import ScanConfig
from web_tester.crawler.orchestrator import CrawlOrchestrator, run_scan
from web_tester.errors import EngineLaunchError, NavigationError
from web_tester.events import (
    PageScanResult,
    PageStatus,
    PatternAnalysis,
    ScanComplete,
    ScanProgress,
    ScanStart,
)
from web_tester.models import Issue, NetworkRequest, Severity

BASE = "https://example.com/"


async def collect(orchestrator):
    events = []
    await orchestrator.run_with_callback(events.append)
    return events


def describe(events):
    """Compact (type, detail) view of an event stream."""
    view = []
    for event in events:
        if isinstance(event, PageScanResult):
            view.append(("page", event.status.value))
        elif isinstance(event, Issue):
            view.append(("issue", event.severity.value))
        else:
            view.append((event.type, None))
    return view


def _failed_request(path, status=404):
    return NetworkRequest(url=f"{BASE}{path}", method="GET", status=status, failed=True)


# ==============================================================================
# Event ordering
# ==============================================================================


class TestEventOrdering:
    """Tests for the order of emitted events."""

    @pytest.mark.smoke
    @pytest.mark.asyncio
    async def test_critical_issue_before_page_complete(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test CRITICAL issues precede the page event, the rest follow it."""
        collector = collector_factory({
            BASE: visit_factory(
                BASE,
                console_errors=["Uncaught TypeError: x is undefined"],
                network_requests=[_failed_request("a.png"), _failed_request("b.css")],
            ),
        })
        orchestrator = CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector)

        events = await collect(orchestrator)

        assert describe(events) == [
            ("scan_start", None),
            ("page", "scanning"),
            ("issue", "CRITICAL"),
            ("page", "complete"),
            ("issue", "MEDIUM"),
            ("issue", "MEDIUM"),
            ("progress", None),
            ("scan_complete", None),
        ]

    @pytest.mark.asyncio
    async def test_page_event_carries_issues_and_signals(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test the complete page event embeds the detected issues."""
        collector = collector_factory({
            BASE: visit_factory(BASE, console_errors=["Error: boom"], http_status=200),
        })
        orchestrator = CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector)

        events = await collect(orchestrator)
        complete = next(e for e in events if isinstance(e, PageScanResult) and e.status == PageStatus.COMPLETE)

        assert complete.http_status == 200
        assert len(complete.issues) == 1
        assert complete.console_logs[0].message == "Error: boom"
        assert complete.scanned_at is not None
        assert complete.duration is not None

    @pytest.mark.asyncio
    async def test_prioritize_critical_disabled(self, fake_engine, collector_factory, visit_factory):
        """Test all issues follow the page event without prioritization."""
        config = ScanConfig(base_url=BASE, capture_screenshots=False, prioritize_critical=False)
        collector = collector_factory({
            BASE: visit_factory(BASE, console_errors=["Deprecated thing", "Uncaught Error: boom"]),
        })

        events = await collect(CrawlOrchestrator(config, engine=fake_engine, collector=collector))

        assert describe(events)[1:5] == [
            ("page", "scanning"),
            ("page", "complete"),
            ("issue", "MEDIUM"),
            ("issue", "CRITICAL"),
        ]

    @pytest.mark.asyncio
    async def test_non_progressive_mode(self, fake_engine, collector_factory, visit_factory):
        """Test no progress events and no critical reordering when not progressive."""
        config = ScanConfig(base_url=BASE, capture_screenshots=False, progressive=False)
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}a"], console_errors=["Uncaught Error: boom"]),
        })

        events = await collect(CrawlOrchestrator(config, engine=fake_engine, collector=collector))

        assert not any(isinstance(e, ScanProgress) for e in events)
        assert describe(events) == [
            ("scan_start", None),
            ("page", "scanning"),
            ("page", "complete"),
            ("issue", "CRITICAL"),
            ("page", "scanning"),
            ("page", "complete"),
            ("scan_complete", None),
        ]

    @pytest.mark.asyncio
    async def test_start_first_complete_last(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test exactly one start and one completion bracket the stream."""
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}a", f"{BASE}b"]),
        })

        events = await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))

        assert isinstance(events[0], ScanStart)
        assert isinstance(events[-1], ScanComplete)
        assert sum(isinstance(e, ScanStart) for e in events) == 1
        assert sum(isinstance(e, ScanComplete) for e in events) == 1
        assert events[0].run_id == events[-1].run_id
        assert events[0].base_url == BASE

    @pytest.mark.asyncio
    async def test_start_carries_page_budget_and_run_start_time(self, fake_engine, collector_factory, visit_factory):
        """Test the start event reports the page limit and when the run began."""
        config = ScanConfig(base_url=BASE, max_pages=7, capture_screenshots=False)
        collector = collector_factory({BASE: visit_factory(BASE)})
        orchestrator = CrawlOrchestrator(config, engine=fake_engine, collector=collector)

        events = await collect(orchestrator)
        start = events[0]

        assert start.total_pages == 7
        assert start.timestamp.endswith("Z")
        assert start.timestamp <= events[-1].timestamp
        assert start.model_dump(by_alias=True)["totalPages"] == 7

    @pytest.mark.asyncio
    async def test_pattern_analysis_before_completion(self, fake_engine, collector_factory, visit_factory):
        """Test the analysis event is emitted just before scan completion."""
        config = ScanConfig(base_url=BASE, capture_screenshots=False, analyze_patterns=True)
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}a"], console_errors=["Cannot find module 'x'"]),
            f"{BASE}a": visit_factory(f"{BASE}a", console_errors=["Cannot find module 'y'"]),
        })

        events = await collect(CrawlOrchestrator(config, engine=fake_engine, collector=collector))

        assert isinstance(events[-2], PatternAnalysis)
        assert events[-2].patterns[0].occurrences == 2
        assert isinstance(events[-1], ScanComplete)


# ==============================================================================
# Crawl behaviour
# ==============================================================================


class TestCrawl:
    """Tests for frontier handling during a run."""

    @pytest.mark.asyncio
    async def test_breadth_first_and_same_origin(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test links are followed in discovery order within the origin."""
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}a", "https://other.com/x", f"{BASE}b"]),
            f"{BASE}a": visit_factory(f"{BASE}a", links=[f"{BASE}c", BASE]),
        })

        await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))

        assert collector.visited == [BASE, f"{BASE}a", f"{BASE}b", f"{BASE}c"]

    @pytest.mark.asyncio
    async def test_each_url_visited_once(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test cyclic links do not cause revisits."""
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}a", f"{BASE}a"]),
            f"{BASE}a": visit_factory(f"{BASE}a", links=[BASE, f"{BASE}a"]),
        })

        await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))

        assert sorted(collector.visited) == [BASE, f"{BASE}a"]

    @pytest.mark.asyncio
    async def test_max_pages_bound(self, fake_engine, collector_factory, visit_factory):
        """Test no more than max_pages pages are visited."""
        config = ScanConfig(base_url=BASE, capture_screenshots=False, max_pages=3)
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}{i}" for i in range(10)]),
        })

        events = await collect(CrawlOrchestrator(config, engine=fake_engine, collector=collector))

        assert len(collector.visited) == 3
        assert events[-1].total_pages == 3

    @pytest.mark.asyncio
    async def test_exclude_patterns_respected(self, fake_engine, collector_factory, visit_factory):
        """Test excluded links are never visited."""
        config = ScanConfig(base_url=BASE, capture_screenshots=False, exclude_patterns=["*/admin/*"])
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}admin/users", f"{BASE}users"]),
        })

        await collect(CrawlOrchestrator(config, engine=fake_engine, collector=collector))

        assert collector.visited == [BASE, f"{BASE}users"]

    @pytest.mark.asyncio
    async def test_progress_totals(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test progress counts grow with discovered links."""
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}a", f"{BASE}b"], console_errors=["Uncaught Error"]),
        })

        events = await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))
        progress = [e for e in events if isinstance(e, ScanProgress)]

        assert [(p.pages_scanned, p.total_pages) for p in progress] == [(1, 3), (2, 3), (3, 3)]
        assert progress[0].issues_found == 1
        assert progress[0].critical_issues == 1
        assert events[-1].issues_found == 1

    @pytest.mark.asyncio
    async def test_parallel_pages(self, fake_engine, collector_factory, visit_factory):
        """Test concurrent workers visit every page once with per-page ordering."""
        config = ScanConfig(base_url=BASE, capture_screenshots=False, parallel_pages=3)
        links = [f"{BASE}p{i}" for i in range(5)]
        collector = collector_factory({BASE: visit_factory(BASE, links=links)})

        events = await collect(CrawlOrchestrator(config, engine=fake_engine, collector=collector))

        assert sorted(collector.visited) == sorted([BASE, *links])
        assert events[-1].total_pages == 6
        for url in [BASE, *links]:
            statuses = [e.status for e in events if isinstance(e, PageScanResult) and e.url == url]
            assert statuses == [PageStatus.SCANNING, PageStatus.COMPLETE]
        assert fake_engine.launches == 1
        assert fake_engine.releases == 1


# ==============================================================================
# Failures
# ==============================================================================


class TestFailureContainment:
    """Tests for per-page failures and fatal engine errors."""

    @pytest.mark.asyncio
    async def test_failed_page_does_not_stop_scan(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test a page failure yields a failed page event and the scan continues."""
        collector = collector_factory({
            BASE: visit_factory(BASE, links=[f"{BASE}broken", f"{BASE}ok"]),
            f"{BASE}broken": NavigationError(f"{BASE}broken", "Timeout 30000ms exceeded", "timeout"),
        })

        events = await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))
        failed = [e for e in events if isinstance(e, PageScanResult) and e.status == PageStatus.FAILED]

        assert len(failed) == 1
        assert failed[0].url == f"{BASE}broken"
        assert "Timeout" in failed[0].error
        assert failed[0].duration is not None
        assert collector.visited == [BASE, f"{BASE}broken", f"{BASE}ok"]
        assert events[-1].total_pages == 3

    @pytest.mark.asyncio
    async def test_unexpected_collector_error_is_contained(self, scan_config, fake_engine, collector_factory):
        """Test arbitrary collector exceptions are treated as failed pages."""
        collector = collector_factory({BASE: RuntimeError("Target page crashed")})

        events = await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))

        assert describe(events) == [
            ("scan_start", None),
            ("page", "scanning"),
            ("page", "failed"),
            ("progress", None),
            ("scan_complete", None),
        ]

    @pytest.mark.asyncio
    async def test_launch_failure_is_fatal(self, scan_config, failing_engine, collector_factory):
        """Test an engine launch failure aborts the run before any page."""
        collector = collector_factory()
        orchestrator = CrawlOrchestrator(scan_config, engine=failing_engine, collector=collector)
        events = []

        with pytest.raises(EngineLaunchError):
            await orchestrator.run_with_callback(events.append)

        assert describe(events) == [("scan_start", None)]
        assert collector.visited == []

    @pytest.mark.asyncio
    async def test_engine_released_once(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test the browser is released exactly once after a normal run."""
        collector = collector_factory({BASE: visit_factory(BASE, links=[f"{BASE}a"])})

        await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))

        assert fake_engine.launches == 1
        assert fake_engine.releases == 1

    @pytest.mark.asyncio
    async def test_engine_released_when_consumer_stops_early(self, scan_config, fake_engine, collector_factory, visit_factory):
        """Test closing the stream early still releases the browser."""
        collector = collector_factory({BASE: visit_factory(BASE, links=[f"{BASE}a", f"{BASE}b"])})
        orchestrator = CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector)

        async with aclosing(orchestrator.run()) as events:
            async for event in events:
                if isinstance(event, PageScanResult):
                    break

        assert fake_engine.releases == 1


# ==============================================================================
# Convenience wrapper
# ==============================================================================


class TestRunScan:
    """Tests for the run_scan helper."""

    @pytest.mark.asyncio
    async def test_run_scan_streams_to_callback(self, scan_config, fake_engine):
        """Test run_scan with the default collector reports an unreachable page as failed."""
        events = []

        # The fake browser handle cannot open pages, so the visit fails
        await run_scan(scan_config, events.append, engine=fake_engine)

        assert isinstance(events[0], ScanStart)
        assert ("page", "failed") in describe(events)
        assert isinstance(events[-1], ScanComplete)
        assert events[-1].total_pages == 1
        assert events[-1].issues_found == 0


class TestSeverityCounts:
    """Tests for run counters in completion events."""

    @pytest.mark.asyncio
    async def test_issue_totals(self, scan_config, fake_engine, collector_factory, visit_factory):
        collector = collector_factory({
            BASE: visit_factory(
                BASE,
                links=[f"{BASE}a"],
                console_errors=["Uncaught Error: a", "Fatal: b"],
            ),
            f"{BASE}a": visit_factory(f"{BASE}a", http_status=404),
        })

        events = await collect(CrawlOrchestrator(scan_config, engine=fake_engine, collector=collector))
        issues = [e for e in events if isinstance(e, Issue)]
        last_progress = [e for e in events if isinstance(e, ScanProgress)][-1]

        assert len(issues) == 3
        assert sum(1 for i in issues if i.severity == Severity.CRITICAL) == 2
        assert last_progress.critical_issues == 2
        assert events[-1].issues_found == 3
