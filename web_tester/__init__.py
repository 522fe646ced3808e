"""
Progressive web page tester.

Crawls a site from a seed URL in a headless browser, turns console, network
and performance signals into severity-ranked issues with fix suggestions, and
streams typed events as they are produced.
"""

from web_tester.config import ScanConfig, Settings, WaitStrategy, get_settings
from web_tester.crawler import CrawlOrchestrator, PageSessionCollector, PlaywrightEngine, run_scan
from web_tester.detection import detect_issues, suggest_fix
from web_tester.errors import EngineLaunchError, NavigationError, WebTesterError
from web_tester.events import (
    PageScanResult,
    PageStatus,
    PatternAnalysis,
    ScanComplete,
    ScanEvent,
    ScanProgress,
    ScanStart,
    to_json_line,
)
from web_tester.models import (
    FixOperation,
    FixSuggestion,
    Issue,
    IssueCategory,
    Severity,
    SignalBundle,
)

__version__ = "0.1.0"

__all__ = [
    "CrawlOrchestrator",
    "EngineLaunchError",
    "FixOperation",
    "FixSuggestion",
    "Issue",
    "IssueCategory",
    "NavigationError",
    "PageScanResult",
    "PageSessionCollector",
    "PageStatus",
    "PatternAnalysis",
    "PlaywrightEngine",
    "ScanComplete",
    "ScanConfig",
    "ScanEvent",
    "ScanProgress",
    "ScanStart",
    "Settings",
    "Severity",
    "SignalBundle",
    "WaitStrategy",
    "WebTesterError",
    "detect_issues",
    "get_settings",
    "run_scan",
    "suggest_fix",
    "to_json_line",
]
