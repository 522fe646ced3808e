"""Crawler: frontier, browser engine, page sessions and the orchestrator."""

from web_tester.crawler.engine import BrowserEngine, PlaywrightEngine
from web_tester.crawler.frontier import (
    Frontier,
    LinkPolicy,
    UrlFilter,
    compile_glob,
    is_same_origin,
)
from web_tester.crawler.orchestrator import CrawlOrchestrator, run_scan
from web_tester.crawler.session import PageSessionCollector, PageVisit

__all__ = [
    "BrowserEngine",
    "CrawlOrchestrator",
    "Frontier",
    "LinkPolicy",
    "PageSessionCollector",
    "PageVisit",
    "PlaywrightEngine",
    "UrlFilter",
    "compile_glob",
    "is_same_origin",
    "run_scan",
]
