"""
Scan event schemas.

The event stream is the only external output of a scan. Every event carries a
``type`` tag, and ``ScanEvent`` is the closed tagged union of all kinds:

    scan_start -> (page | issue | progress)* -> [analysis] -> scan_complete

Events serialize to one JSON object per line with camelCase keys.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from web_tester.models import (
    ConsoleLog,
    FixSuggestion,
    Issue,
    NetworkRequest,
    PerformanceMetrics,
    Screenshot,
    WireModel,
)
from web_tester.utils.helpers import format_timestamp


class PageStatus(str, Enum):
    """Lifecycle of a page visit: scanning -> complete | failed."""
    SCANNING = "scanning"
    COMPLETE = "complete"
    FAILED = "failed"


class ScanStart(WireModel):
    """Emitted once, before any page is visited."""

    type: Literal["scan_start"] = "scan_start"
    run_id: str
    base_url: str
    # Page budget of the run; the actual count is reported by ScanComplete.
    total_pages: Optional[int] = None
    timestamp: str = Field(default_factory=format_timestamp)


class ScanProgress(WireModel):
    """Emitted after each completed page visit in progressive mode.

    ``total_pages`` is an estimate (visited + queued) that grows as links are
    discovered.
    """

    type: Literal["progress"] = "progress"
    pages_scanned: int
    total_pages: int
    issues_found: int
    critical_issues: int


class PageScanResult(WireModel):
    """State change of a single page visit."""

    type: Literal["page"] = "page"
    url: str
    status: PageStatus
    http_status: Optional[int] = None

    # Collected data
    issues: Optional[list[Issue]] = None
    console_logs: Optional[list[ConsoleLog]] = None
    network_requests: Optional[list[NetworkRequest]] = None
    performance: Optional[PerformanceMetrics] = None
    screenshots: Optional[list[Screenshot]] = None

    # Timing
    scanned_at: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[str] = None


class ScanComplete(WireModel):
    """Emitted once, after every page visit has finished."""

    type: Literal["scan_complete"] = "scan_complete"
    run_id: str
    total_pages: int
    issues_found: int
    duration: float
    timestamp: str = Field(default_factory=format_timestamp)


class Pattern(WireModel):
    """A recurring issue seen on several pages or files."""

    type: Literal["pattern"] = "pattern"
    name: str
    description: str
    occurrences: int
    affected_files: list[str] = Field(default_factory=list)
    bulk_fix: Optional[FixSuggestion] = None


class PatternAnalysis(WireModel):
    """Run-wide recurring issue summary, emitted before scan completion."""

    type: Literal["analysis"] = "analysis"
    patterns: list[Pattern] = Field(default_factory=list)
    timestamp: str = Field(default_factory=format_timestamp)


ScanEvent = Annotated[
    Union[ScanStart, ScanProgress, PageScanResult, Issue, ScanComplete, PatternAnalysis],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[ScanEvent] = TypeAdapter(ScanEvent)


def to_json_line(event: ScanEvent) -> str:
    """Serialize an event as a single JSON line (no trailing newline)."""
    return event.model_dump_json(by_alias=True, exclude_none=True)


def parse_event(line: str) -> ScanEvent:
    """Parse one JSON line back into the matching event model."""
    return _event_adapter.validate_json(line)


__all__ = [
    "PageScanResult",
    "PageStatus",
    "Pattern",
    "PatternAnalysis",
    "ScanComplete",
    "ScanEvent",
    "ScanProgress",
    "ScanStart",
    "parse_event",
    "to_json_line",
]
