"""
Data models for the web tester.

This module defines the records collected during a page visit (console logs,
network requests, performance metrics, screenshots), the issues derived from
them, and the per-run state owned by the crawl orchestrator.

Wire-level records are pydantic models serialized with camelCase keys; the
per-visit signal bundle and run counters are plain dataclasses that never
leave the process.
"""

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from web_tester.utils.helpers import format_timestamp, generate_id

# =============================================================================
# Enums
# =============================================================================


class Severity(str, Enum):
    """
    Severity tier of an issue, ordered CRITICAL > HIGH > MEDIUM > LOW > INFO.
    """
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more severe."""
        return _SEVERITY_RANK[self]

    def at_least(self, other: "Severity") -> bool:
        """Whether this severity is as severe as ``other`` or more."""
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class IssueCategory(str, Enum):
    """
    Category of a detected issue.

    Attributes:
        CONSOLE_ERROR: Error written to the browser console
        NETWORK_FAILURE: Sub-request answered with status >= 400
        PERFORMANCE: Slow load or poor largest-contentful-paint
        ACCESSIBILITY: Accessibility violation
        VISUAL_REGRESSION: Visual difference against a baseline
        BROKEN_LINK: Page itself answered with status >= 400
        MISSING_ELEMENT: Expected element not found
    """
    CONSOLE_ERROR = "CONSOLE_ERROR"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    PERFORMANCE = "PERFORMANCE"
    ACCESSIBILITY = "ACCESSIBILITY"
    VISUAL_REGRESSION = "VISUAL_REGRESSION"
    BROKEN_LINK = "BROKEN_LINK"
    MISSING_ELEMENT = "MISSING_ELEMENT"


class FixOperationType(str, Enum):
    """Kind of remediation step attached to a fix suggestion."""
    EDIT = "EDIT"
    BASH = "BASH"
    CREATE = "CREATE"
    DELETE = "DELETE"


Viewport = Literal["mobile", "tablet", "desktop"]

VIEWPORT_SIZES: dict[str, tuple[int, int]] = {
    "mobile": (375, 667),
    "tablet": (768, 1024),
    "desktop": (1920, 1080),
}


# =============================================================================
# Wire records
# =============================================================================


class WireModel(BaseModel):
    """Base for records that appear in the event stream (camelCase keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class FixOperation(WireModel):
    """A single remediation step."""

    type: FixOperationType
    file: Optional[str] = None
    old_string: Optional[str] = None
    new_string: Optional[str] = None
    command: Optional[str] = None
    description: Optional[str] = None


class FixSuggestion(WireModel):
    """Human readable fix with a confidence score and ordered operations."""

    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    operations: list[FixOperation] = Field(default_factory=list)

    @property
    def auto_fixable(self) -> bool:
        """A suggestion is applied automatically only above 0.8 confidence."""
        return self.confidence > 0.8


class ConsoleLog(WireModel):
    """Console message captured from the page."""

    type: str
    message: str
    source: Optional[str] = None
    stack_trace: Optional[str] = None
    timestamp: str = Field(default_factory=format_timestamp)


class NetworkRequest(WireModel):
    """Completed sub-request observed while the page loaded."""

    url: str
    method: str
    status: int
    status_text: str = ""
    duration: float = 0
    failed: bool = False


class PerformanceMetrics(WireModel):
    """Timings read from the page's performance timeline (milliseconds)."""

    load_time: float = 0
    lcp: Optional[float] = None
    inp: Optional[float] = None
    cls: Optional[float] = None
    ttfb: Optional[float] = None


class Screenshot(WireModel):
    """Viewport screenshot stored on disk."""

    viewport: Viewport
    path: str
    width: int
    height: int


class Issue(WireModel):
    """A typed, severity-ranked problem found on a page. Immutable."""

    type: Literal["issue"] = "issue"
    id: str = Field(default_factory=generate_id)
    severity: Severity
    category: IssueCategory

    # Location
    url: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    # Details
    message: str
    snippet: Optional[str] = None
    stack_trace: Optional[str] = None

    # Fix suggestion
    fix: Optional[FixSuggestion] = None
    auto_fixable: bool = False

    timestamp: str = Field(default_factory=format_timestamp)

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


# =============================================================================
# Per-visit and per-run state
# =============================================================================


@dataclass
class SignalBundle:
    """
    Raw observations of one page visit, consumed by issue detection.

    Attributes:
        url: Visited URL
        http_status: Status of the top-level response (0 if none)
        console_logs: Console messages in arrival order
        network_requests: Completed sub-requests in arrival order
        performance: Timing snapshot, if performance capture is enabled
        screenshots: Captured screenshots, if screenshot capture is enabled
    """
    url: str
    http_status: int = 0
    console_logs: list[ConsoleLog] = field(default_factory=list)
    network_requests: list[NetworkRequest] = field(default_factory=list)
    performance: Optional[PerformanceMetrics] = None
    screenshots: Optional[list[Screenshot]] = None


@dataclass
class RunState:
    """
    Counters for one scan run. Every counter only ever increases.

    Attributes:
        run_id: Identifier of the run
        started_at: Wall-clock start of the run
        pages_scanned: Pages visited, failed visits included
        issues_found: Issues detected across all pages
        critical_issues: CRITICAL issues detected across all pages
    """
    run_id: str = field(default_factory=generate_id)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    pages_scanned: int = 0
    issues_found: int = 0
    critical_issues: int = 0
    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    def record_page(self, issues: list[Issue]) -> None:
        """Count a visited page and the issues found on it."""
        self.pages_scanned += 1
        self.issues_found += len(issues)
        self.critical_issues += sum(1 for issue in issues if issue.is_critical)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._started_monotonic
