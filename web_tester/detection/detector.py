"""
Issue detection.

Turns the signal bundle of one page visit into an ordered list of issues:

1. one issue per console entry of type ``error``
2. one issue per failed network request
3. slow-load / poor-LCP issues, when a performance snapshot is present
4. one broken-link issue when the page itself answered with status >= 400

Detection is pure and never raises; missing data yields fewer issues or
unset optional fields.
"""

import math
import re
from typing import Optional

from web_tester.detection.rules import FIX_RULES, FixRule, suggest_fix
from web_tester.models import (
    ConsoleLog,
    Issue,
    IssueCategory,
    NetworkRequest,
    PerformanceMetrics,
    Severity,
    SignalBundle,
)

SLOW_LOAD_MS = 5000
VERY_SLOW_LOAD_MS = 10000
POOR_LCP_MS = 2500
VERY_POOR_LCP_MS = 4000

_CRITICAL_KEYWORDS = ("uncaught", "fatal", "critical")
_HIGH_KEYWORDS = ("error", "exception", "failed")

_SOURCE_LOCATION_RE = re.compile(r"(.+):(\d+):(\d+)$")
_MESSAGE_LOCATION_RE = re.compile(r"at\s+(.+):(\d+):(\d+)")


def detect_issues(bundle: SignalBundle, rules: tuple[FixRule, ...] = FIX_RULES) -> list[Issue]:
    """Detect issues from the data collected on one page.

    Args:
        bundle: Signals collected during the page visit
        rules: Fix suggestion rule table applied to console errors

    Returns:
        Issues in detection order
    """
    issues: list[Issue] = []

    issues.extend(
        _console_error_issue(bundle.url, log, rules)
        for log in bundle.console_logs
        if log.type == "error"
    )
    issues.extend(
        _network_failure_issue(bundle.url, request)
        for request in bundle.network_requests
        if request.failed
    )
    if bundle.performance is not None:
        issues.extend(_performance_issues(bundle.url, bundle.performance))
    if bundle.http_status >= 400:
        issues.append(
            Issue(
                severity=Severity.MEDIUM,
                category=IssueCategory.BROKEN_LINK,
                url=bundle.url,
                message=f"Page returned {bundle.http_status}",
            )
        )

    return issues


def determine_error_severity(message: str) -> Severity:
    """Rank a console error message by keyword tiers (case-insensitive)."""
    lowered = message.lower()
    if any(keyword in lowered for keyword in _CRITICAL_KEYWORDS):
        return Severity.CRITICAL
    if any(keyword in lowered for keyword in _HIGH_KEYWORDS):
        return Severity.HIGH
    return Severity.MEDIUM


def extract_location(message: str, source: Optional[str] = None) -> Optional[tuple[str, int, int]]:
    """Find ``(file, line, column)`` in the log source, then in the message."""
    if source:
        match = _SOURCE_LOCATION_RE.search(source)
        if match:
            return match.group(1), int(match.group(2)), int(match.group(3))

    match = _MESSAGE_LOCATION_RE.search(message)
    if match:
        return match.group(1), int(match.group(2)), int(match.group(3))

    return None


def _console_error_issue(url: str, log: ConsoleLog, rules: tuple[FixRule, ...]) -> Issue:
    location = extract_location(log.message, log.source)
    file, line, column = location if location else (None, None, None)
    fix = suggest_fix(log.message, url, rules)

    return Issue(
        severity=determine_error_severity(log.message),
        category=IssueCategory.CONSOLE_ERROR,
        url=url,
        file=file,
        line=line,
        column=column,
        message=log.message,
        stack_trace=log.stack_trace,
        fix=fix,
        auto_fixable=fix.auto_fixable if fix else False,
    )


def _network_failure_issue(url: str, request: NetworkRequest) -> Issue:
    return Issue(
        severity=Severity.MEDIUM if request.status == 404 else Severity.HIGH,
        category=IssueCategory.NETWORK_FAILURE,
        url=url,
        message=f"Failed request: {request.method} {request.url} ({request.status})",
    )


def _performance_issues(url: str, perf: PerformanceMetrics) -> list[Issue]:
    issues = []

    if perf.load_time > SLOW_LOAD_MS:
        issues.append(
            Issue(
                severity=Severity.HIGH if perf.load_time > VERY_SLOW_LOAD_MS else Severity.MEDIUM,
                category=IssueCategory.PERFORMANCE,
                url=url,
                message=f"Slow page load: {_round_ms(perf.load_time)}ms (threshold: {SLOW_LOAD_MS}ms)",
            )
        )

    if perf.lcp and perf.lcp > POOR_LCP_MS:
        issues.append(
            Issue(
                severity=Severity.HIGH if perf.lcp > VERY_POOR_LCP_MS else Severity.MEDIUM,
                category=IssueCategory.PERFORMANCE,
                url=url,
                message=f"Poor LCP: {_round_ms(perf.lcp)}ms (threshold: {POOR_LCP_MS}ms)",
            )
        )

    return issues


def _round_ms(value: float) -> int:
    # half-up, so 2500.5 reports as 2501
    return math.floor(value + 0.5)
