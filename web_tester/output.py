"""
Output layer for scan events.

- ``IssueFilter``: post-hoc severity filters, applied to issue events only
- ``JsonlEventWriter``: one JSON line per event, to a file or stdout
- ``ConsoleReporter``: human-readable feedback on stderr
- ``format_statistics_table``: category x severity issue counts
"""

import sys
from collections import defaultdict
from pathlib import Path
from typing import Optional, TextIO

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
from web_tester.models import Issue, Severity

_TABLE_SEVERITIES = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)


class IssueFilter:
    """Drops issue events below the configured severity; other events pass."""

    def __init__(self, critical_only: bool = False, min_severity: Optional[Severity] = None):
        self.critical_only = critical_only
        self.min_severity = min_severity

    def allows(self, event: ScanEvent) -> bool:
        if not isinstance(event, Issue):
            return True
        if self.critical_only and event.severity != Severity.CRITICAL:
            return False
        if self.min_severity is not None and not event.severity.at_least(self.min_severity):
            return False
        return True


class JsonlEventWriter:
    """Writes events as line-delimited JSON.

    With ``output_format="json"`` the events are collected and written as a
    single JSON array when the writer is closed.

    Usage:
        with JsonlEventWriter("/tmp/web-tester/scan.jsonl") as writer:
            writer.write(event)
    """

    def __init__(
        self,
        path: str,
        issue_filter: Optional[IssueFilter] = None,
        output_format: str = "jsonl",
    ):
        self.path = path
        self.issue_filter = issue_filter or IssueFilter()
        self.output_format = output_format
        self._stream: Optional[TextIO] = None
        self._owns_stream = False
        self._buffered: list[str] = []
        self.lines_written = 0

    def __enter__(self) -> "JsonlEventWriter":
        if self.path == "-":
            self._stream = sys.stdout
        else:
            output = Path(self.path)
            output.parent.mkdir(parents=True, exist_ok=True)
            self._stream = output.open("w", encoding="utf-8")
            self._owns_stream = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._stream is not None:
            if self.output_format == "json":
                self._stream.write("[\n" + ",\n".join(self._buffered) + "\n]\n")
            if self._owns_stream:
                self._stream.close()
            else:
                self._stream.flush()
            self._stream = None

    def write(self, event: ScanEvent) -> bool:
        """Write one event; returns False if the filter dropped it."""
        if self._stream is None:
            raise RuntimeError("JsonlEventWriter used outside of its context")
        if not self.issue_filter.allows(event):
            return False
        if self.output_format == "json":
            self._buffered.append(to_json_line(event))
        else:
            self._stream.write(to_json_line(event) + "\n")
            self._stream.flush()
        self.lines_written += 1
        return True


def format_statistics_table(issues: list[Issue]) -> str:
    """Render issue counts per category and severity as a box table."""
    stats: dict[str, dict[Severity, int]] = defaultdict(lambda: defaultdict(int))
    for issue in issues:
        stats[issue.category.value][issue.severity] += 1

    if not stats:
        return ""

    lines = [
        "╔════════════════════════╦══════════╦══════════╦══════════╦══════════╗",
        "║ Category               ║ CRITICAL ║ HIGH     ║ MEDIUM   ║ LOW      ║",
        "╠════════════════════════╬══════════╬══════════╬══════════╬══════════╣",
    ]
    for category in sorted(stats):
        counts = " ║ ".join(str(stats[category][severity]).rjust(8) for severity in _TABLE_SEVERITIES)
        lines.append(f"║ {category.ljust(22)} ║ {counts} ║")
    lines.append("╚════════════════════════╩══════════╩══════════╩══════════╩══════════╝")
    return "\n".join(lines)


class ConsoleReporter:
    """Prints critical issues, progress and the final summary."""

    def __init__(self, stream: Optional[TextIO] = None, issue_filter: Optional[IssueFilter] = None):
        self.stream = stream or sys.stderr
        self.issue_filter = issue_filter or IssueFilter()
        self.issues: list[Issue] = []

    def _print(self, text: str) -> None:
        self.stream.write(text + "\n")
        self.stream.flush()

    def handle(self, event: ScanEvent) -> None:
        if isinstance(event, Issue):
            if not self.issue_filter.allows(event):
                return
            self.issues.append(event)
            if event.is_critical:
                self._print(f"CRITICAL: {event.message}")
                if event.file:
                    self._print(f"   at {event.file}:{event.line or 0}")
        elif isinstance(event, ScanStart):
            self._print(f"Scanning: {event.base_url} (run {event.run_id})")
        elif isinstance(event, PageScanResult):
            if event.status == PageStatus.FAILED:
                self._print(f"Failed: {event.url} ({event.error or 'unknown error'})")
        elif isinstance(event, ScanProgress):
            self._print(
                f"Progress: {event.pages_scanned} pages scanned, "
                f"{event.issues_found} issues found ({event.critical_issues} critical)"
            )
        elif isinstance(event, PatternAnalysis):
            for pattern in event.patterns:
                self._print(f"Pattern: {pattern.name} x{pattern.occurrences}")
        elif isinstance(event, ScanComplete):
            self._print(
                f"\nScan complete!\n"
                f"   Pages: {event.total_pages}\n"
                f"   Issues: {event.issues_found}\n"
                f"   Duration: {event.duration:.1f}s"
            )
            table = format_statistics_table(self.issues)
            if table:
                self._print(table)
        else:
            raise TypeError(f"Unknown event type: {type(event).__name__}")
