"""Run-wide recurring issue analysis.

Issues whose messages differ only in URLs, quoted values or numbers are
grouped under one signature. Groups seen at least twice become patterns, so a
fix applied once can clear every occurrence.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from web_tester.events import Pattern, PatternAnalysis
from web_tester.models import FixSuggestion, Issue, IssueCategory

_URL_RE = re.compile(r"https?://\S+")
_QUOTED_RE = re.compile(r"(['\"`]).*?\1")
_NUMBER_RE = re.compile(r"\d+")


def message_signature(message: str) -> str:
    """Collapse the variable parts of an issue message."""
    signature = _URL_RE.sub("<url>", message)
    signature = _QUOTED_RE.sub("<str>", signature)
    signature = _NUMBER_RE.sub("<n>", signature)
    return " ".join(signature.split())


@dataclass
class _PatternGroup:
    category: IssueCategory
    signature: str
    occurrences: int = 0
    affected: list[str] = field(default_factory=list)
    fix: Optional[FixSuggestion] = None


class PatternTracker:
    """Accumulates issue signatures over a scan run."""

    def __init__(self, min_occurrences: int = 2):
        self.min_occurrences = min_occurrences
        self._groups: dict[tuple[IssueCategory, str], _PatternGroup] = {}

    def add(self, issues: list[Issue]) -> None:
        for issue in issues:
            signature = message_signature(issue.message)
            key = (issue.category, signature)
            group = self._groups.get(key)
            if group is None:
                group = self._groups[key] = _PatternGroup(issue.category, signature)
            group.occurrences += 1
            location = issue.file or issue.url
            if location not in group.affected:
                group.affected.append(location)
            if group.fix is None and issue.fix is not None:
                group.fix = issue.fix

    def patterns(self) -> list[Pattern]:
        """Recurring groups, most frequent first."""
        recurring = [g for g in self._groups.values() if g.occurrences >= self.min_occurrences]
        recurring.sort(key=lambda g: g.occurrences, reverse=True)
        return [
            Pattern(
                name=f"{group.category.value}: {group.signature[:80]}",
                description=(
                    f"{group.occurrences} occurrences across "
                    f"{len(group.affected)} location(s)"
                ),
                occurrences=group.occurrences,
                affected_files=list(group.affected),
                bulk_fix=group.fix,
            )
            for group in recurring
        ]

    def analysis(self) -> PatternAnalysis:
        return PatternAnalysis(patterns=self.patterns())
