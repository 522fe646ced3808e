"""Issue detection engine: signals to issues, plus fix suggestions."""

from web_tester.detection.detector import (
    detect_issues,
    determine_error_severity,
    extract_location,
)
from web_tester.detection.patterns import PatternTracker, message_signature
from web_tester.detection.rules import FIX_RULES, FixRule, matching_rule, suggest_fix

__all__ = [
    "FIX_RULES",
    "FixRule",
    "PatternTracker",
    "detect_issues",
    "determine_error_severity",
    "extract_location",
    "matching_rule",
    "message_signature",
    "suggest_fix",
]
