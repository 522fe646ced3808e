"""
Fix suggestion rule table.

Console error messages are matched against an ordered tuple of rules. Rules
are evaluated top to bottom and the first match wins, so the order of
``FIX_RULES`` decides which suggestion a message gets when it matches several
rules. A message that matches no rule gets no suggestion.

Each rule is a pair of a matcher (returns match data or ``None``) and a
builder that turns the match data into a ``FixSuggestion``.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from web_tester.models import FixOperation, FixOperationType, FixSuggestion

Matcher = Callable[[str, str], Any]
Builder = Callable[[Any, str], FixSuggestion]

_MODULE_RE = re.compile(r"Cannot find module ['\"](.+?)['\"]")
_ENV_PHRASE = r"(?i:environment variable|env var)s?"
_ENV_NAME_AFTER_RE = re.compile(_ENV_PHRASE + r"[:\s]+['\"`]?([A-Z][A-Z0-9_]*)\b")
_ENV_NAME_BEFORE_RE = re.compile(r"\b([A-Z][A-Z0-9_]{2,})['\"`]?\s+" + _ENV_PHRASE)
_ENV_NAME_LATER_RE = re.compile(_ENV_PHRASE + r"\b.*?\b([A-Z][A-Z0-9_]{2,})\b")
_RATE_LIMIT_STATUS_RE = re.compile(r"\b429\b")
_IMAGE_RE = re.compile(r"\.(png|jpe?g|gif|webp|svg|avif|ico)\b|\bimage\b", re.IGNORECASE)


@dataclass(frozen=True)
class FixRule:
    """One entry of the rule table.

    Attributes:
        name: Stable rule identifier
        matcher: ``(message, lowered) -> match data | None``
        builder: ``(match data, url) -> FixSuggestion``
    """
    name: str
    matcher: Matcher
    builder: Builder

    def apply(self, message: str, url: str) -> Optional[FixSuggestion]:
        match = self.matcher(message, message.lower())
        if not match:
            return None
        return self.builder(match, url)


def _contains(*needles: str) -> Matcher:
    """Matcher for a case-insensitive substring test."""
    def match(message: str, lowered: str) -> bool:
        return any(needle in lowered for needle in needles)
    return match


def _suggestion(description: str, confidence: float, *operations: FixOperation) -> FixSuggestion:
    return FixSuggestion(description=description, confidence=confidence, operations=list(operations))


def _bash(description: str, command: Optional[str] = None) -> FixOperation:
    return FixOperation(type=FixOperationType.BASH, command=command, description=description)


def _edit(description: str, old: Optional[str] = None, new: Optional[str] = None) -> FixOperation:
    return FixOperation(type=FixOperationType.EDIT, old_string=old, new_string=new, description=description)


# =============================================================================
# Matchers with extraction
# =============================================================================


def _match_missing_module(message: str, lowered: str) -> Optional[str]:
    if "Cannot find module" not in message:
        return None
    found = _MODULE_RE.search(message)
    return found.group(1) if found else None


def _match_timeout(message: str, lowered: str) -> bool:
    return "timeout" in message or "ETIMEDOUT" in message


def _match_missing_env(message: str, lowered: str) -> Optional[str]:
    if "environment variable" not in lowered and "env var" not in lowered:
        return None
    if not any(word in lowered for word in ("missing", "not set", "not defined", "undefined", "required")):
        return None
    # Prefer the name right after the phrase, then right before it, then anywhere after.
    found = (
        _ENV_NAME_AFTER_RE.search(message)
        or _ENV_NAME_BEFORE_RE.search(message)
        or _ENV_NAME_LATER_RE.search(message)
    )
    return found.group(1) if found else "<NAME>"


def _match_token(message: str, lowered: str) -> bool:
    if "jwt" in lowered:
        return True
    return "token" in lowered and ("invalid" in lowered or "expired" in lowered)


def _match_rate_limit(message: str, lowered: str) -> bool:
    if _RATE_LIMIT_STATUS_RE.search(message):
        return True
    return "too many requests" in lowered or "rate limit" in lowered


def _match_stale_cache(message: str, lowered: str) -> bool:
    if "chunkloaderror" in lowered or "loading chunk" in lowered:
        return True
    return "stale" in lowered and "cache" in lowered


def _match_missing_image(message: str, lowered: str) -> bool:
    return "404" in lowered and bool(_IMAGE_RE.search(message))


def _match_bundle_size(message: str, lowered: str) -> bool:
    if "asset size limit" in lowered or "entrypoint size limit" in lowered:
        return True
    return "bundle" in lowered and any(word in lowered for word in ("size", "exceeds", "too large"))


# =============================================================================
# Rule table (order matters)
# =============================================================================

FIX_RULES: tuple[FixRule, ...] = (
    FixRule(
        name="next_intl_insufficient_path",
        matcher=lambda message, lowered: "INSUFFICIENT_PATH" in message,
        builder=lambda _, url: _suggestion(
            "Replace next/link with next-intl Link",
            0.95,
            _edit(
                "Update import statement",
                old="import Link from 'next/link';",
                new="import { Link } from '@/i18n/routing';",
            ),
        ),
    ),
    FixRule(
        name="missing_module",
        matcher=_match_missing_module,
        builder=lambda module, url: _suggestion(
            f"Install missing dependency: {module}",
            0.9,
            _bash("Install missing dependency", f"pnpm add {module}"),
        ),
    ),
    FixRule(
        name="timeout",
        matcher=_match_timeout,
        builder=lambda _, url: _suggestion(
            "Increase timeout or check network connectivity",
            0.7,
            _bash("Check if service is running"),
        ),
    ),
    FixRule(
        name="hydration_mismatch",
        matcher=_contains("hydration", "did not match. server:", "text content does not match server-rendered"),
        builder=lambda _, url: _suggestion(
            "Make server and client render identical markup (move browser-only values into useEffect)",
            0.75,
            _edit("Defer client-only values (Date.now(), window, Math.random()) until after mount"),
        ),
    ),
    FixRule(
        name="cors",
        matcher=_contains("cors", "access-control-allow-origin"),
        builder=lambda _, url: _suggestion(
            f"Allow the origin of {url} in the API's CORS configuration",
            0.8,
            _edit("Add the page origin to the server's Access-Control-Allow-Origin list"),
        ),
    ),
    FixRule(
        name="out_of_memory",
        matcher=_contains("out of memory", "heap"),
        builder=lambda _, url: _suggestion(
            "Increase the Node.js heap size or reduce memory usage",
            0.6,
            _bash("Raise the heap limit for the build", "export NODE_OPTIONS=--max-old-space-size=4096"),
        ),
    ),
    FixRule(
        name="missing_env_var",
        matcher=_match_missing_env,
        builder=lambda name, url: FixSuggestion(
            description=f"Define missing environment variable: {name}",
            confidence=0.85,
            operations=[
                FixOperation(
                    type=FixOperationType.CREATE,
                    file=".env.local",
                    new_string=f"{name}=",
                    description="Add the variable to the local environment file",
                ),
            ],
        ),
    ),
    FixRule(
        name="null_access",
        matcher=_contains(
            "cannot read properties of undefined",
            "cannot read properties of null",
            "cannot read property",
            "is undefined",
            "is null",
        ),
        builder=lambda _, url: _suggestion(
            "Guard the access with optional chaining or a null check",
            0.65,
            _edit("Replace obj.prop with obj?.prop and provide a fallback value"),
        ),
    ),
    FixRule(
        name="invalid_hook_call",
        matcher=_contains("invalid hook call", "rendered more hooks", "rendered fewer hooks"),
        builder=lambda _, url: _suggestion(
            "Call hooks unconditionally at the top level of a function component",
            0.7,
            _edit("Move hook calls out of conditions, loops and nested functions"),
        ),
    ),
    FixRule(
        name="indentation_lint",
        matcher=_contains("expected indentation", "indentation"),
        builder=lambda _, url: _suggestion(
            "Fix indentation with the project's linter",
            0.85,
            _bash("Auto-fix lint errors", "npx eslint --fix ."),
        ),
    ),
    FixRule(
        name="type_assignability",
        matcher=_contains("is not assignable to type"),
        builder=lambda _, url: _suggestion(
            "Align the value with the declared type or widen the type annotation",
            0.6,
            _edit("Update the type annotation or convert the value"),
        ),
    ),
    FixRule(
        name="unique_constraint",
        matcher=_contains("unique constraint", "duplicate key"),
        builder=lambda _, url: _suggestion(
            "Check for an existing record before insert or use an upsert",
            0.6,
            _edit("Replace the insert with an upsert keyed on the unique column"),
        ),
    ),
    FixRule(
        name="n_plus_one_query",
        matcher=_contains("n+1", "n + 1 query"),
        builder=lambda _, url: _suggestion(
            "Batch related queries (eager loading or a data loader)",
            0.7,
            _edit("Load related records in one query instead of one per item"),
        ),
    ),
    FixRule(
        name="connection_refused",
        matcher=_contains("econnrefused", "connection refused", "err_connection_refused"),
        builder=lambda _, url: _suggestion(
            "Start the backend service or fix its host/port configuration",
            0.7,
            _bash("Check if service is running"),
        ),
    ),
    FixRule(
        name="invalid_token",
        matcher=_match_token,
        builder=lambda _, url: _suggestion(
            "Refresh the authentication token (JWT) before retrying the request",
            0.75,
            _edit("Refresh expired tokens and retry once on 401 responses"),
        ),
    ),
    FixRule(
        name="rate_limit",
        matcher=_match_rate_limit,
        builder=lambda _, url: _suggestion(
            "Throttle requests and retry with exponential backoff",
            0.7,
            _edit("Wrap the request in a retry with exponential backoff honouring Retry-After"),
        ),
    ),
    FixRule(
        name="stale_cache",
        matcher=_match_stale_cache,
        builder=lambda _, url: _suggestion(
            "Clear the build cache and rebuild",
            0.8,
            _bash("Remove stale build cache", "rm -rf .next/cache"),
        ),
    ),
    FixRule(
        name="missing_image",
        matcher=_match_missing_image,
        builder=lambda _, url: _suggestion(
            "Add the missing image or fix its path",
            0.75,
            _edit("Point the image src at an existing asset"),
        ),
    ),
    FixRule(
        name="oversized_bundle",
        matcher=_match_bundle_size,
        builder=lambda _, url: _suggestion(
            "Split the bundle with dynamic imports",
            0.6,
            _edit("Load heavy components with dynamic import()"),
        ),
    ),
    FixRule(
        name="missing_list_key",
        matcher=_contains('unique "key" prop', "unique key prop"),
        builder=lambda _, url: _suggestion(
            "Add a stable key prop to list items",
            0.9,
            _edit("Add key={item.id} to the element returned from map()"),
        ),
    ),
    FixRule(
        name="deprecated_api",
        matcher=_contains("deprecated"),
        builder=lambda _, url: _suggestion(
            "Migrate to the replacement API named in the deprecation notice",
            0.5,
            _edit("Replace the deprecated call"),
        ),
    ),
    FixRule(
        name="stack_overflow",
        matcher=_contains("maximum call stack size exceeded", "too much recursion", "stack overflow"),
        builder=lambda _, url: _suggestion(
            "Add a base case or break the update cycle causing infinite recursion",
            0.7,
            _edit("Stop the recursive call or the effect that re-triggers itself"),
        ),
    ),
)


def suggest_fix(message: str, url: str, rules: tuple[FixRule, ...] = FIX_RULES) -> Optional[FixSuggestion]:
    """Return the suggestion of the first rule matching ``message``, if any."""
    for rule in rules:
        suggestion = rule.apply(message, url)
        if suggestion is not None:
            return suggestion
    return None


def matching_rule(message: str, rules: tuple[FixRule, ...] = FIX_RULES) -> Optional[FixRule]:
    """Return the first rule whose matcher accepts ``message``."""
    lowered = message.lower()
    for rule in rules:
        if rule.matcher(message, lowered):
            return rule
    return None
