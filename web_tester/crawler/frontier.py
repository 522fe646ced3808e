"""
Crawl frontier and link admission policy.

The frontier is a FIFO queue of pending URLs guarded by two sets: URLs
currently queued and URLs already visited. A URL is queued at most once and
visited at most once per run.
"""

import re
from collections import deque
from collections.abc import Iterable
from typing import Optional

import structlog

from web_tester.utils.helpers import origin_of

logger = structlog.get_logger()


def is_same_origin(url: str, base_url: str) -> bool:
    """Check whether two URLs share scheme, host and port.

    A malformed URL is never same-origin.
    """
    try:
        return origin_of(url) == origin_of(base_url)
    except ValueError:
        return False


def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob (``*`` any sequence, ``?`` any character) to a regex.

    The regex is unanchored, so a pattern matches anywhere in the URL.
    """
    regex = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(regex)


class UrlFilter:
    """Include/exclude glob filter. Exclude patterns are checked first."""

    def __init__(self, include: Iterable[str] = (), exclude: Iterable[str] = ()):
        self.include = [compile_glob(p) for p in include]
        self.exclude = [compile_glob(p) for p in exclude]

    def allows(self, url: str) -> bool:
        if any(pattern.search(url) for pattern in self.exclude):
            return False
        if self.include:
            return any(pattern.search(url) for pattern in self.include)
        return True


class LinkPolicy:
    """Decides which discovered links may enter the frontier.

    Args:
        base_url: Seed address defining the crawl origin
        url_filter: Include/exclude glob filter
    """

    def __init__(self, base_url: str, url_filter: Optional[UrlFilter] = None):
        self.base_url = base_url
        self.url_filter = url_filter or UrlFilter()

    def admits(self, url: str) -> bool:
        """Same origin and passes the pattern filter. Malformed URLs are rejected."""
        if not is_same_origin(url, self.base_url):
            return False
        return self.url_filter.allows(url)


class Frontier:
    """FIFO queue of pending URLs plus the visited set."""

    def __init__(self):
        self._queue: deque[str] = deque()
        self._queued: set[str] = set()
        self._visited: set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    @property
    def estimated_total(self) -> int:
        """Visited plus queued; grows as new links are discovered."""
        return len(self._visited) + len(self._queue)

    def is_known(self, url: str) -> bool:
        return url in self._visited or url in self._queued

    def push(self, url: str) -> bool:
        """Queue a URL unless it is already queued or visited."""
        if self.is_known(url):
            return False
        self._queue.append(url)
        self._queued.add(url)
        return True

    def pop(self) -> Optional[str]:
        """Dequeue the next unvisited URL and mark it visited."""
        while self._queue:
            url = self._queue.popleft()
            self._queued.discard(url)
            if url in self._visited:
                continue
            self._visited.add(url)
            return url
        return None

    def ingest(self, links: Iterable[str], policy: LinkPolicy) -> int:
        """Queue every admitted, unseen link. Returns the number queued."""
        added = 0
        for link in links:
            if policy.admits(link) and self.push(link):
                added += 1
        if added:
            logger.debug("Links queued", added=added, queued=len(self._queue))
        return added
