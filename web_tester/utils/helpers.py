"""Small helpers shared across the scanner."""

import secrets
from datetime import UTC, datetime
from urllib.parse import urlsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}

Origin = tuple[str, str, int | None]


def generate_id() -> str:
    """Return a random 16 character hex identifier."""
    return secrets.token_hex(8)


def format_timestamp(moment: datetime | None = None) -> str:
    """Format a moment (default: now) as an ISO-8601 UTC timestamp."""
    moment = moment or datetime.now(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def origin_of(url: str) -> Origin:
    """Return ``(scheme, host, port)`` with default ports made explicit.

    Raises:
        ValueError: If the URL is malformed, has no host or an invalid port
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = parts.hostname
    if not scheme or not host:
        raise ValueError(f"Not an absolute URL: {url!r}")
    port = parts.port or _DEFAULT_PORTS.get(scheme)
    return scheme, host, port
