"""Rate limit header parsing."""

import logging
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

RATELIMIT_LIMIT = "x-ratelimit-limit"
RATELIMIT_REMAINING = "x-ratelimit-remaining"
RATELIMIT_RESET = "x-ratelimit-reset"
RATELIMIT_USED = "x-ratelimit-used"
RATELIMIT_RESOURCE = "x-ratelimit-resource"
RETRY_AFTER = "retry-after"


def parse_reset(value: str | None) -> datetime | None:
    """Parse an epoch-seconds reset header. Returns None when unparsable."""
    if value is None:
        return None
    try:
        timestamp = int(value.strip())
        return datetime.fromtimestamp(timestamp, tz=UTC)
    except (ValueError, OverflowError, OSError):
        logger.debug("Ignoring unparsable rate limit reset %r", value)
        return None


def parse_retry_after(value: str | None, now: datetime | None = None) -> datetime | None:
    """Convert a ``Retry-After`` delay in seconds into an absolute time."""
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return (now or datetime.now(UTC)) + timedelta(seconds=seconds)


def _int_header(headers: Mapping[str, str], name: str) -> int | None:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


class RateLimitInfo(BaseModel):
    """GitHub API rate limit information from response headers."""

    limit: int
    remaining: int
    reset: datetime
    used: int = 0
    resource: str = "core"

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["RateLimitInfo"]:
        """Extract rate limit info from response headers.

        Args:
            headers: Response headers (case-insensitive mapping such as
                ``httpx.Headers``).

        Returns:
            RateLimitInfo if the headers are present and well formed, None otherwise.
        """
        limit = _int_header(headers, RATELIMIT_LIMIT)
        remaining = _int_header(headers, RATELIMIT_REMAINING)
        reset = parse_reset(headers.get(RATELIMIT_RESET))
        if limit is None or remaining is None or reset is None:
            return None

        return cls(
            limit=limit,
            remaining=remaining,
            reset=reset,
            used=_int_header(headers, RATELIMIT_USED) or 0,
            resource=headers.get(RATELIMIT_RESOURCE, "core"),
        )

    @property
    def is_exhausted(self) -> bool:
        return self.remaining == 0
