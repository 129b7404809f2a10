"""REST helpers: Link header pagination."""

import re
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import httpx

T = TypeVar("T")

_LINK_PART = re.compile(r'<([^>]+)>;\s*rel="([^"]+)"')


def parse_link_header(link_header: str | None) -> dict[str, str]:
    """Parse Link header to extract pagination URLs.

    Args:
        link_header: Link header value from response.

    Returns:
        Dict mapping rel type to URL (e.g., {"next": "url", "last": "url"}).
    """
    if not link_header:
        return {}

    links = {}
    # Link header format: <url>; rel="next", <url>; rel="last"
    for part in link_header.split(","):
        match = _LINK_PART.match(part.strip())
        if match:
            url, rel = match.groups()
            links[rel] = url

    return links


def next_page_url(headers: httpx.Headers) -> str | None:
    return parse_link_header(headers.get("link")).get("next")


@dataclass
class Page(Generic[T]):
    """One page of a paginated REST listing."""

    data: T
    url: str
    next_url: str | None = None
    headers: httpx.Headers = field(default_factory=httpx.Headers, repr=False)
    sso_header: str | None = None

    @property
    def has_next(self) -> bool:
        return self.next_url is not None
