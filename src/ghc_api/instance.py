"""Host handling for github.com, GHE.com tenants and Enterprise Server."""

from urllib.parse import urlparse

GITHUB_COM = "github.com"
LOCALHOST = "github.localhost"
GHE_COM_SUFFIX = ".ghe.com"


def normalize_hostname(host: str) -> str:
    """Strip scheme and trailing slashes, lowercase.

    Raises:
        ValueError: If nothing remains after normalization.
    """
    value = host.strip()
    for prefix in ("https://", "http://"):
        if value.lower().startswith(prefix):
            value = value[len(prefix) :]
            break
    value = value.rstrip("/").lower()
    if not value:
        msg = f"Invalid hostname: {host!r}"
        raise ValueError(msg)
    return value


def is_github_com(host: str) -> bool:
    return normalize_hostname(host) in (GITHUB_COM, LOCALHOST)


def is_ghe_com(host: str) -> bool:
    return normalize_hostname(host).endswith(GHE_COM_SUFFIX)


def is_enterprise(host: str) -> bool:
    """True for Enterprise Server hosts (neither github.com nor a GHE.com tenant)."""
    return not is_github_com(host) and not is_ghe_com(host)


def api_host(host: str) -> str:
    """Hostname that serves the REST and GraphQL APIs for ``host``."""
    normalized = normalize_hostname(host)
    if normalized == GITHUB_COM:
        return "api.github.com"
    if normalized == LOCALHOST:
        # a local instance keeps its token off api.github.com
        return "api.github.localhost"
    if is_ghe_com(normalized):
        return f"api.{normalized}"
    return normalized


def rest_url(host: str) -> str:
    """REST API base URL, always with a trailing slash."""
    normalized = normalize_hostname(host)
    if is_enterprise(normalized):
        return f"https://{normalized}/api/v3/"
    return f"https://{api_host(normalized)}/"


def graphql_url(host: str) -> str:
    normalized = normalize_hostname(host)
    if is_enterprise(normalized):
        return f"https://{normalized}/api/graphql"
    return f"https://{api_host(normalized)}/graphql"


def device_code_url(host: str) -> str:
    return f"https://{normalize_hostname(host)}/login/device/code"


def access_token_url(host: str) -> str:
    return f"https://{normalize_hostname(host)}/login/oauth/access_token"


def host_from_url(url: str) -> str | None:
    """Normalized hostname of an absolute URL, or None for relative paths."""
    parsed = urlparse(url)
    if not parsed.hostname:
        return None
    return parsed.hostname.lower()
