"""Turn failed API calls into exactly one ``ApiError`` subclass.

Rules for non-2xx responses, first match wins:

1. 401/403 sent without a token: ``AuthRequiredError``.
2. 403 whose ``X-Accepted-OAuth-Scopes`` lists a scope the token lacks:
   ``MissingScopeError`` naming the lexicographically first missing scope.
3. 403/429 carrying a rate limit reset (or ``Retry-After``):
   ``RateLimitedError``. An unparsable reset falls through to rule 4.
4. Anything else: ``HttpError`` with the best-effort body message.

Failures before a response exist become ``TransportError``; 2xx bodies
that don't decode become ``DecodeError``.
"""

import json
import logging
from collections.abc import Mapping
from datetime import datetime

import httpx

from ghc_api.errors import (
    ApiError,
    AuthRequiredError,
    DecodeError,
    HttpError,
    MissingScopeError,
    RateLimitedError,
    TransportError,
)
from ghc_api.github.ratelimit import RATELIMIT_REMAINING, RATELIMIT_RESET, RETRY_AFTER, parse_reset, parse_retry_after
from ghc_api.github.scopes import first_missing_scope, parse_scopes

logger = logging.getLogger(__name__)

ACCEPTED_SCOPES_HEADER = "x-accepted-oauth-scopes"
TOKEN_SCOPES_HEADER = "x-oauth-scopes"
SSO_HEADER = "x-github-sso"


def error_message(body: bytes | str | None) -> str:
    """Best-effort human message from an error body.

    Prefers the JSON ``message`` field, then the raw text. Empty or
    unreadable bodies give an empty string.
    """
    if not body:
        return ""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    text = text.strip()
    try:
        payload = json.loads(text)
    except ValueError:
        return text
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return text


def _rate_limit_reset(status: int, headers: httpx.Headers, now: datetime | None) -> tuple[bool, datetime | None]:
    """Return (is_rate_limit_response, reset_at)."""
    if status not in (403, 429):
        return False, None

    if RATELIMIT_RESET in headers:
        # a 403 with quota left is a permission problem, not a rate limit
        if status == 403 and headers.get(RATELIMIT_REMAINING, "0").strip() != "0":
            return _retry_after(headers, now)
        return True, parse_reset(headers[RATELIMIT_RESET])

    return _retry_after(headers, now)


def _retry_after(headers: httpx.Headers, now: datetime | None) -> tuple[bool, datetime | None]:
    if RETRY_AFTER not in headers:
        return False, None
    return True, parse_retry_after(headers[RETRY_AFTER], now)


def classify_response(
    status: int,
    headers: Mapping[str, str],
    body: bytes | str | None,
    *,
    host: str,
    token_resolved: bool,
    token_scopes: list[str] | None = None,
    url: str = "",
    now: datetime | None = None,
) -> ApiError:
    """Classify a non-2xx response.

    Args:
        status: HTTP status code.
        headers: Response headers.
        body: Raw response body.
        host: Host the request was issued for.
        token_resolved: Whether a token was attached to the request.
        token_scopes: Scopes the token is known to carry. When None they
            are read from ``X-OAuth-Scopes``.
        url: Request URL, for the error message.
        now: Reference time for ``Retry-After``.

    Returns:
        The single matching ApiError.
    """
    hdrs = headers if isinstance(headers, httpx.Headers) else httpx.Headers(dict(headers))
    sso = hdrs.get(SSO_HEADER)

    if status in (401, 403) and not token_resolved:
        return AuthRequiredError(host, sso_header=sso)

    if status == 403:
        required = parse_scopes(hdrs.get(ACCEPTED_SCOPES_HEADER))
        granted = token_scopes if token_scopes is not None else parse_scopes(hdrs.get(TOKEN_SCOPES_HEADER))
        # tokens that report no scopes can't be checked
        if required and granted:
            scope = first_missing_scope(required, granted)
            if scope is not None:
                return MissingScopeError(scope, host, sso_header=sso)

    limited, reset_at = _rate_limit_reset(status, hdrs, now)
    if limited:
        if reset_at is not None:
            return RateLimitedError(reset_at, sso_header=sso)
        logger.debug("Rate limit response with unparsable reset for %s", url or host)

    return HttpError(status, error_message(body), dict(hdrs), url=url, sso_header=sso)


def classify_request_error(exc: httpx.RequestError) -> TransportError:
    """Connection, TLS and timeout failures."""
    return TransportError(exc)


def classify_decode_error(exc: Exception) -> DecodeError:
    return DecodeError(exc)
