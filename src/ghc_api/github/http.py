"""GitHub HTTP transport.

Async client for REST and GraphQL calls that signs each request with the
host's active token, follows Link pagination and raises classified
``ApiError`` subclasses for every failure.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Generator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from ghc_api import __version__
from ghc_api.auth.credentials import Credential
from ghc_api.auth.resolver import TokenResolver
from ghc_api.config import HttpConfig
from ghc_api.errors import ApiError
from ghc_api.github.classify import (
    SSO_HEADER,
    TOKEN_SCOPES_HEADER,
    classify_decode_error,
    classify_request_error,
    classify_response,
)
from ghc_api.github.graphql import VIEWER_LOGIN_QUERY, ViewerLogin, build_payload, features_header, split_body
from ghc_api.github.ratelimit import RateLimitInfo
from ghc_api.github.rest import Page, next_page_url
from ghc_api.github.scopes import parse_scopes
from ghc_api.instance import api_host, graphql_url, host_from_url, rest_url

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_sso_url(header: str | None) -> str | None:
    """Extract the authorization URL from an ``X-GitHub-SSO`` header.

    The header looks like ``required; url=https://github.com/orgs/...``.
    """
    if not header:
        return None
    for part in header.split(";"):
        key, _, value = part.strip().partition("=")
        if key == "url" and value:
            return value
    return None


def _is_json(response: httpx.Response) -> bool:
    """True unless the response declares a non-JSON content type."""
    content_type = response.headers.get("content-type")
    if not content_type:
        return True
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


@dataclass
class ApiResponse(Generic[T]):
    """Successful API response with decoded data and metadata."""

    status_code: int
    data: T
    headers: httpx.Headers = field(repr=False)
    url: str = ""
    sso_header: str | None = None
    rate_limit: RateLimitInfo | None = None

    @property
    def is_success(self) -> bool:
        """Check if response was successful (2xx status code)."""
        return 200 <= self.status_code < 300

    @property
    def scopes(self) -> list[str]:
        """Scopes reported for the token that made the request."""
        return parse_scopes(self.headers.get(TOKEN_SCOPES_HEADER))

    @property
    def sso_url(self) -> str | None:
        return parse_sso_url(self.sso_header)


class TokenAuth(httpx.Auth):
    """Adds ``Authorization: token ...`` to requests for the API hosts.

    Requests that already carry an Authorization header are left alone.
    httpx drops the header on cross-origin redirects and does not run the
    auth flow again for them.
    """

    def __init__(self, token: str | None, hosts: set[str]) -> None:
        self._token = token
        self._hosts = hosts

    def applies_to(self, request: httpx.Request) -> bool:
        return (
            self._token is not None
            and request.url.host.lower() in self._hosts
            and "authorization" not in request.headers
        )

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self.applies_to(request):
            request.headers["Authorization"] = f"token {self._token}"
        yield request


class TransportClient:
    """Async HTTP client for GitHub REST and GraphQL APIs.

    Features:
    - Per-request token resolution (a rotated token applies on the next call)
    - Signing restricted to the target host's API endpoints
    - Lazy Link header pagination
    - Failures classified into ``ApiError`` subclasses

    One instance may be shared by concurrent tasks.
    """

    def __init__(
        self,
        resolver: TokenResolver | None = None,
        http_config: HttpConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize transport client.

        Args:
            resolver: Token resolver consulted before every request. Without
                one, requests are sent unauthenticated unless they carry an
                explicit Authorization header.
            http_config: Timeout, GraphQL features and User-Agent settings.
            transport: Custom httpx transport, mainly for tests.
        """
        self._resolver = resolver
        self._config = http_config or HttpConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def user_agent(self) -> str:
        return self._config.user_agent or f"GHC CLI {__version__}"

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": self.user_agent,
        }

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure async client is initialized.

        Returns:
            Active httpx.AsyncClient instance.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout,
                headers=self._get_headers(),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _resolve(self, host: str) -> Credential | None:
        if self._resolver is None:
            return None
        # keyring lookups may block on an OS unlock prompt
        return await asyncio.to_thread(self._resolver.try_active_token, host)

    @staticmethod
    def _signing_hosts(host: str) -> set[str]:
        return {api_host(host)}

    @staticmethod
    def _url(host: str, path: str) -> str:
        if host_from_url(path) is not None:
            return path
        return rest_url(host) + path.lstrip("/")

    async def _send(
        self,
        host: str,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        token_scopes: list[str] | None = None,
        timeout: float | None = None,
        authenticate: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute one request and classify any failure.

        Raises:
            ApiError: The classified failure.
        """
        client = await self._ensure_client()
        request_headers = dict(headers or {})
        explicit = any(name.lower() == "authorization" for name in request_headers)
        credential = None if explicit or not authenticate else await self._resolve(host)
        auth = TokenAuth(credential.expose() if credential else None, self._signing_hosts(host))

        logger.debug("%s %s", method, url)
        try:
            response = await client.request(
                method,
                url,
                headers=request_headers,
                auth=auth,
                timeout=timeout if timeout is not None else self._config.timeout,
                **kwargs,
            )
        except httpx.RequestError as e:
            logger.debug("Request to %s failed: %s", url, e)
            raise classify_request_error(e) from e

        if not response.is_success:
            error = classify_response(
                response.status_code,
                response.headers,
                response.content,
                host=host,
                token_resolved="authorization" in response.request.headers,
                token_scopes=token_scopes,
                url=str(response.url),
            )
            logger.debug("%s %s -> %s (%s)", method, url, response.status_code, error.kind.value)
            raise error
        return response

    @staticmethod
    def _decode(response: httpx.Response, model: Any = None, *, allow_text: bool = False) -> Any:
        """Decode a 2xx body, optionally validating it against ``model``.

        With ``allow_text`` and no ``model``, a body whose content type is
        declared as something other than JSON (``application/vnd.github.raw``,
        diffs, patches) is returned as text.

        Raises:
            DecodeError: If the body isn't JSON or doesn't match ``model``.
        """
        if allow_text and model is None and not _is_json(response):
            return response.text
        data: Any = None
        if response.content:
            try:
                data = response.json()
            except ValueError as e:
                raise classify_decode_error(e) from e
        if model is None:
            return data
        try:
            return TypeAdapter(model).validate_python(data)
        except ValidationError as e:
            raise classify_decode_error(e) from e

    @staticmethod
    def _wrap(response: httpx.Response, data: Any) -> ApiResponse[Any]:
        return ApiResponse(
            status_code=response.status_code,
            data=data,
            headers=response.headers,
            url=str(response.url),
            sso_header=response.headers.get(SSO_HEADER),
            rate_limit=RateLimitInfo.from_headers(response.headers),
        )

    async def rest(
        self,
        host: str,
        method: str,
        path: str,
        body: Any = None,
        *,
        model: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        token_scopes: list[str] | None = None,
    ) -> ApiResponse[Any]:
        """Make a REST request.

        Args:
            host: Target host, e.g. ``github.com``.
            method: HTTP method.
            path: Path relative to the host's REST root, or an absolute URL.
            body: JSON body.
            model: Type the response body is validated into.
            params: Query parameters.
            headers: Extra headers. An explicit Authorization header
                replaces the resolved token.
            timeout: Per-call timeout in seconds.
            token_scopes: Known token scopes for missing-scope detection.

        Returns:
            ApiResponse with decoded data, or the body text when the
            response is declared as something other than JSON.

        Raises:
            ApiError: Classified failure.
        """
        response = await self._send(
            host,
            method.upper(),
            self._url(host, path),
            headers=headers,
            token_scopes=token_scopes,
            timeout=timeout,
            json=body,
            params=params,
        )
        return self._wrap(response, self._decode(response, model, allow_text=True))

    async def rest_paginated(
        self,
        host: str,
        method: str,
        path: str,
        body: Any = None,
        *,
        model: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[Page[Any]]:
        """Paginate through API results following Link headers.

        Each page is fetched when the consumer advances. The iterator is
        single-use: once exhausted it yields nothing, and a fresh call is
        needed to iterate again.

        Yields:
            One Page per response.
        """
        url: str | None = self._url(host, path)
        first = True
        while url is not None:
            response = await self._send(
                host,
                method.upper(),
                url,
                headers=headers,
                timeout=timeout,
                json=body if first else None,
                params=params if first else None,
            )
            next_url = next_page_url(response.headers)
            yield Page(
                data=self._decode(response, model, allow_text=True),
                url=str(response.url),
                next_url=next_url,
                headers=response.headers,
                sso_header=response.headers.get(SSO_HEADER),
            )
            url = next_url
            first = False

    async def graphql(
        self,
        host: str,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        model: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> ApiResponse[Any]:
        """Execute a GraphQL query as a single POST.

        Partial data returned alongside errors is accepted when it validates;
        the errors are logged.

        Raises:
            GraphQLError: If the response has errors and no data.
            ApiError: Other classified failures.
        """
        request_headers = features_header(self._config.graphql_features)
        request_headers.update(headers or {})
        response = await self._send(
            host,
            "POST",
            graphql_url(host),
            headers=request_headers,
            timeout=timeout,
            json=build_payload(query, variables),
        )
        sso = response.headers.get(SSO_HEADER)
        try:
            data, errors = split_body(self._decode(response), response.status_code, dict(response.headers))
        except ApiError as e:
            e.sso_header = sso
            raise
        if errors:
            logger.warning("GraphQL returned partial data: %s", "; ".join(str(err.get("message")) for err in errors))
        if model is not None:
            try:
                data = TypeAdapter(model).validate_python(data)
            except ValidationError as e:
                raise classify_decode_error(e) from e
        return self._wrap(response, data)

    async def post_form(
        self,
        host: str,
        url: str,
        data: dict[str, str],
        *,
        timeout: float | None = None,
    ) -> ApiResponse[Any]:
        """POST a form to a non-API endpoint (OAuth) and decode the JSON reply.

        No token is attached.
        """
        response = await self._send(
            host,
            "POST",
            url,
            headers={"Accept": "application/json"},
            timeout=timeout,
            authenticate=False,
            data=data,
        )
        return self._wrap(response, self._decode(response))

    async def current_login(self, host: str, credential: Credential | None = None) -> str:
        """Username of the identity behind ``credential`` (or the active token)."""
        headers = {"Authorization": f"token {credential.expose()}"} if credential else None
        response = await self.graphql(host, VIEWER_LOGIN_QUERY, model=ViewerLogin, headers=headers)
        return response.data.viewer.login

    async def token_scopes(self, host: str, credential: Credential | None = None) -> list[str]:
        """Scopes of ``credential`` (or the active token), from ``GET /``."""
        headers = {"Authorization": f"token {credential.expose()}"} if credential else None
        response = await self.rest(host, "GET", "", headers=headers)
        return response.scopes

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TransportClient":
        """Async context manager entry."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
