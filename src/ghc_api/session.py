"""Account management on top of the credential store and transport.

``AuthSession`` owns one CredentialStore, TokenResolver and TransportClient
and implements login, logout, switch, status, token and refresh.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from ghc_api.auth.backends import KeyringBackend
from ghc_api.auth.credentials import Account, Credential, StoredWhere, TokenSource
from ghc_api.auth.device_flow import CodeCallback, DeviceAuthFlow
from ghc_api.auth.hosts import YamlHostsConfig
from ghc_api.auth.resolver import TokenResolver
from ghc_api.auth.store import CredentialStore
from ghc_api.config import Config
from ghc_api.errors import (
    AccountSelectionError,
    ApiError,
    AuthRequiredError,
    CredentialError,
    CredentialNotFoundError,
    MissingScopeError,
    TokenNotWriteableError,
)
from ghc_api.github.http import TransportClient
from ghc_api.github.scopes import check_minimum_scopes, expects_scopes
from ghc_api.instance import normalize_hostname

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    host: str
    username: str
    stored: StoredWhere
    scopes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class LogoutResult:
    host: str
    username: str
    switched_to: str | None = None


@dataclass
class AccountStatus:
    """One row of ``ghc auth status``."""

    host: str
    username: str
    active: bool
    source: TokenSource | None
    origin: str = ""
    masked_token: str = ""
    scopes: list[str] = field(default_factory=list)
    missing_scopes: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _merge_scopes(*groups: list[str]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for scope in group:
            if scope and scope not in merged:
                merged.append(scope)
    return merged


class AuthSession:
    """Session-scoped owner of credential state and the HTTP client."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        store: CredentialStore | None = None,
        environ: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the session.

        Args:
            config: Loaded configuration; defaults when omitted.
            store: Credential store. Defaults to hosts.yml in the config
                directory plus the OS keyring.
            environ: Environment mapping for token and host variables.
            transport: Custom httpx transport, mainly for tests.
            clock: Monotonic clock for device flow expiry.
            sleep: Sleep used between device flow polls.
        """
        self.config = config or Config()
        self.store = store or CredentialStore(
            YamlHostsConfig(self.config.hosts_path()),
            KeyringBackend(self.config.storage.keyring_service_prefix),
        )
        self._environ = environ
        self.resolver = TokenResolver(self.store, self.config.env, environ=environ)
        self.client = TransportClient(self.resolver, self.config.http, transport=transport)
        self._clock = clock
        self._sleep = sleep

    def host(self, host: str | None = None) -> str:
        """Normalize ``host`` or fall back to the default host."""
        if host:
            return normalize_hostname(host)
        return self.config.effective_default_host(self._environ)

    def new_device_flow(self) -> DeviceAuthFlow:
        return DeviceAuthFlow(self.client, self.config.oauth, clock=self._clock, sleep=self._sleep)

    def _ensure_writeable(self, host: str) -> None:
        credential = self.resolver.env_credential(host)
        if credential is not None and not credential.is_writeable:
            raise TokenNotWriteableError(credential.origin)

    async def _store_and_activate(
        self, host: str, username: str, credential: Credential, prefer_secure: bool | None
    ) -> StoredWhere:
        secure = self.config.storage.prefer_secure if prefer_secure is None else prefer_secure
        account = Account(host, username)
        where = await asyncio.to_thread(self.store.store, account, credential, secure)
        await asyncio.to_thread(self.store.set_active, account)
        return where

    async def login_with_device_flow(
        self,
        host: str | None = None,
        scopes: list[str] | None = None,
        on_code: CodeCallback | None = None,
        prefer_secure: bool | None = None,
        *,
        flow: DeviceAuthFlow | None = None,
    ) -> LoginResult:
        """Log in interactively. Nothing is stored unless the flow succeeds.

        Args:
            host: Host to authenticate with.
            scopes: Scopes requested in addition to the default ones.
            on_code: Called with the device session so the user code can be shown.
            prefer_secure: Override for the configured storage preference.
            flow: Flow instance to drive, so callers can cancel it.

        Raises:
            TokenNotWriteableError: If an environment token overrides storage.
            DeviceFlowError: If the flow is cancelled, expires or fails.
        """
        host = self.host(host)
        self._ensure_writeable(host)
        requested = _merge_scopes(self.config.oauth.default_scopes, scopes or [])
        flow = flow or self.new_device_flow()
        result = await flow.run(host, requested, on_code)
        where = await self._store_and_activate(host, result.username, result.credential, prefer_secure)
        logger.info("Logged in to %s as %s", host, result.username)
        return LoginResult(host, result.username, where, result.scopes)

    async def login_with_token(
        self, host: str | None, token: str, prefer_secure: bool | None = None
    ) -> LoginResult:
        """Store a token obtained elsewhere after checking it works.

        Raises:
            ValueError: If the token is empty.
            MissingScopeError: If a classic token lacks the minimum scopes.
            ApiError: If the token can't be validated.
        """
        host = self.host(host)
        token = token.strip()
        if not token:
            msg = "token cannot be empty"
            raise ValueError(msg)
        self._ensure_writeable(host)

        credential = Credential.from_token(token, origin="login")
        scopes = await self.client.token_scopes(host, credential)
        missing = check_minimum_scopes(scopes) if expects_scopes(token) else []
        if missing:
            raise MissingScopeError(missing[0], host)
        username = await self.client.current_login(host, credential)
        where = await self._store_and_activate(host, username, credential, prefer_secure)
        return LoginResult(host, username, where, scopes)

    async def logout(self, host: str | None = None, username: str | None = None) -> LogoutResult:
        """Remove an account. If it was active, another remaining account takes over.

        Raises:
            TokenNotWriteableError: If an environment token is in use.
            AuthRequiredError: If no account is stored for the host.
            CredentialNotFoundError: If the named account isn't stored.
        """
        host = self.host(host)
        self._ensure_writeable(host)

        accounts = await asyncio.to_thread(self.store.list_accounts, host)
        if not accounts:
            raise AuthRequiredError(host)
        active = await asyncio.to_thread(self.store.active_user, host)
        if username is None:
            if active is None:
                raise AccountSelectionError(host, accounts)
            username = active
        elif username not in accounts:
            raise CredentialNotFoundError(host, username)

        await asyncio.to_thread(self.store.delete, Account(host, username))

        switched_to = None
        remaining = [name for name in accounts if name != username]
        if username == active and remaining:
            switched_to = remaining[0]
            await asyncio.to_thread(self.store.set_active, Account(host, switched_to))
            logger.info("Switched active account for %s to %s", host, switched_to)
        return LogoutResult(host, username, switched_to)

    async def switch_user(self, host: str | None = None, username: str | None = None) -> str:
        """Make another stored account active and return its username.

        With no username and exactly two accounts, the inactive one is chosen.

        Raises:
            TokenNotWriteableError: If an environment token is in use.
            AuthRequiredError: If no account is stored for the host.
            AccountSelectionError: If the target account is ambiguous.
            CredentialNotFoundError: If the named account isn't stored.
        """
        host = self.host(host)
        self._ensure_writeable(host)

        accounts = await asyncio.to_thread(self.store.list_accounts, host)
        if not accounts:
            raise AuthRequiredError(host)
        active = await asyncio.to_thread(self.store.active_user, host)

        if username is None:
            others = [name for name in accounts if name != active]
            if len(others) != 1:
                raise AccountSelectionError(host, accounts)
            username = others[0]
        elif username not in accounts:
            raise CredentialNotFoundError(host, username)

        await asyncio.to_thread(self.store.set_active, Account(host, username))
        return username

    async def token(self, host: str | None = None, username: str | None = None) -> Credential:
        """Active token for ``host``, or the token of a named account."""
        host = self.host(host)
        if username:
            return await asyncio.to_thread(self.store.load, Account(host, username))
        return await asyncio.to_thread(self.resolver.active_token, host)

    async def _active_status(self, host: str, row: AccountStatus, credential: Credential) -> None:
        try:
            row.scopes = await self.client.token_scopes(host, credential)
            row.missing_scopes = check_minimum_scopes(row.scopes)
        except ApiError as e:
            row.error = str(e)

    async def status(self, host: str | None = None) -> list[AccountStatus]:
        """Describe every known account, validating active tokens against the API.

        Raises:
            AuthRequiredError: If ``host`` is given and nothing is known for it.
        """
        hosts = [self.host(host)] if host else await asyncio.to_thread(self.store.hosts)
        if not host:
            default = self.host()
            if default not in hosts and self.resolver.env_credential(default):
                hosts.append(default)

        rows: list[AccountStatus] = []
        for h in hosts:
            env = self.resolver.env_credential(h)
            if env is not None:
                row = AccountStatus(h, "", True, TokenSource.ENVIRONMENT, env.origin, env.masked())
                try:
                    row.username = await self.client.current_login(h, env)
                except ApiError as e:
                    row.error = str(e)
                else:
                    await self._active_status(h, row, env)
                rows.append(row)

            active = await asyncio.to_thread(self.store.active_user, h)
            for username in await asyncio.to_thread(self.store.list_accounts, h):
                is_active = env is None and username == active
                try:
                    credential = await asyncio.to_thread(self.store.load, Account(h, username))
                except CredentialError as e:
                    rows.append(AccountStatus(h, username, is_active, None, error=str(e)))
                    continue
                row = AccountStatus(
                    h, username, is_active, credential.source, credential.origin, credential.masked()
                )
                if is_active:
                    await self._active_status(h, row, credential)
                rows.append(row)

        if host and not rows:
            raise AuthRequiredError(self.host(host))
        return rows

    async def refresh(
        self,
        host: str | None = None,
        scopes: list[str] | None = None,
        on_code: CodeCallback | None = None,
        *,
        reset_scopes: bool = False,
        flow: DeviceAuthFlow | None = None,
    ) -> LoginResult:
        """Re-authorize the host, keeping the current token's scopes.

        Requests the union of the current scopes (unless ``reset_scopes``),
        the default scopes and ``scopes``.
        """
        host = self.host(host)
        self._ensure_writeable(host)

        current: list[str] = []
        if not reset_scopes:
            credential = await asyncio.to_thread(self.resolver.try_active_token, host)
            if credential is not None:
                try:
                    current = await self.client.token_scopes(host, credential)
                except ApiError as e:
                    logger.debug("Could not read current scopes for %s: %s", host, e)

        requested = _merge_scopes(current, self.config.oauth.default_scopes, scopes or [])
        flow = flow or self.new_device_flow()
        result = await flow.run(host, requested, on_code)
        where = await self._store_and_activate(host, result.username, result.credential, None)
        return LoginResult(host, result.username, where, result.scopes)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "AuthSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
