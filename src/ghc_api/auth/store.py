"""Multi-account credential storage over a secure backend and hosts.yml.

Each account keeps its own slot:
- secure backend key ``(host, username)``, or
- ``users.<username>.oauth_token`` in hosts.yml when stored insecurely.

The host's active slot, read by the token resolver, is the secure key
``(host, None)`` or the top-level ``oauth_token`` in hosts.yml, and the
top-level ``user`` names the active account.
"""

import logging
import threading

from ghc_api.auth.backends import SecureBackend, SecureKey
from ghc_api.auth.credentials import Account, Credential, StoredWhere, TokenSource
from ghc_api.auth.hosts import HostEntry, HostsConfig
from ghc_api.errors import BackendUnavailableError, CredentialNotFoundError
from ghc_api.instance import normalize_hostname

logger = logging.getLogger(__name__)


class CredentialStore:
    """Durable token storage supporting several accounts per host.

    Writers to the same account (and to the same host's active slot) are
    serialized with per-slot locks; reads take no locks.
    """

    def __init__(self, hosts: HostsConfig, secure: SecureBackend | None = None) -> None:
        self._hosts = hosts
        self._secure = secure
        self._locks: dict[tuple[str, str | None], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def hosts_config(self) -> HostsConfig:
        return self._hosts

    def _lock(self, host: str, username: str | None = None) -> threading.Lock:
        key = (normalize_hostname(host), username)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def store(self, account: Account, credential: Credential, prefer_secure: bool = True) -> StoredWhere:
        """Persist ``credential`` in the account's own slot.

        When the account is the host's active one, the active slot is
        rewritten too, so the resolver sees the new token right away.

        Falls back to hosts.yml only when the secure backend is unavailable;
        write failures propagate.
        """
        token = credential.expose()
        with self._lock(account.host, account.username), self._lock(account.host):
            is_active = self.active_user(account.host) == account.username

            if prefer_secure and self._secure is not None:
                try:
                    self._secure.set(SecureKey(account.host, account.username), token)
                    if is_active:
                        self._secure.set(SecureKey(account.host), token)
                except BackendUnavailableError as e:
                    logger.warning(
                        "Secure storage unavailable (%s); storing %s in plain text at %s",
                        e.reason,
                        account,
                        self._hosts.location,
                    )
                else:

                    def register_secure(entry: HostEntry) -> None:
                        _register_user(entry, account.username, None)
                        if is_active:
                            entry.pop("oauth_token", None)

                    self._hosts.edit(account.host, register_secure)
                    logger.info("Stored credential for %s in %s", account, self._secure.name)
                    return StoredWhere.SECURE_STORE

            def register_plain(entry: HostEntry) -> None:
                _register_user(entry, account.username, token)
                if is_active:
                    entry["oauth_token"] = token

            self._hosts.edit(account.host, register_plain)
            self._discard_secure(SecureKey(account.host, account.username))
            if is_active:
                self._discard_secure(SecureKey(account.host))
            logger.info("Stored credential for %s in %s", account, self._hosts.location)
            return StoredWhere.CONFIG_FILE

    def load(self, account: Account) -> Credential:
        """Return the account's credential, tagged with the backend it came from.

        Raises:
            CredentialNotFoundError: If no credential exists for that account.
        """
        token = self._secure_get(SecureKey(account.host, account.username))
        if token:
            return Credential.from_token(token, TokenSource.SECURE_STORE, self._secure_name)

        token = self._hosts.get(account.host, f"users.{account.username}.oauth_token")
        if token:
            return Credential.from_token(token, TokenSource.CONFIG_FILE, self._hosts.location)

        # Files written before per-user slots existed only carry the active slot
        if self.active_user(account.host) == account.username:
            token = self._secure_get(SecureKey(account.host))
            if token:
                return Credential.from_token(token, TokenSource.SECURE_STORE, self._secure_name)
            token = self._hosts.get(account.host, "oauth_token")
            if token:
                return Credential.from_token(token, TokenSource.CONFIG_FILE, self._hosts.location)

        raise CredentialNotFoundError(account.host, account.username)

    def delete(self, account: Account) -> None:
        """Remove the account's credential. Absent credentials are not an error."""
        with self._lock(account.host, account.username), self._lock(account.host):
            was_active = self.active_user(account.host) == account.username
            self._discard_secure(SecureKey(account.host, account.username))
            if was_active:
                self._discard_secure(SecureKey(account.host))

            def apply(entry: HostEntry) -> None:
                users = entry.get("users")
                if isinstance(users, dict):
                    users.pop(account.username, None)
                    if not users:
                        entry.pop("users")
                if was_active:
                    entry.pop("user", None)
                    entry.pop("oauth_token", None)
                if set(entry) <= {"git_protocol"}:
                    entry.clear()

            self._hosts.edit(account.host, apply)
        logger.info("Removed credential for %s", account)

    def list_accounts(self, host: str) -> list[str]:
        """Usernames with a slot on ``host``. Order is for display only."""
        return self._hosts.users(host)

    def hosts(self) -> list[str]:
        return self._hosts.hosts()

    def active_user(self, host: str) -> str | None:
        return self._hosts.get(host, "user")

    def set_active(self, account: Account) -> None:
        """Copy the account's credential into the host's active slot.

        The previously active account keeps its own slot and stays
        addressable by username.

        Raises:
            CredentialNotFoundError: If the account has no stored credential.
        """
        with self._lock(account.host):
            credential = self.load(account)
            token = credential.expose()

            if credential.source is TokenSource.SECURE_STORE and self._secure is not None:
                # The secure slot is written before the plaintext copy goes away,
                # so a concurrent reader sees either the old or the new token.
                self._secure.set(SecureKey(account.host), token)

                def activate_secure(entry: HostEntry) -> None:
                    _register_user(entry, account.username, None)
                    entry["user"] = account.username
                    entry.pop("oauth_token", None)

                self._hosts.edit(account.host, activate_secure)
            else:

                def activate_plain(entry: HostEntry) -> None:
                    _register_user(entry, account.username, token)
                    entry["user"] = account.username
                    entry["oauth_token"] = token

                self._hosts.edit(account.host, activate_plain)
                self._discard_secure(SecureKey(account.host))
        logger.info("Active account for %s is now %s", account.host, account.username)

    def config_token(self, host: str) -> str | None:
        """Plaintext active token from hosts.yml."""
        return self._hosts.get(host, "oauth_token")

    def secure_active_token(self, host: str) -> str | None:
        """Active token from the secure backend, None when absent or unavailable."""
        return self._secure_get(SecureKey(host))

    @property
    def secure_backend_name(self) -> str:
        return self._secure_name

    @property
    def _secure_name(self) -> str:
        return self._secure.name if self._secure is not None else "none"

    def _secure_get(self, key: SecureKey) -> str | None:
        if self._secure is None:
            return None
        try:
            return self._secure.get(key)
        except BackendUnavailableError as e:
            logger.debug("Secure backend unavailable for %s: %s", key.host, e.reason)
            return None

    def _discard_secure(self, key: SecureKey) -> None:
        if self._secure is None:
            return
        try:
            self._secure.delete(key)
        except BackendUnavailableError:
            # nothing can be stored there either
            pass


def _register_user(entry: HostEntry, username: str, token: str | None) -> None:
    users = entry.get("users")
    if not isinstance(users, dict):
        users = entry["users"] = {}
    slot = users.get(username)
    if not isinstance(slot, dict):
        slot = {}
    if token is None:
        slot.pop("oauth_token", None)
    else:
        slot["oauth_token"] = token
    users[username] = slot or None
