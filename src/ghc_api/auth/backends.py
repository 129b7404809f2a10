"""Secure credential backends.

The secure backend is the OS credential store reached through ``keyring``.
``MemorySecureBackend`` satisfies the same interface for tests and for
sessions that must never touch the OS store.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import keyring
import keyring.errors
from keyring.backend import KeyringBackend as KeyringBackendBase
from keyring.backends import fail, null

from ghc_api.errors import BackendUnavailableError, WriteFailedError
from ghc_api.instance import normalize_hostname

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecureKey:
    """Composite backend key: a host plus an optional username.

    ``username=None`` addresses the host's active slot.
    """

    host: str
    username: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", normalize_hostname(self.host))

    def service(self, prefix: str) -> str:
        return f"{prefix}:{self.host}"

    @property
    def keyring_username(self) -> str:
        return self.username or ""


class SecureBackend(Protocol):
    """Operations the credential store needs from a secure backend.

    Every method raises ``BackendUnavailableError`` when the backend is
    absent for this platform or session, which is distinct from a missing
    entry (``get`` returns None, ``delete`` is a no-op).
    """

    name: str

    def get(self, key: SecureKey) -> str | None: ...

    def set(self, key: SecureKey, value: str) -> None: ...

    def delete(self, key: SecureKey) -> None: ...


class KeyringBackend:
    """OS keychain via the ``keyring`` library."""

    name = "keyring"

    def __init__(self, service_prefix: str = "gh") -> None:
        self._prefix = service_prefix

    def _backend(self) -> KeyringBackendBase:
        try:
            backend = keyring.get_keyring()
        except keyring.errors.KeyringError as e:
            raise BackendUnavailableError(str(e)) from e

        if isinstance(backend, (fail.Keyring, null.Keyring)):
            raise BackendUnavailableError(f"keyring backend {type(backend).__module__} is not usable")
        return backend

    def get(self, key: SecureKey) -> str | None:
        backend = self._backend()
        try:
            return backend.get_password(key.service(self._prefix), key.keyring_username)
        except (keyring.errors.NoKeyringError, keyring.errors.InitError, keyring.errors.KeyringLocked) as e:
            raise BackendUnavailableError(str(e) or type(e).__name__) from e
        except keyring.errors.KeyringError as e:
            raise BackendUnavailableError(f"read failed: {e}") from e

    def set(self, key: SecureKey, value: str) -> None:
        backend = self._backend()
        try:
            backend.set_password(key.service(self._prefix), key.keyring_username, value)
        except (keyring.errors.NoKeyringError, keyring.errors.InitError, keyring.errors.KeyringLocked) as e:
            raise BackendUnavailableError(str(e) or type(e).__name__) from e
        except keyring.errors.KeyringError as e:
            raise WriteFailedError(self.name, e) from e
        logger.debug("Stored credential in keyring for %s", key.service(self._prefix))

    def delete(self, key: SecureKey) -> None:
        backend = self._backend()
        try:
            backend.delete_password(key.service(self._prefix), key.keyring_username)
        except keyring.errors.PasswordDeleteError:
            # already absent
            return
        except (keyring.errors.NoKeyringError, keyring.errors.InitError, keyring.errors.KeyringLocked) as e:
            raise BackendUnavailableError(str(e) or type(e).__name__) from e
        except keyring.errors.KeyringError as e:
            raise WriteFailedError(self.name, e) from e


class MemorySecureBackend:
    """Dictionary-backed secure backend."""

    name = "memory"

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.fail_writes = False
        self._entries: dict[SecureKey, str] = {}

    def _check(self) -> None:
        if not self.available:
            raise BackendUnavailableError("memory backend disabled")

    def get(self, key: SecureKey) -> str | None:
        self._check()
        return self._entries.get(key)

    def set(self, key: SecureKey, value: str) -> None:
        self._check()
        if self.fail_writes:
            raise WriteFailedError(self.name, OSError("write rejected"))
        self._entries[key] = value

    def delete(self, key: SecureKey) -> None:
        self._check()
        self._entries.pop(key, None)
