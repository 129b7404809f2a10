"""Credential storage, token resolution and the device authorization flow."""

from ghc_api.auth.backends import KeyringBackend, MemorySecureBackend, SecureBackend, SecureKey
from ghc_api.auth.credentials import Account, Credential, StoredWhere, TokenSource, mask_token
from ghc_api.auth.hosts import HostsConfig, MemoryHostsConfig, YamlHostsConfig
from ghc_api.auth.resolver import TokenResolver
from ghc_api.auth.store import CredentialStore

__all__ = [
    # Values
    "Account",
    "Credential",
    # Storage
    "CredentialStore",
    "HostsConfig",
    "KeyringBackend",
    "MemoryHostsConfig",
    "MemorySecureBackend",
    "SecureBackend",
    "SecureKey",
    "StoredWhere",
    "TokenResolver",
    "TokenSource",
    "YamlHostsConfig",
    "mask_token",
]
