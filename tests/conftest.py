"""Test fixtures for ghc-api.

Provides fixtures for:
- In-memory credential backends and stores
- Resolvers with an isolated environment
- A fake monotonic clock for device flow polling
"""

import asyncio

import pytest

from ghc_api.auth.backends import MemorySecureBackend
from ghc_api.auth.hosts import MemoryHostsConfig
from ghc_api.auth.resolver import TokenResolver
from ghc_api.auth.store import CredentialStore


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # let other tasks run, like a real sleep would
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock starting at zero."""
    return FakeClock()


@pytest.fixture
def hosts() -> MemoryHostsConfig:
    """Create an empty in-memory hosts config."""
    return MemoryHostsConfig()


@pytest.fixture
def secure() -> MemorySecureBackend:
    """Create an available in-memory secure backend."""
    return MemorySecureBackend()


@pytest.fixture
def store(hosts: MemoryHostsConfig, secure: MemorySecureBackend) -> CredentialStore:
    """Create a credential store over the in-memory backends."""
    return CredentialStore(hosts, secure)


@pytest.fixture
def environ() -> dict[str, str]:
    """Isolated environment mapping for token lookups."""
    return {}


@pytest.fixture
def resolver(store: CredentialStore, environ: dict[str, str]) -> TokenResolver:
    """Create a resolver that never reads the real process environment."""
    return TokenResolver(store, environ=environ)
