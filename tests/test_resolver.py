"""Tests for active token resolution."""

import pytest

from ghc_api.auth.backends import MemorySecureBackend
from ghc_api.auth.credentials import Account, Credential, TokenSource
from ghc_api.auth.hosts import MemoryHostsConfig
from ghc_api.auth.resolver import TokenResolver
from ghc_api.auth.store import CredentialStore
from ghc_api.config import EnvConfig
from ghc_api.errors import AuthRequiredError

ALICE_TOKEN = "gho_" + "a" * 36
BOB_TOKEN = "gho_" + "b" * 36
ENV_TOKEN = "ghp_" + "e" * 36
GHE_TOKEN = "ghp_" + "g" * 36


def _login(store: CredentialStore, username: str, token: str, host: str = "github.com") -> None:
    account = Account(host, username)
    store.store(account, Credential.from_token(token))
    store.set_active(account)


class TestEnvironment:
    """Tests for environment variable precedence."""

    def test_env_wins_over_everything(
        self, store: CredentialStore, resolver: TokenResolver, environ: dict[str, str]
    ) -> None:
        """Test an environment token beats stored credentials."""
        _login(store, "alice", ALICE_TOKEN)
        environ["GH_TOKEN"] = ENV_TOKEN

        credential = resolver.active_token("github.com")
        assert credential.expose() == ENV_TOKEN
        assert credential.source is TokenSource.ENVIRONMENT
        assert credential.origin == "GH_TOKEN"

    def test_gh_token_before_github_token(self, resolver: TokenResolver, environ: dict[str, str]) -> None:
        environ["GITHUB_TOKEN"] = "ghp_second"
        environ["GH_TOKEN"] = "ghp_first"
        assert resolver.active_token("github.com").origin == "GH_TOKEN"

    def test_empty_variable_ignored(self, resolver: TokenResolver, environ: dict[str, str]) -> None:
        environ["GH_TOKEN"] = ""
        environ["GITHUB_TOKEN"] = ENV_TOKEN
        assert resolver.active_token("github.com").origin == "GITHUB_TOKEN"

    def test_enterprise_variable_for_enterprise_host(
        self, resolver: TokenResolver, environ: dict[str, str]
    ) -> None:
        """Test the enterprise variable takes precedence on enterprise hosts."""
        environ["GH_TOKEN"] = ENV_TOKEN
        environ["GH_ENTERPRISE_TOKEN"] = GHE_TOKEN

        credential = resolver.active_token("ghe.example.com")
        assert credential.expose() == GHE_TOKEN
        assert credential.origin == "GH_ENTERPRISE_TOKEN"

    def test_enterprise_variable_ignored_for_github_com(
        self, resolver: TokenResolver, environ: dict[str, str]
    ) -> None:
        environ["GH_ENTERPRISE_TOKEN"] = GHE_TOKEN
        with pytest.raises(AuthRequiredError):
            resolver.active_token("github.com")

    def test_generic_variable_applies_to_enterprise(
        self, resolver: TokenResolver, environ: dict[str, str]
    ) -> None:
        environ["GITHUB_TOKEN"] = ENV_TOKEN
        assert resolver.active_token("ghe.example.com").expose() == ENV_TOKEN

    def test_custom_variable_names(self, store: CredentialStore) -> None:
        """Test variable names are injectable."""
        resolver = TokenResolver(store, EnvConfig(token_vars=["MY_TOKEN"]), environ={"MY_TOKEN": ENV_TOKEN})
        assert resolver.active_token("github.com").origin == "MY_TOKEN"

    def test_reads_process_environment(self, store: CredentialStore, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test os.environ is consulted at call time by default."""
        resolver = TokenResolver(store)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        monkeypatch.setenv("GITHUB_TOKEN", ENV_TOKEN)
        assert resolver.active_token("github.com").expose() == ENV_TOKEN


class TestStoredTokens:
    """Tests for config-file and secure-store precedence."""

    def test_config_file_before_secure(self, secure: MemorySecureBackend) -> None:
        """Test a plaintext active token beats the secure active slot."""
        hosts = MemoryHostsConfig({"github.com": {"user": "alice", "oauth_token": BOB_TOKEN}})
        store = CredentialStore(hosts, secure)
        _login(store, "alice", ALICE_TOKEN)
        hosts.set("github.com", "oauth_token", BOB_TOKEN)

        credential = TokenResolver(store, environ={}).active_token("github.com")
        assert credential.expose() == BOB_TOKEN
        assert credential.source is TokenSource.CONFIG_FILE

    def test_secure_store(self, store: CredentialStore, resolver: TokenResolver) -> None:
        _login(store, "alice", ALICE_TOKEN)
        credential = resolver.active_token("github.com")
        assert credential.expose() == ALICE_TOKEN
        assert credential.source is TokenSource.SECURE_STORE

    def test_secure_backend_unavailable_is_no_value(self, hosts: MemoryHostsConfig) -> None:
        store = CredentialStore(hosts, MemorySecureBackend(available=False))
        with pytest.raises(AuthRequiredError):
            TokenResolver(store, environ={}).active_token("github.com")

    def test_auth_required(self, resolver: TokenResolver) -> None:
        with pytest.raises(AuthRequiredError) as exc_info:
            resolver.active_token("GHE.example.com")
        assert exc_info.value.host == "ghe.example.com"
        assert "ghc auth login" in str(exc_info.value)

    def test_try_active_token(self, resolver: TokenResolver) -> None:
        assert resolver.try_active_token("github.com") is None

    def test_rotation_visible_immediately(self, store: CredentialStore, resolver: TokenResolver) -> None:
        """Test a switch takes effect on the very next lookup."""
        _login(store, "alice", ALICE_TOKEN)
        _login(store, "bob", BOB_TOKEN)
        assert resolver.active_token("github.com").expose() == BOB_TOKEN

        store.set_active(Account("github.com", "alice"))
        assert resolver.active_token("github.com").expose() == ALICE_TOKEN

    def test_source_recomputed_per_lookup(self, store: CredentialStore, resolver: TokenResolver) -> None:
        """Test the source follows the backend the value came from this time."""
        _login(store, "alice", ALICE_TOKEN)
        assert resolver.active_token("github.com").source is TokenSource.SECURE_STORE

        store.store(Account("github.com", "alice"), Credential.from_token(ALICE_TOKEN), prefer_secure=False)
        store.set_active(Account("github.com", "alice"))
        assert resolver.active_token("github.com").source is TokenSource.CONFIG_FILE
