"""Active token resolution.

Precedence, first match wins:
1. Environment variables. On hosts other than github.com the enterprise
   variables are checked before the generic ones.
2. Plaintext ``oauth_token`` for the host in hosts.yml.
3. The host's active slot in the secure backend.

Nothing is cached; each call reads the environment and both backends
again so a rotated token is visible on the next request.
"""

import logging
import os
from collections.abc import Mapping

from ghc_api.auth.credentials import Credential, TokenSource
from ghc_api.auth.store import CredentialStore
from ghc_api.config import EnvConfig
from ghc_api.errors import AuthRequiredError
from ghc_api.instance import is_github_com, normalize_hostname

logger = logging.getLogger(__name__)


class TokenResolver:
    """Computes the active credential for a host."""

    def __init__(
        self,
        store: CredentialStore,
        env_config: EnvConfig | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Credential store holding config-file and secure slots.
            env_config: Names of the token environment variables.
            environ: Environment mapping. Defaults to ``os.environ`` read at
                call time.
        """
        self._store = store
        self._env = env_config or EnvConfig()
        self._environ = environ

    @property
    def store(self) -> CredentialStore:
        return self._store

    def _variables_for(self, host: str) -> list[str]:
        if is_github_com(host):
            return list(self._env.token_vars)
        return [*self._env.enterprise_token_vars, *self._env.token_vars]

    def env_credential(self, host: str) -> Credential | None:
        """Token from the first set variable, with the variable name as its origin."""
        environ = os.environ if self._environ is None else self._environ
        for name in self._variables_for(normalize_hostname(host)):
            value = environ.get(name)
            if value:
                return Credential.from_token(value, TokenSource.ENVIRONMENT, name)
        return None

    def active_token(self, host: str) -> Credential:
        """Resolve the token that outgoing requests to ``host`` should carry.

        Raises:
            AuthRequiredError: If no source yields a token.
        """
        host = normalize_hostname(host)

        credential = self.env_credential(host)
        if credential is not None:
            return credential

        token = self._store.config_token(host)
        if token:
            return Credential.from_token(token, TokenSource.CONFIG_FILE, self._store.hosts_config.location)

        token = self._store.secure_active_token(host)
        if token:
            return Credential.from_token(token, TokenSource.SECURE_STORE, self._store.secure_backend_name)

        logger.debug("No token found for %s", host)
        raise AuthRequiredError(host)

    def try_active_token(self, host: str) -> Credential | None:
        """Like :meth:`active_token` but returns None instead of raising."""
        try:
            return self.active_token(host)
        except AuthRequiredError:
            return None
