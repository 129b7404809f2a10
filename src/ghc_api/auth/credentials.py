"""Credential value types."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import SecretStr

from ghc_api.instance import normalize_hostname


class TokenSource(str, Enum):
    """Where a credential was read from during one lookup."""

    ENVIRONMENT = "environment"
    CONFIG_FILE = "config-file"
    SECURE_STORE = "secure-store"


class StoredWhere(str, Enum):
    """Backend that accepted a stored credential."""

    SECURE_STORE = "secure-store"
    CONFIG_FILE = "config-file"

    @property
    def is_insecure(self) -> bool:
        return self is StoredWhere.CONFIG_FILE


@dataclass(frozen=True)
class Account:
    """One credential slot: a username on a host."""

    host: str
    username: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "host", normalize_hostname(self.host))
        if not self.username:
            msg = "username must not be empty"
            raise ValueError(msg)

    def __str__(self) -> str:
        return f"{self.username}@{self.host}"


@dataclass(frozen=True)
class Credential:
    """A token plus the source it was read from.

    ``source`` is None for a token that was just issued and not yet stored.

    The token is held as a ``SecretStr`` so reprs, logs and tracebacks show
    ``'**********'``. Only :meth:`expose` returns the raw value.
    """

    token: SecretStr
    source: TokenSource | None = None
    origin: str = field(default="", compare=False)

    @classmethod
    def from_token(cls, token: str, source: TokenSource | None = None, origin: str = "") -> "Credential":
        return cls(SecretStr(token), source, origin)

    def expose(self) -> str:
        """Return the raw token. Call only where the value leaves the process."""
        return self.token.get_secret_value()

    def masked(self) -> str:
        return mask_token(self.expose())

    @property
    def is_writeable(self) -> bool:
        """False when the value comes from the environment and can't be managed."""
        return self.source is not TokenSource.ENVIRONMENT


def mask_token(token: str) -> str:
    """Mask a token for display, keeping any ``ghp_``-style prefix."""
    idx = token.rfind("_")
    if idx == -1:
        return "*" * len(token)
    prefix = token[: idx + 1]
    return prefix + "*" * (len(token) - len(prefix))
