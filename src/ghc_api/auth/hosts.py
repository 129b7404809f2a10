"""Plaintext per-host configuration (hosts.yml).

Layout, one mapping per host::

    github.com:
        user: monalisa
        oauth_token: gho_...          # only when stored insecurely
        git_protocol: https
        users:
            monalisa:
                oauth_token: gho_...  # only when stored insecurely
            hubot:

Readers always see a complete file: writes go to a temporary file in the
same directory which then replaces the original.
"""

import copy
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from ghc_api.errors import CredentialError, WriteFailedError
from ghc_api.instance import normalize_hostname

logger = logging.getLogger(__name__)

HostEntry = dict[str, Any]


class HostsConfig(ABC):
    """Key/value access to host-scoped settings.

    Subclasses provide ``_read`` and ``_write``; every mutation runs as a
    read-modify-write under one lock so concurrent writers never interleave.
    """

    location = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @abstractmethod
    def _read(self) -> dict[str, HostEntry]: ...

    @abstractmethod
    def _write(self, data: dict[str, HostEntry]) -> None: ...

    def hosts(self) -> list[str]:
        return [normalize_hostname(h) for h in self._read()]

    def entry(self, host: str) -> HostEntry:
        """Deep copy of one host's mapping (empty when unknown)."""
        data = self._read()
        key = _find_host_key(data, host)
        if key is None:
            return {}
        return copy.deepcopy(data[key] or {})

    def get(self, host: str, key: str) -> str | None:
        """Read a dotted key such as ``users.monalisa.oauth_token``."""
        node: Any = self.entry(host)
        for part in key.split("."):
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return node if isinstance(node, str) and node else None

    def users(self, host: str) -> list[str]:
        entry = self.entry(host)
        names = list((entry.get("users") or {}).keys())
        active = entry.get("user")
        if active and active not in names:
            names.append(active)
        return names

    def edit(self, host: str, editor: Callable[[HostEntry], None]) -> None:
        """Apply ``editor`` to the host mapping and persist the result.

        Hosts left with an empty mapping are removed from the file.
        """
        with self._lock:
            data = self._read()
            key = _find_host_key(data, host) or normalize_hostname(host)
            entry = data.get(key) or {}
            editor(entry)
            if entry:
                data[key] = entry
            else:
                data.pop(key, None)
            self._write(data)

    def set(self, host: str, key: str, value: str) -> None:
        def apply(entry: HostEntry) -> None:
            *parents, leaf = key.split(".")
            node = entry
            for part in parents:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            node[leaf] = value

        self.edit(host, apply)

    def unset(self, host: str, key: str) -> None:
        def apply(entry: HostEntry) -> None:
            *parents, leaf = key.split(".")
            node: Any = entry
            for part in parents:
                node = node.get(part) if isinstance(node, dict) else None
            if isinstance(node, dict):
                node.pop(leaf, None)

        self.edit(host, apply)


class MemoryHostsConfig(HostsConfig):
    """In-memory hosts config for tests and throwaway sessions."""

    def __init__(self, data: dict[str, HostEntry] | None = None) -> None:
        super().__init__()
        self._data: dict[str, HostEntry] = copy.deepcopy(data or {})

    def _read(self) -> dict[str, HostEntry]:
        return copy.deepcopy(self._data)

    def _write(self, data: dict[str, HostEntry]) -> None:
        self._data = copy.deepcopy(data)


class YamlHostsConfig(HostsConfig):
    """hosts.yml on disk, re-read on every lookup."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path

    @property
    def location(self) -> str:  # type: ignore[override]
        return str(self._path)

    def _read(self) -> dict[str, HostEntry]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open() as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"invalid hosts file {self._path}: {e}"
            raise CredentialError(msg) from e
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            msg = f"invalid hosts file {self._path}: expected a mapping of hosts"
            raise CredentialError(msg)
        return raw

    def _write(self, data: dict[str, HostEntry]) -> None:
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd, tmp_name = tempfile.mkstemp(prefix=".hosts-", suffix=".yml", dir=directory)
            try:
                with os.fdopen(fd, "w") as f:
                    yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise WriteFailedError(self.location, e) from e
        logger.debug("Wrote %s", self._path)


def _find_host_key(data: dict[str, HostEntry], host: str) -> str | None:
    wanted = normalize_hostname(host)
    for key in data:
        if normalize_hostname(str(key)) == wanted:
            return key
    return None
