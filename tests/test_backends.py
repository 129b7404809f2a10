"""Tests for secure credential backends."""

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import keyring.errors
import pytest
from keyring.backends import fail

from ghc_api.auth.backends import KeyringBackend, MemorySecureBackend, SecureKey
from ghc_api.errors import BackendUnavailableError, WriteFailedError


class TestSecureKey:
    """Tests for SecureKey."""

    def test_service_and_username(self) -> None:
        """Test keyring service and username mapping."""
        key = SecureKey("GitHub.com", "monalisa")
        assert key.service("gh") == "gh:github.com"
        assert key.keyring_username == "monalisa"

    def test_active_slot(self) -> None:
        """Test the host's active slot uses an empty keyring username."""
        assert SecureKey("github.com").keyring_username == ""
        assert SecureKey("github.com") != SecureKey("github.com", "monalisa")


class TestKeyringBackend:
    """Tests for KeyringBackend with a mocked keyring."""

    @pytest.fixture
    def os_keyring(self) -> Iterator[MagicMock]:
        """Patch keyring.get_keyring with a mock backend."""
        backend = MagicMock()
        with patch("ghc_api.auth.backends.keyring.get_keyring", return_value=backend):
            yield backend

    def test_get(self, os_keyring: MagicMock) -> None:
        """Test reading a stored value."""
        os_keyring.get_password.return_value = "secret"
        assert KeyringBackend().get(SecureKey("github.com", "monalisa")) == "secret"
        os_keyring.get_password.assert_called_once_with("gh:github.com", "monalisa")

    def test_get_missing(self, os_keyring: MagicMock) -> None:
        """Test a missing entry is None, not an error."""
        os_keyring.get_password.return_value = None
        assert KeyringBackend().get(SecureKey("github.com")) is None

    def test_set_uses_prefix(self, os_keyring: MagicMock) -> None:
        """Test the service prefix is configurable."""
        KeyringBackend(service_prefix="ghc").set(SecureKey("ghe.io", "hubot"), "secret")
        os_keyring.set_password.assert_called_once_with("ghc:ghe.io", "hubot", "secret")

    def test_delete_missing_is_noop(self, os_keyring: MagicMock) -> None:
        """Test deleting an absent entry is not an error."""
        os_keyring.delete_password.side_effect = keyring.errors.PasswordDeleteError("not found")
        KeyringBackend().delete(SecureKey("github.com", "monalisa"))

    def test_locked_keyring_unavailable(self, os_keyring: MagicMock) -> None:
        """Test a locked keyring is reported as unavailable."""
        os_keyring.set_password.side_effect = keyring.errors.KeyringLocked("locked")
        with pytest.raises(BackendUnavailableError):
            KeyringBackend().set(SecureKey("github.com", "monalisa"), "secret")

    def test_write_failure(self, os_keyring: MagicMock) -> None:
        """Test other keyring errors on write are write failures."""
        os_keyring.set_password.side_effect = keyring.errors.PasswordSetError("denied")
        with pytest.raises(WriteFailedError):
            KeyringBackend().set(SecureKey("github.com", "monalisa"), "secret")

    def test_fail_backend_unavailable(self) -> None:
        """Test the placeholder fail backend counts as unavailable."""
        with patch("ghc_api.auth.backends.keyring.get_keyring", return_value=fail.Keyring()):
            with pytest.raises(BackendUnavailableError):
                KeyringBackend().get(SecureKey("github.com"))

    def test_no_keyring_error(self) -> None:
        """Test NoKeyringError while selecting a backend is unavailable."""
        with patch(
            "ghc_api.auth.backends.keyring.get_keyring",
            side_effect=keyring.errors.NoKeyringError("none"),
        ):
            with pytest.raises(BackendUnavailableError):
                KeyringBackend().get(SecureKey("github.com"))


class TestMemorySecureBackend:
    """Tests for the in-memory test double."""

    def test_roundtrip_and_delete(self) -> None:
        backend = MemorySecureBackend()
        key = SecureKey("github.com", "monalisa")
        backend.set(key, "secret")
        assert backend.get(key) == "secret"
        backend.delete(key)
        backend.delete(key)
        assert backend.get(key) is None

    def test_unavailable(self) -> None:
        backend = MemorySecureBackend(available=False)
        with pytest.raises(BackendUnavailableError):
            backend.get(SecureKey("github.com"))

    def test_fail_writes(self) -> None:
        backend = MemorySecureBackend()
        backend.fail_writes = True
        with pytest.raises(WriteFailedError):
            backend.set(SecureKey("github.com"), "secret")
