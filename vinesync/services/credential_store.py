"""
Credential storage.
Uses the OS keyring (Keychain, Credential Manager, Secret Service) when one is
available, with a local JSON file as fallback. Values in the file are
encrypted with Fernet when credential_encryption_key is configured.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
import structlog
from cryptography.fernet import Fernet, InvalidToken
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError

from vinesync.config import settings

logger = structlog.get_logger()

FERNET_KEY_LENGTH = 44  # Fernet keys are 32 bytes, urlsafe base64 encoded
FERNET_TOKEN_PREFIX = "gAAAAA"


class CredentialStoreError(Exception):
    """Raised when a credential cannot be read, written or removed."""

    pass


class BaseCredentialStore(ABC):
    """Simple key-value interface for secrets."""

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryCredentialStore(BaseCredentialStore):
    """Process-local store, for tests and one-off runs."""

    def __init__(self, values: dict[str, str] = None):
        self._values = dict(values or {})

    def save(self, key: str, value: str) -> None:
        self._values[key] = value

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class KeyringCredentialStore(BaseCredentialStore):
    """Store backed by the OS-native keyring."""

    def __init__(self, service: str = None):
        self.service = service or settings.keyring_service

    def save(self, key: str, value: str) -> None:
        try:
            keyring.set_password(self.service, key, value)
        except KeyringError as e:
            raise CredentialStoreError(f"Failed to save credential: {e}") from e

    def get(self, key: str) -> str | None:
        try:
            return keyring.get_password(self.service, key)
        except KeyringError as e:
            raise CredentialStoreError(f"Failed to get credential: {e}") from e

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            # Nothing stored under this key
            return
        except KeyringError as e:
            raise CredentialStoreError(f"Failed to delete credential: {e}") from e


def _get_fernet(key: str | None) -> Fernet | None:
    """Return Fernet instance if an encryption key is configured; else None."""
    if not key or not key.strip():
        return None
    key = key.strip()
    if len(key) != FERNET_KEY_LENGTH:
        logger.warning(
            "credential_encryption_key must be a 44-char Fernet key; encryption disabled",
            key_len=len(key),
        )
        return None
    try:
        return Fernet(key.encode("utf-8"))
    except ValueError as e:
        logger.warning("Invalid credential_encryption_key; encryption disabled", error=str(e))
        return None


class FileCredentialStore(BaseCredentialStore):
    """Local JSON file store, used when no OS keyring is available."""

    def __init__(self, path: str | Path = None, encryption_key: str = None):
        self.path = Path(path or settings.credential_fallback_path)
        self._fernet = _get_fernet(
            encryption_key if encryption_key is not None else settings.credential_encryption_key
        )

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CredentialStoreError(f"Failed to read credential file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CredentialStoreError(f"Credential file {self.path} is not a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            self.path.chmod(0o600)
        except OSError as e:
            raise CredentialStoreError(f"Failed to write credential file {self.path}: {e}") from e

    def _encrypt(self, value: str) -> str:
        if not self._fernet:
            return value
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def _decrypt(self, value: str) -> str:
        # Plaintext values written before encryption was enabled are returned as-is
        if not self._fernet or not value.startswith(FERNET_TOKEN_PREFIX):
            return value
        try:
            return self._fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise CredentialStoreError(
                "Stored credential could not be decrypted with the configured key"
            ) from e

    def save(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = self._encrypt(value)
        self._write(data)

    def get(self, key: str) -> str | None:
        value = self._read().get(key)
        return self._decrypt(value) if value is not None else None

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class FallbackCredentialStore(BaseCredentialStore):
    """Tries the primary store first and falls back to a secondary store on error."""

    def __init__(self, primary: BaseCredentialStore, fallback: BaseCredentialStore):
        self.primary = primary
        self.fallback = fallback

    def save(self, key: str, value: str) -> None:
        try:
            self.primary.save(key, value)
        except CredentialStoreError as e:
            logger.warning("Primary credential store failed, saving to fallback", key=key, error=str(e))
            self.fallback.save(key, value)

    def get(self, key: str) -> str | None:
        try:
            value = self.primary.get(key)
        except CredentialStoreError as e:
            logger.warning("Primary credential store failed, reading fallback", key=key, error=str(e))
            return self.fallback.get(key)
        # Values saved while the primary store was unavailable
        return value if value is not None else self.fallback.get(key)

    def delete(self, key: str) -> None:
        try:
            self.primary.delete(key)
        except CredentialStoreError as e:
            logger.warning("Primary credential store failed on delete", key=key, error=str(e))
        self.fallback.delete(key)


def keyring_available() -> bool:
    """True when keyring resolved to a usable OS backend."""
    backend = keyring.get_keyring()
    return not isinstance(backend, fail.Keyring) and getattr(backend, "priority", 0) > 0


def get_credential_store() -> BaseCredentialStore:
    """Build the credential store for this machine."""
    file_store = FileCredentialStore()
    if keyring_available():
        return FallbackCredentialStore(KeyringCredentialStore(), file_store)
    logger.info("No OS keyring available, using local credential file", path=str(file_store.path))
    return file_store
