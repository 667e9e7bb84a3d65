"""
Secret Vault — platform secret store holding the Touch ID mode MasterKey.

``KeyringSecretVault`` uses the ``keyring`` library, which picks the best
backend for the platform (macOS Keychain, Secret Service, Windows Credential
Locker). The biometric / user-presence prompt is supplied as a callable so
the core never touches platform frameworks directly.

Security Note:
    Never log the stored key. Only log service/account names.
"""
import base64
import binascii
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ..exceptions import AuthenticationFailed, ConfigurationError, IOFailure

logger = logging.getLogger("fssh.auth")

SERVICE_NAME = "fssh"
ACCOUNT_NAME = "master_key_v1"
DEFAULT_PRESENCE_REASON = "Unlock the fssh master key to use SSH private keys"

PresenceCheck = Callable[[str], bool]


class SecretVault(ABC):
    """Narrow interface over the platform secret store."""

    @abstractmethod
    def exists(self) -> bool:
        """True if a MasterKey is stored."""

    @abstractmethod
    def store(self, key: bytes, overwrite: bool = False) -> None:
        """Store ``key``. Existing key without ``overwrite`` raises ConfigurationError."""

    @abstractmethod
    def load(self) -> bytes:
        """Return the stored key, raising ConfigurationError if none."""

    @abstractmethod
    def delete(self) -> None:
        """Remove the stored key; no error if absent."""

    @abstractmethod
    def require_presence(self, reason: str) -> bool:
        """Block on the biometric / user presence check."""


class MemorySecretVault(SecretVault):
    """In-process vault used by tests and ephemeral setups."""

    def __init__(self, key: Optional[bytes] = None, presence: bool = True):
        self._key = key
        self._lock = threading.Lock()
        self.presence = presence
        self.presence_requests: list[str] = []

    def exists(self) -> bool:
        with self._lock:
            return self._key is not None

    def store(self, key: bytes, overwrite: bool = False) -> None:
        with self._lock:
            if self._key is not None and not overwrite:
                raise ConfigurationError("master key already exists")
            self._key = bytes(key)

    def load(self) -> bytes:
        with self._lock:
            if self._key is None:
                raise ConfigurationError("master key not initialized")
            return self._key

    def delete(self) -> None:
        with self._lock:
            self._key = None

    def require_presence(self, reason: str) -> bool:
        self.presence_requests.append(reason)
        return self.presence


class KeyringSecretVault(SecretVault):
    """MasterKey kept by the ``keyring`` backend as a base64 password."""

    def __init__(
        self,
        presence_check: Optional[PresenceCheck] = None,
        service: str = SERVICE_NAME,
        account: str = ACCOUNT_NAME,
    ):
        self._presence_check = presence_check
        self._service = service
        self._account = account

    def _get(self) -> Optional[str]:
        try:
            return keyring.get_password(self._service, self._account)
        except KeyringError as err:
            raise IOFailure(f"secret store unavailable: {err}") from err

    def exists(self) -> bool:
        return self._get() is not None

    def store(self, key: bytes, overwrite: bool = False) -> None:
        if self.exists() and not overwrite:
            raise ConfigurationError(
                f"master key already exists in {self._service}/{self._account}"
            )
        try:
            keyring.set_password(
                self._service, self._account, base64.b64encode(key).decode("ascii"),
            )
        except KeyringError as err:
            raise IOFailure(f"cannot store master key: {err}") from err
        logger.info("Stored master key in secret store %s/%s", self._service, self._account)

    def load(self) -> bytes:
        value = self._get()
        if value is None:
            raise ConfigurationError("master key not initialized")
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error:
            raise AuthenticationFailed() from None

    def delete(self) -> None:
        try:
            keyring.delete_password(self._service, self._account)
        except PasswordDeleteError:
            return
        except KeyringError as err:
            raise IOFailure(f"cannot delete master key: {err}") from err
        logger.info("Deleted master key from secret store %s/%s", self._service, self._account)

    def require_presence(self, reason: str) -> bool:
        # without a presence hook the backend's own access control applies
        if self._presence_check is None:
            return True
        return bool(self._presence_check(reason))
