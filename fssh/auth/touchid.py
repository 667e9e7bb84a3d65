"""Touch ID / platform presence provider."""
import logging

from .base import AuthMode, AuthProvider
from .secret_vault import DEFAULT_PRESENCE_REASON, SecretVault
from ..exceptions import AuthenticationFailed, ConfigurationError, IOFailure

logger = logging.getLogger("fssh.auth")


class TouchIDProvider(AuthProvider):
    """Releases the MasterKey held by a Secret Vault after a presence check.

    No cache lives here: freshness of a presence approval is the platform's
    decision, and a second cache would disagree with it.
    """

    mode = AuthMode.TOUCHID

    def __init__(self, vault: SecretVault, reason: str = DEFAULT_PRESENCE_REASON):
        self._vault = vault
        self._reason = reason

    def unlock_master_key(self) -> bytes:
        if not self._vault.require_presence(self._reason):
            logger.warning("Presence check declined")
            raise AuthenticationFailed()
        try:
            key = self._vault.load()
        except ConfigurationError:
            raise AuthenticationFailed() from None
        logger.debug("Master key released by secret store")
        return key

    def is_available(self) -> bool:
        try:
            return self._vault.exists()
        except IOFailure as err:
            logger.warning("Secret store unavailable: %s", err)
            return False

    def clear_cache(self) -> None:
        """No-op: this provider holds no secret between calls."""
