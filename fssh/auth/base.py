"""Authentication provider contract shared by every unlock mode."""
import enum
from abc import ABC, abstractmethod


class AuthMode(str, enum.Enum):
    TOUCHID = "touchid"
    OTP = "otp"


class AuthProvider(ABC):
    """Releases the MasterKey after the mode's authentication gate.

    The agent depends only on this interface; a new unlock mode is a new
    subclass and needs no agent change.
    """

    mode: AuthMode

    @abstractmethod
    def unlock_master_key(self) -> bytes:
        """Return the 32-byte MasterKey.

        May return from cache or block on user interaction.

        Raises:
            AuthenticationFailed: The gate was not satisfied.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """True when this mode is configured and usable."""

    @abstractmethod
    def clear_cache(self) -> None:
        """Zero and drop any cached secret. Safe to call at any time."""
