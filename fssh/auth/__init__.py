"""Authentication providers that release the MasterKey."""

from .base import AuthMode, AuthProvider
from .otp import OTPProvider
from .touchid import TouchIDProvider
from .secret_vault import SecretVault, MemorySecretVault, KeyringSecretVault
from .mode import load_mode, save_mode, get_auth_provider

__all__ = [
    "AuthMode",
    "AuthProvider",
    "OTPProvider",
    "TouchIDProvider",
    "SecretVault",
    "MemorySecretVault",
    "KeyringSecretVault",
    "load_mode",
    "save_mode",
    "get_auth_provider",
]
