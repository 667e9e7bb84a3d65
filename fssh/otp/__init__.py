"""One-time password support: TOTP engine, recovery codes and seed config."""

from .totp import generate, verify, current_code, provisioning_uri
from .recovery import RecoveryCodes, generate_recovery_codes, hash_recovery_codes
from .config import OTPConfig, load_config, save_config, config_exists
from .setup import initialize, change_password, set_seed_unlock_ttl, recover_seed
from .prompt import Prompter, ConsolePrompter

__all__ = [
    "generate",
    "verify",
    "current_code",
    "provisioning_uri",
    "RecoveryCodes",
    "generate_recovery_codes",
    "hash_recovery_codes",
    "OTPConfig",
    "load_config",
    "save_config",
    "config_exists",
    "initialize",
    "change_password",
    "set_seed_unlock_ttl",
    "recover_seed",
    "Prompter",
    "ConsolePrompter",
]
