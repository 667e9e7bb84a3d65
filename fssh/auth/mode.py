"""
Auth mode selection — which provider the agent uses.

Persisted as ``$FSSH_HOME/auth_mode.json``::

    {"version": "fssh-auth/v1", "mode": "otp", "created_at": "..."}

Without the file, Touch ID is chosen when the secret vault already holds a
MasterKey and OTP otherwise.
"""
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

import orjson
from pydantic import BaseModel, Field, ValidationError

from .base import AuthMode, AuthProvider
from .otp import OTPProvider
from .secret_vault import KeyringSecretVault, SecretVault
from .touchid import TouchIDProvider
from ..conf import AgentSettings
from ..exceptions import ConfigurationError, IOFailure
from ..fileio import read_file, write_private_file
from ..otp.prompt import Prompter

logger = logging.getLogger("fssh.auth")

AUTH_MODE_VERSION = "fssh-auth/v1"


class ModeConfig(BaseModel):
    version: str = AUTH_MODE_VERSION
    mode: AuthMode
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def load_mode(path: Path, vault: Optional[SecretVault] = None) -> AuthMode:
    """Read the persisted auth mode, falling back to auto-detection.

    Raises:
        ConfigurationError: Malformed file or unsupported version.
    """
    try:
        data = read_file(Path(path))
    except FileNotFoundError:
        try:
            has_key = vault is not None and vault.exists()
        except IOFailure:
            has_key = False
        mode = AuthMode.TOUCHID if has_key else AuthMode.OTP
        logger.debug("No auth mode file, detected mode=%s", mode.value)
        return mode
    try:
        raw = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise ConfigurationError(f"auth mode file is not valid JSON: {err}") from err
    if not isinstance(raw, dict) or raw.get("version") != AUTH_MODE_VERSION:
        version = raw.get("version") if isinstance(raw, dict) else None
        raise ConfigurationError(f"auth mode version unsupported: {version!r}")
    try:
        return ModeConfig.model_validate(raw).mode
    except ValidationError as err:
        raise ConfigurationError(f"invalid auth mode file: {err}") from err


def save_mode(mode: AuthMode, path: Path) -> None:
    cfg = ModeConfig(mode=mode)
    write_private_file(
        Path(path), orjson.dumps(cfg.model_dump(mode="json"), option=orjson.OPT_INDENT_2),
    )
    logger.info("Auth mode set to %s", mode.value)


def get_auth_provider(
    settings: AgentSettings,
    vault: Optional[SecretVault] = None,
    prompter: Optional[Prompter] = None,
) -> AuthProvider:
    """Build the provider for the configured mode.

    Raises:
        ConfigurationError: The selected mode is not set up.
    """
    if vault is None:
        vault = KeyringSecretVault()
    mode = load_mode(settings.auth_mode_path, vault)
    provider: AuthProvider
    if mode is AuthMode.TOUCHID:
        provider = TouchIDProvider(vault)
        if not provider.is_available():
            raise ConfigurationError(
                "Touch ID mode selected but no master key is stored; "
                "initialize it or switch to OTP mode"
            )
    else:
        provider = OTPProvider(
            settings.otp_config_path,
            master_key_ttl=settings.master_key_ttl,
            prompter=prompter,
        )
        if not provider.is_available():
            raise ConfigurationError(
                f"OTP mode selected but not configured ({settings.otp_config_path})"
            )
    logger.info("Auth provider ready: mode=%s", provider.mode.value)
    return provider
