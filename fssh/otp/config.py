"""
OTP Configuration — the password-protected seed record.

Stored as JSON at ``$FSSH_HOME/otp/config.enc`` with mode 0600. Binary
fields are base64 encoded. ``master_key_salt`` never changes for the life
of a config, so the same seed always derives the same MasterKey.

Security Note:
    The seed is only present encrypted. Never log decrypted seeds.
"""
import base64
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Callable

import orjson
from pydantic import BaseModel, Field, ValidationError, field_validator

from .totp import ALGORITHMS, SUPPORTED_DIGITS
from ..exceptions import ConfigurationError
from ..fileio import read_file, write_private_file
from ..vault.crypto import DEFAULT_PBKDF2_ITERATIONS

logger = logging.getLogger("fssh.otp")

OTP_CONFIG_VERSION = "fssh-otp/v1"


class OTPConfig(BaseModel):
    """Validated OTP configuration."""

    version: str = OTP_CONFIG_VERSION
    algorithm: str = "SHA1"
    digits: int = 6
    period: int = Field(default=30, ge=1)
    encrypted_seed: str = Field(min_length=1)
    seed_salt: str = Field(min_length=1)
    seed_nonce: str = Field(min_length=1)
    master_key_salt: str = Field(min_length=1)
    kdf_iterations: int = Field(default=DEFAULT_PBKDF2_ITERATIONS, ge=1)
    seed_unlock_ttl_seconds: int = Field(default=3600, ge=0)
    recovery_codes_hash: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        if v != OTP_CONFIG_VERSION:
            raise ValueError(f"config version unsupported: {v!r}")
        return v

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        v = v.upper()
        if v not in ALGORITHMS:
            raise ValueError(f"Unsupported TOTP algorithm: {v}")
        return v

    @field_validator("digits")
    @classmethod
    def validate_digits(cls, v: int) -> int:
        if v not in SUPPORTED_DIGITS:
            raise ValueError(f"TOTP digits must be 6 or 8, got {v}")
        return v

    # decoded views of the base64 fields

    @property
    def seed_ciphertext(self) -> bytes:
        return base64.b64decode(self.encrypted_seed)

    @property
    def seed_salt_bytes(self) -> bytes:
        return base64.b64decode(self.seed_salt)

    @property
    def seed_nonce_bytes(self) -> bytes:
        return base64.b64decode(self.seed_nonce)

    @property
    def master_key_salt_bytes(self) -> bytes:
        return base64.b64decode(self.master_key_salt)


def config_exists(path: Path) -> bool:
    return Path(path).is_file()


def load_config(path: Path) -> OTPConfig:
    """Load and validate the OTP config.

    Raises:
        ConfigurationError: Missing file, bad JSON, unsupported version or
            missing required fields.
    """
    path = Path(path)
    try:
        data = read_file(path)
    except FileNotFoundError:
        raise ConfigurationError(f"OTP config not found: {path}") from None
    try:
        raw = orjson.loads(data)
    except orjson.JSONDecodeError as err:
        raise ConfigurationError(f"OTP config is not valid JSON: {err}") from err
    if not isinstance(raw, dict):
        raise ConfigurationError("OTP config must be a JSON object")
    if raw.get("version") != OTP_CONFIG_VERSION:
        raise ConfigurationError(f"config version unsupported: {raw.get('version')!r}")
    try:
        return OTPConfig.model_validate(raw)
    except ValidationError as err:
        raise ConfigurationError(f"OTP config corrupted or incomplete: {err}") from err


def save_config(cfg: OTPConfig, path: Path) -> None:
    write_private_file(
        Path(path),
        orjson.dumps(cfg.model_dump(mode="json"), option=orjson.OPT_INDENT_2),
    )
    logger.debug("Saved OTP config to %s", path)


def update_config(path: Path, update: Callable[[OTPConfig], OTPConfig]) -> OTPConfig:
    """Load the config, apply ``update`` and save the result."""
    cfg = update(load_config(path))
    save_config(cfg, path)
    return cfg
