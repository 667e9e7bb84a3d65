"""
fssh Configuration — filesystem layout and validated agent settings.

Reads settings from environment variables:
    FSSH_HOME = <directory, default ~/.fssh>
    FSSH_SOCKET = <agent socket path, default $FSSH_HOME/agent.sock>
    FSSH_REQUIRE_AUTH_PER_SIGN = <true|false, default true>
    FSSH_MASTER_KEY_TTL = <seconds, default 0>
    FSSH_LOG_LEVEL = <DEBUG|INFO|WARNING|ERROR, default INFO>

Security Note:
    Never log key material. Only log aliases, fingerprints and TTLs.
"""
import os
import sys
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("fssh")

KEYS_DIRNAME = "keys"
OTP_CONFIG_RELPATH = Path("otp") / "config.enc"
AUTH_MODE_FILENAME = "auth_mode.json"
SOCKET_FILENAME = "agent.sock"

_TRUE_VALUES = ("1", "true", "yes", "on")
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def default_home() -> Path:
    """Return the fssh state directory (``$FSSH_HOME`` or ``~/.fssh``)."""
    raw = os.environ.get("FSSH_HOME")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".fssh"


def setup_logging(level: str = "INFO") -> None:
    """Attach a stderr handler to the ``fssh`` logger hierarchy."""
    root = logging.getLogger("fssh")
    root.setLevel(level.upper())
    if not any(getattr(h, "_fssh_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT))
        handler._fssh_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)


class AgentSettings(BaseModel):
    """Validated agent settings."""

    home: Path = Field(default_factory=default_home)
    socket_path: Optional[Path] = None
    require_auth_per_sign: bool = True
    master_key_ttl: int = Field(default=0, ge=0)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level name."""
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return v

    @model_validator(mode="after")
    def fill_socket_path(self) -> "AgentSettings":
        """Default the socket path into the home directory."""
        if self.socket_path is None:
            self.socket_path = self.home / SOCKET_FILENAME
        return self

    @property
    def keys_dir(self) -> Path:
        return self.home / KEYS_DIRNAME

    @property
    def otp_config_path(self) -> Path:
        return self.home / OTP_CONFIG_RELPATH

    @property
    def auth_mode_path(self) -> Path:
        return self.home / AUTH_MODE_FILENAME

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Create AgentSettings by loading values from environment.

        Returns:
            Populated AgentSettings instance.
        """
        values: dict = {"home": default_home()}
        socket_path = os.environ.get("FSSH_SOCKET")
        if socket_path:
            values["socket_path"] = Path(socket_path).expanduser()
        require = os.environ.get("FSSH_REQUIRE_AUTH_PER_SIGN")
        if require is not None:
            values["require_auth_per_sign"] = require.strip().lower() in _TRUE_VALUES
        ttl = os.environ.get("FSSH_MASTER_KEY_TTL")
        if ttl is not None:
            values["master_key_ttl"] = int(ttl)
        level = os.environ.get("FSSH_LOG_LEVEL")
        if level:
            values["log_level"] = level
        return cls(**values)
