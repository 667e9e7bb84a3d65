"""
OTP setup flows — initialization, password change, TTL change, recovery.

The seed is sealed under ``PBKDF2(password, seed_salt)``; the MasterKey is
``HKDF(seed, master_key_salt)`` and is never written anywhere. Changing the
password re-seals the same seed, so the MasterKey and every key record stay
valid.

Security Note:
    Never log passwords, seeds or recovery codes.
"""
import base64
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import OTPConfig, load_config, save_config, update_config
from .recovery import (
    RecoveryCodes,
    generate_recovery_codes,
    hash_recovery_codes,
    looks_like_recovery_code,
)
from .totp import DEFAULT_PERIOD
from ..exceptions import AuthenticationFailed, ConfigurationError
from ..vault.crypto import (
    DEFAULT_PBKDF2_ITERATIONS,
    SALT_SIZE,
    derive_master_key as _derive_from_seed,
    open_sealed,
    random_bytes,
    seal,
    stretch_password,
)

logger = logging.getLogger("fssh.otp")

SEED_SIZE = 20  # 160-bit, the RFC 4226 recommended secret length
MIN_PASSWORD_LENGTH = 12


@dataclass
class OTPInitResult:
    """Outcome of ``initialize``: secrets to show the user exactly once."""

    seed: bytes
    master_key: bytes
    config: OTPConfig
    recovery_codes: list[str] = field(default_factory=list)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def validate_password_strength(password: str) -> None:
    """Raises ConfigurationError for passwords shorter than 12 characters."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ConfigurationError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def _seal_seed(seed: bytes, password: str, iterations: int) -> dict:
    salt = random_bytes(SALT_SIZE)
    nonce, ct = seal(stretch_password(password, salt, iterations), seed)
    return {
        "encrypted_seed": _b64(ct),
        "seed_salt": _b64(salt),
        "seed_nonce": _b64(nonce),
        "kdf_iterations": iterations,
    }


def decrypt_seed(cfg: OTPConfig, password: str) -> bytes:
    """Open the stored seed with ``password``.

    Raises:
        AuthenticationFailed: Wrong password or corrupted config; the two
            cases are not distinguished.
    """
    try:
        salt = cfg.seed_salt_bytes
        nonce = cfg.seed_nonce_bytes
        ct = cfg.seed_ciphertext
    except ValueError:
        raise AuthenticationFailed() from None
    key = stretch_password(password, salt, cfg.kdf_iterations)
    return open_sealed(key, nonce, ct)


def derive_master_key(seed: bytes, cfg: OTPConfig) -> bytes:
    return _derive_from_seed(seed, cfg.master_key_salt_bytes)


def build_config(
    seed: bytes,
    password: str,
    seed_unlock_ttl: int = 3600,
    algorithm: str = "SHA1",
    digits: int = 6,
    period: int = DEFAULT_PERIOD,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
    recovery_hashes: Optional[list[str]] = None,
) -> OTPConfig:
    """Seal ``seed`` under ``password`` with a fresh master key salt."""
    return OTPConfig(
        algorithm=algorithm,
        digits=digits,
        period=period,
        master_key_salt=_b64(random_bytes(SALT_SIZE)),
        seed_unlock_ttl_seconds=seed_unlock_ttl,
        recovery_codes_hash=list(recovery_hashes or []),
        **_seal_seed(seed, password, iterations),
    )


def initialize(
    password: str,
    path: Path,
    seed_unlock_ttl: int = 3600,
    algorithm: str = "SHA1",
    digits: int = 6,
    period: int = DEFAULT_PERIOD,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
    generate_recovery: bool = True,
    force: bool = False,
    seed: Optional[bytes] = None,
) -> OTPInitResult:
    """Create a new OTP configuration.

    Args:
        password: OTP password (min 12 characters).
        path: Where to write the config.
        seed_unlock_ttl: Seconds an unlocked seed stays cached (0 = never).
        algorithm: TOTP hash (SHA1, SHA256, SHA512).
        digits: Code length (6 or 8).
        period: Time step in seconds.
        iterations: PBKDF2 work factor.
        generate_recovery: Create a batch of 10 recovery codes.
        force: Replace an existing config.
        seed: Use this seed instead of a random one.

    Returns:
        OTPInitResult with the seed, the derived MasterKey and the plain
        recovery codes.

    Raises:
        ConfigurationError: Weak password or a config already exists.
    """
    path = Path(path)
    validate_password_strength(password)
    if path.exists() and not force:
        raise ConfigurationError(f"OTP config already exists: {path} (use force)")
    if seed is None:
        seed = random_bytes(SEED_SIZE)
    codes = generate_recovery_codes() if generate_recovery else []
    cfg = build_config(
        seed, password,
        seed_unlock_ttl=seed_unlock_ttl,
        algorithm=algorithm,
        digits=digits,
        period=period,
        iterations=iterations,
        recovery_hashes=hash_recovery_codes(codes),
    )
    save_config(cfg, path)
    logger.info(
        "OTP initialized: algorithm=%s digits=%d period=%d seed_ttl=%d recovery_codes=%d",
        cfg.algorithm, cfg.digits, cfg.period, cfg.seed_unlock_ttl_seconds, len(codes),
    )
    return OTPInitResult(
        seed=seed,
        master_key=derive_master_key(seed, cfg),
        config=cfg,
        recovery_codes=codes,
    )


def change_password(path: Path, old_password: str, new_password: str) -> OTPConfig:
    """Re-seal the seed under a new password; the MasterKey is unchanged."""
    validate_password_strength(new_password)

    def _update(cfg: OTPConfig) -> OTPConfig:
        seed = decrypt_seed(cfg, old_password)
        return cfg.model_copy(update=_seal_seed(seed, new_password, cfg.kdf_iterations))

    cfg = update_config(path, _update)
    logger.info("OTP password changed")
    return cfg


def set_seed_unlock_ttl(path: Path, seconds: int) -> OTPConfig:
    if seconds < 0:
        raise ConfigurationError("seed unlock TTL must be >= 0")
    cfg = update_config(
        path, lambda c: c.model_copy(update={"seed_unlock_ttl_seconds": seconds}),
    )
    logger.info("OTP seed unlock TTL set to %d seconds", seconds)
    return cfg


def recover_seed(path: Path, password: str, recovery_code: str) -> bytes:
    """Lost-authenticator recovery: a recovery code stands in for the TOTP code.

    The password is checked first, so a mistyped password never burns a
    recovery code. On success the code is removed from the config and the
    seed is returned for re-enrollment.

    Raises:
        AuthenticationFailed: Wrong password or unknown/used recovery code.
    """
    cfg = load_config(path)
    seed = decrypt_seed(cfg, password)
    codes = RecoveryCodes(cfg.recovery_codes_hash)
    if not looks_like_recovery_code(recovery_code) or not codes.consume(recovery_code):
        raise AuthenticationFailed()
    save_config(cfg.model_copy(update={"recovery_codes_hash": codes.hashes}), path)
    return seed
