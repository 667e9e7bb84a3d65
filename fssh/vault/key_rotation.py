"""
Vault Key Rotation — MasterKey initialization and all-or-nothing rekey.

Rekey runs in phases so a failure at any point leaves the old MasterKey and
every record usable:

1. decrypt every record under the old key (any failure aborts, nothing
   written);
2. seal every record under the new key (fresh salt and nonce) into a
   pending file beside the live one;
3. persist the new key through ``commit`` (failure discards the pending
   files);
4. move each pending file over its live record.

Security Note:
    Plaintext keys exist in memory only for the duration of the rotation.
    Never log plaintext or ciphertext values.
"""
import os
import logging
from pathlib import Path
from typing import Callable

from .crypto import generate_master_key, random_bytes
from .store import KeyStore
from ..auth.secret_vault import DEFAULT_PRESENCE_REASON, SecretVault
from ..auth.touchid import TouchIDProvider
from ..exceptions import AuthenticationFailed, ConfigurationError, IOFailure
from ..otp.config import load_config, save_config
from ..otp.setup import SEED_SIZE, build_config, decrypt_seed, derive_master_key
from ..otp.totp import verify

logger = logging.getLogger("fssh.vault")

PENDING_SUFFIX = ".pending"


def initialize_touchid(vault: SecretVault, force: bool = False) -> bytes:
    """Generate a MasterKey and store it in the secret vault.

    Raises:
        ConfigurationError: A key already exists and ``force`` is False.
    """
    if vault.exists() and not force:
        raise ConfigurationError("master key already exists (use force to replace)")
    master_key = generate_master_key()
    vault.store(master_key, overwrite=force)
    logger.info("Initialized Touch ID protected master key")
    return master_key


def _discard(paths: list[Path]) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def rotate_master_key(
    store: KeyStore,
    old_key: bytes,
    new_key: bytes,
    commit: Callable[[bytes], None],
) -> dict:
    """Re-encrypt every record from ``old_key`` to ``new_key``.

    Args:
        store: Key store holding the records.
        old_key: Current MasterKey.
        new_key: Replacement MasterKey.
        commit: Persists ``new_key``; called only after every record has
            been re-sealed.

    Returns:
        Stats dict with keys: total, rotated.

    Raises:
        AuthenticationFailed: A record does not open under ``old_key``;
            nothing was modified.
    """
    aliases = store.aliases()
    stats = {"total": len(aliases), "rotated": 0}
    logger.info("Starting key rotation of %d record(s)", len(aliases))

    # phase 1: decrypt everything first
    plaintexts = []
    for alias in aliases:
        record = store.read_record(alias)
        try:
            der = store.decrypt(record, old_key)
        except AuthenticationFailed:
            logger.error("Rotation aborted: record alias=%s does not open", alias)
            raise
        plaintexts.append((record, der))

    # phase 2: stage re-sealed records
    pending: list[tuple[Path, Path]] = []
    try:
        for record, der in plaintexts:
            resealed = store.seal_record(
                record.alias, der, new_key,
                comment=record.comment, created_at=record.created_at,
            )
            live = store.path_for(record.alias)
            staged = live.with_name(live.name + PENDING_SUFFIX)
            store.write_record(resealed, staged)
            pending.append((staged, live))
    except Exception:
        _discard([staged for staged, _ in pending])
        raise
    finally:
        plaintexts.clear()

    # phase 3: the new key becomes authoritative
    try:
        commit(new_key)
    except Exception:
        logger.error("Rotation aborted: new master key could not be stored")
        _discard([staged for staged, _ in pending])
        raise

    # phase 4: swap records in
    for staged, live in pending:
        try:
            os.replace(staged, live)
        except OSError as err:
            raise IOFailure(f"cannot replace {live}: {err}") from err
        stats["rotated"] += 1

    logger.info("Key rotation complete: %s", stats)
    return stats


def rekey_touchid(
    vault: SecretVault,
    store: KeyStore,
    reason: str = DEFAULT_PRESENCE_REASON,
) -> dict:
    """Rotate the Touch ID mode MasterKey held by ``vault``."""
    old_key = TouchIDProvider(vault, reason).unlock_master_key()
    new_key = generate_master_key()
    return rotate_master_key(
        store, old_key, new_key,
        commit=lambda key: vault.store(key, overwrite=True),
    )


def rekey_otp(
    config_path: Path,
    store: KeyStore,
    password: str,
    code: str,
) -> bytes:
    """Rotate the OTP mode MasterKey by replacing the seed.

    The current password and TOTP code must verify. A new seed and master
    key salt are generated and sealed under the same password; recovery
    codes carry over.

    Returns:
        The new seed, which must be enrolled in the authenticator again.

    Raises:
        AuthenticationFailed: Wrong password or code; nothing modified.
    """
    cfg = load_config(config_path)
    seed = decrypt_seed(cfg, password)
    if not verify(seed, code, cfg.algorithm, cfg.digits, cfg.period):
        raise AuthenticationFailed()
    old_key = derive_master_key(seed, cfg)

    new_seed = random_bytes(SEED_SIZE)
    new_cfg = build_config(
        new_seed, password,
        seed_unlock_ttl=cfg.seed_unlock_ttl_seconds,
        algorithm=cfg.algorithm,
        digits=cfg.digits,
        period=cfg.period,
        iterations=cfg.kdf_iterations,
        recovery_hashes=cfg.recovery_codes_hash,
    )
    new_key = derive_master_key(new_seed, new_cfg)
    rotate_master_key(
        store, old_key, new_key,
        commit=lambda _key: save_config(new_cfg, config_path),
    )
    logger.info("OTP seed rotated; re-enroll the authenticator")
    return new_seed
