"""
OTP provider — password + TOTP code, with two independent TTL caches.

Tiers:
- **seed**: the TOTP seed, unlocked with the password. TTL comes from the
  OTP config (``seed_unlock_ttl_seconds``).
- **master key**: ``HKDF(seed, master_key_salt)``, released after a valid
  TOTP code. TTL is the agent's ``master_key_ttl``.

A TTL of zero disables the tier's cache. Expiry is checked lazily when a
secret is requested; nothing runs in the background.

Locking policy: one lock guards both caches. Prompts, PBKDF2 and TOTP
verification run outside it and only the final cache write is taken under
the lock, so a connection waiting on the user never blocks cache hits from
other connections. Two connections missing the cache at the same moment
may therefore both prompt; the second successful unlock simply refreshes
the cache.

Security Note:
    Cached secrets live in ``bytearray`` buffers that are zeroed on
    ``clear_cache()``. Never log seeds, master keys, passwords or codes.
"""
import time
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from .base import AuthMode, AuthProvider
from ..exceptions import AuthenticationFailed, ConfigurationError
from ..otp.config import OTPConfig, config_exists, load_config
from ..otp.prompt import ConsolePrompter, Prompter
from ..otp.setup import decrypt_seed, derive_master_key
from ..otp.totp import verify
from ..vault.crypto import zeroize

logger = logging.getLogger("fssh.auth")

PASSWORD_PROMPT = "OTP password: "


class _CacheEntry:
    """One cached secret and its absolute expiry time."""

    __slots__ = ("value", "expiry")

    def __init__(self):
        self.value: Optional[bytearray] = None
        self.expiry = 0.0

    def get(self, now: float) -> Optional[bytes]:
        if self.value is not None and now < self.expiry:
            return bytes(self.value)
        return None

    def put(self, value: bytes, ttl: int, now: float) -> None:
        self.clear()
        if ttl > 0:
            self.value = bytearray(value)
            self.expiry = now + ttl

    def clear(self) -> None:
        zeroize(self.value)
        self.value = None
        self.expiry = 0.0


class OTPProvider(AuthProvider):
    """Two-tier password + TOTP unlock with TTL caches."""

    mode = AuthMode.OTP

    def __init__(
        self,
        config_path: Path | str,
        master_key_ttl: int = 0,
        prompter: Optional[Prompter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config_path = Path(config_path)
        self._master_key_ttl = master_key_ttl
        self._prompter = prompter or ConsolePrompter()
        self._clock = clock
        self._lock = threading.Lock()
        self._seed = _CacheEntry()
        self._master_key = _CacheEntry()
        self._config: Optional[OTPConfig] = None

    @property
    def master_key_ttl(self) -> int:
        return self._master_key_ttl

    def _load_config(self) -> OTPConfig:
        # re-read so password, TTL or seed changes made by another process apply
        cfg = load_config(self._config_path)
        with self._lock:
            previous = self._config
            if previous is not None and previous.master_key_salt != cfg.master_key_salt:
                # seed rotated elsewhere: cached secrets belong to the old seed
                self._seed.clear()
                self._master_key.clear()
                logger.info("OTP seed replaced on disk, caches cleared")
            self._config = cfg
        return cfg

    # ------------------------------------------------------------------
    # Seed tier
    # ------------------------------------------------------------------

    def unlock_seed(self) -> bytes:
        """Return the TOTP seed, prompting for the password on a cache miss.

        Raises:
            AuthenticationFailed: Wrong password or corrupted seed record.
            ConfigurationError: OTP config missing or invalid.
        """
        with self._lock:
            cached = self._seed.get(self._clock())
        if cached is not None:
            logger.debug("OTP seed cache hit")
            return cached

        cfg = self._load_config()
        logger.info("OTP seed locked, password required")
        try:
            password = self._prompter.password(PASSWORD_PROMPT)
        except EOFError:
            raise AuthenticationFailed() from None
        try:
            seed = decrypt_seed(cfg, password)
        except AuthenticationFailed:
            logger.warning("OTP seed unlock failed")
            raise

        ttl = cfg.seed_unlock_ttl_seconds
        with self._lock:
            self._seed.put(seed, ttl, self._clock())
        if ttl > 0:
            logger.info("OTP seed unlocked and cached for %d seconds", ttl)
        else:
            logger.info("OTP seed unlocked (not cached, TTL=0)")
        return seed

    # ------------------------------------------------------------------
    # Master key tier
    # ------------------------------------------------------------------

    def unlock_master_key(self) -> bytes:
        """Return the MasterKey, prompting for seed password and TOTP code as needed.

        Raises:
            AuthenticationFailed: Wrong password or code; caches untouched.
        """
        with self._lock:
            cached = self._master_key.get(self._clock())
        if cached is not None:
            logger.debug("Master key cache hit")
            return cached

        logger.info("Master key locked, re-authentication required")
        self._load_config()
        seed = self.unlock_seed()
        with self._lock:
            cfg = self._config
        try:
            code = self._prompter.code(f"{cfg.digits}-digit code: ")
        except EOFError:
            raise AuthenticationFailed() from None
        if not verify(seed, code, cfg.algorithm, cfg.digits, cfg.period, now=self._clock()):
            logger.warning("TOTP verification failed")
            raise AuthenticationFailed()

        master_key = derive_master_key(seed, cfg)
        with self._lock:
            self._master_key.put(master_key, self._master_key_ttl, self._clock())
        if self._master_key_ttl > 0:
            logger.info("Master key cached for %d seconds", self._master_key_ttl)
        return master_key

    def is_available(self) -> bool:
        if not config_exists(self._config_path):
            return False
        try:
            self._load_config()
        except ConfigurationError as err:
            logger.warning("OTP config unusable: %s", err)
            return False
        return True

    def clear_cache(self) -> None:
        """Zero both cached secrets and mark them expired."""
        with self._lock:
            self._seed.clear()
            self._master_key.clear()
        logger.info("OTP caches cleared")
