"""
Recovery codes — single-use backup codes stored only as SHA-256 hashes.

Format: ``XXXX-XXXX-XXXX-XXXX`` over an alphabet without look-alike
characters (no 0/O, 1/I/L).
"""
import hmac
import hashlib
import secrets
import logging
from typing import Iterable, Optional

logger = logging.getLogger("fssh.otp")

RECOVERY_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
DEFAULT_RECOVERY_COUNT = 10
_GROUPS = 4
_GROUP_SIZE = 4


def normalize_recovery_code(code: str) -> str:
    return code.strip().upper()


def generate_recovery_code() -> str:
    groups = (
        "".join(secrets.choice(RECOVERY_ALPHABET) for _ in range(_GROUP_SIZE))
        for _ in range(_GROUPS)
    )
    return "-".join(groups)


def generate_recovery_codes(count: int = DEFAULT_RECOVERY_COUNT) -> list[str]:
    """Generate ``count`` distinct recovery codes."""
    codes: list[str] = []
    while len(codes) < count:
        code = generate_recovery_code()
        if code not in codes:
            codes.append(code)
    return codes


def hash_recovery_code(code: str) -> str:
    return hashlib.sha256(normalize_recovery_code(code).encode("utf-8")).hexdigest()


def hash_recovery_codes(codes: Iterable[str]) -> list[str]:
    return [hash_recovery_code(code) for code in codes]


def looks_like_recovery_code(code: str) -> bool:
    parts = normalize_recovery_code(code).split("-")
    return (
        len(parts) == _GROUPS
        and all(len(p) == _GROUP_SIZE for p in parts)
        and all(c in RECOVERY_ALPHABET for p in parts for c in p)
    )


def verify_recovery_code(code: str, hashes: Iterable[str]) -> Optional[int]:
    """Return the index of the matching hash, or None.

    Every stored hash is compared in constant time.
    """
    candidate = hash_recovery_code(code)
    found = None
    for index, stored in enumerate(hashes):
        if hmac.compare_digest(candidate, stored) and found is None:
            found = index
    return found


class RecoveryCodes:
    """Mutable set of unused recovery code hashes."""

    def __init__(self, hashes: Iterable[str] = ()):
        self._hashes = list(hashes)

    @property
    def hashes(self) -> list[str]:
        return list(self._hashes)

    @property
    def remaining(self) -> int:
        return len(self._hashes)

    def consume(self, code: str) -> bool:
        """Verify ``code`` and remove it from the valid set on success."""
        index = verify_recovery_code(code, self._hashes)
        if index is None:
            logger.warning("Recovery code rejected")
            return False
        del self._hashes[index]
        logger.info("Recovery code consumed, %d remaining", len(self._hashes))
        return True
