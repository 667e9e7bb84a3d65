"""
Vault Crypto Core — Key derivation, password stretching and AEAD sealing.

Implements the layered key scheme used by fssh:
- Master layer: HKDF(otp_seed, master_key_salt, "fssh-master-key-v1") → MasterKey
- Record layer: HKDF(MasterKey, record_salt, "fssh-record-key-v1") → AES-GCM → ciphertext
- Seed layer: PBKDF2(password, seed_salt) → AES-GCM → encrypted_seed

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit and generated inside ``seal`` on every call;
    no encryption API accepts a caller-supplied nonce.
"""
import os
import logging
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import AuthenticationFailed

logger = logging.getLogger("fssh.vault")

NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
SALT_SIZE = 32
TAG_SIZE = 16

MASTER_KEY_INFO = b"fssh-master-key-v1"
RECORD_KEY_INFO = b"fssh-record-key-v1"

DEFAULT_PBKDF2_ITERATIONS = 100_000


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------

def random_bytes(size: int) -> bytes:
    """Return ``size`` bytes from the OS CSPRNG."""
    return os.urandom(size)


def generate_master_key() -> bytes:
    """Generate a fresh random 32-byte MasterKey."""
    return random_bytes(KEY_LENGTH)


def zeroize(buf: Optional[bytearray]) -> None:
    """Overwrite a mutable buffer with zeros in place."""
    if buf is None:
        return
    for i in range(len(buf)):
        buf[i] = 0


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def expand(
    secret: bytes,
    salt: Optional[bytes],
    info: bytes,
    length: int = KEY_LENGTH,
) -> bytes:
    """Derive ``length`` bytes from ``secret`` using HKDF-SHA256.

    Args:
        secret: Input key material (OTP seed or MasterKey).
        salt: Per-purpose salt (``master_key_salt`` or a record salt).
        info: Domain separation label, e.g. ``RECORD_KEY_INFO``.
        length: Output size in bytes.

    Returns:
        Derived key bytes; identical inputs always give identical output.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    )
    return hkdf.derive(bytes(secret))


def derive_master_key(seed: bytes, master_key_salt: bytes) -> bytes:
    """Derive the MasterKey from an OTP seed."""
    return expand(seed, master_key_salt, MASTER_KEY_INFO)


def derive_record_key(master_key: bytes, salt: bytes) -> bytes:
    """Derive the per-record encryption key from the MasterKey."""
    return expand(master_key, salt, RECORD_KEY_INFO)


def stretch_password(
    password: str,
    salt: bytes,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
) -> bytes:
    """Derive a 32-byte key from a password using PBKDF2-HMAC-SHA256.

    ``iterations`` is the work factor; it is persisted alongside the salt
    so it can be raised for new configurations without breaking old ones.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# Authenticated encryption
# ---------------------------------------------------------------------------

def seal(
    key: bytes,
    plaintext: bytes,
    associated_data: Optional[bytes] = None,
) -> tuple[bytes, bytes]:
    """Encrypt ``plaintext`` with AES-256-GCM under a fresh random nonce.

    Args:
        key: 32-byte encryption key.
        plaintext: Data to encrypt.
        associated_data: Optional data bound to the ciphertext.

    Returns:
        Tuple of (nonce, ciphertext_with_tag).
    """
    nonce = random_bytes(NONCE_SIZE)
    ct = AESGCM(bytes(key)).encrypt(nonce, plaintext, associated_data)
    return nonce, ct


def open_sealed(
    key: bytes,
    nonce: bytes,
    ciphertext: bytes,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """Decrypt and authenticate AES-256-GCM ciphertext.

    Raises:
        AuthenticationFailed: On a wrong key, a tampered ciphertext, nonce
            or associated data, or a malformed input. The message is the
            same in every case.
    """
    if len(nonce) != NONCE_SIZE or len(ciphertext) < TAG_SIZE:
        raise AuthenticationFailed()
    try:
        return AESGCM(bytes(key)).decrypt(nonce, ciphertext, associated_data)
    except (InvalidTag, ValueError):
        raise AuthenticationFailed() from None
