"""
Tests for the vault crypto core.

Tests cover:
- HKDF expansion and domain separation
- PBKDF2 password stretching
- AES-GCM seal/open and tamper detection
"""
import os

import pytest

from fssh.exceptions import AUTH_FAILED_MESSAGE, AuthenticationFailed
from fssh.vault.crypto import (
    KEY_LENGTH,
    NONCE_SIZE,
    derive_master_key,
    derive_record_key,
    expand,
    generate_master_key,
    open_sealed,
    seal,
    stretch_password,
    zeroize,
)


@pytest.fixture
def key():
    return generate_master_key()


class TestKeyDerivation:
    """HKDF and PBKDF2 derivations."""

    def test_expand_is_deterministic(self):
        """Same inputs give the same key."""
        secret, salt = os.urandom(20), os.urandom(32)
        assert expand(secret, salt, b"ctx") == expand(secret, salt, b"ctx")

    def test_expand_length(self):
        assert len(expand(b"secret", b"salt", b"ctx")) == KEY_LENGTH
        assert len(expand(b"secret", b"salt", b"ctx", length=64)) == 64

    def test_expand_separates_contexts(self):
        """Different info labels and salts give unrelated keys."""
        secret, salt = os.urandom(32), os.urandom(32)
        assert derive_master_key(secret, salt) != derive_record_key(secret, salt)
        assert derive_record_key(secret, salt) != derive_record_key(secret, os.urandom(32))

    def test_stretch_password(self):
        salt = os.urandom(32)
        first = stretch_password("password one", salt, iterations=1000)
        assert first == stretch_password("password one", salt, iterations=1000)
        assert first != stretch_password("password two", salt, iterations=1000)
        assert first != stretch_password("password one", salt, iterations=1001)
        assert len(first) == KEY_LENGTH

    def test_zeroize(self):
        buf = bytearray(b"secret")
        zeroize(buf)
        assert buf == bytearray(6)
        zeroize(None)


class TestSealing:
    """AES-256-GCM seal/open."""

    def test_roundtrip(self, key):
        nonce, ct = seal(key, b"private key bytes")
        assert len(nonce) == NONCE_SIZE
        assert open_sealed(key, nonce, ct) == b"private key bytes"

    def test_fresh_nonce_per_call(self, key):
        """Sealing the same plaintext twice never reuses a nonce."""
        n1, c1 = seal(key, b"data")
        n2, c2 = seal(key, b"data")
        assert n1 != n2
        assert c1 != c2

    def test_wrong_key(self, key):
        nonce, ct = seal(key, b"data")
        with pytest.raises(AuthenticationFailed):
            open_sealed(generate_master_key(), nonce, ct)

    @pytest.mark.parametrize("target", ["nonce", "ciphertext"])
    def test_bit_flip_detected(self, key, target):
        nonce, ct = seal(key, b"some plaintext")
        if target == "nonce":
            nonce = bytes([nonce[0] ^ 0x01]) + nonce[1:]
        else:
            ct = ct[:-1] + bytes([ct[-1] ^ 0x01])
        with pytest.raises(AuthenticationFailed):
            open_sealed(key, nonce, ct)

    def test_associated_data_bound(self, key):
        nonce, ct = seal(key, b"data", b"fp-1")
        assert open_sealed(key, nonce, ct, b"fp-1") == b"data"
        with pytest.raises(AuthenticationFailed):
            open_sealed(key, nonce, ct, b"fp-2")

    def test_malformed_inputs(self, key):
        nonce, ct = seal(key, b"data")
        with pytest.raises(AuthenticationFailed):
            open_sealed(key, nonce[:8], ct)
        with pytest.raises(AuthenticationFailed):
            open_sealed(key, nonce, ct[:4])

    def test_failure_message_is_generic(self, key):
        nonce, ct = seal(key, b"data")
        with pytest.raises(AuthenticationFailed) as exc:
            open_sealed(generate_master_key(), nonce, ct)
        assert str(exc.value) == AUTH_FAILED_MESSAGE
