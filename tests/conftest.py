"""Shared fixtures: key material, fake prompts/clock and an OTP setup."""
import os
import tempfile
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from fssh.otp.prompt import Prompter
from fssh.otp.setup import initialize
from fssh.otp.totp import current_code
from fssh.vault.store import KeyStore

PASSWORD = "correct horse battery"
# PBKDF2 work factor kept low so the suite stays fast
FAST_ITERATIONS = 1000
SEED = b"12345678901234567890"
NOW = 1_700_000_000.0


# --- Helpers ---

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePrompter(Prompter):
    """Answers prompts from fixed values and counts how often it was asked."""

    def __init__(self, password: str = PASSWORD, code=None):
        self._password = password
        self._code = code
        self.password_prompts = 0
        self.code_prompts = 0

    def password(self, prompt: str) -> str:
        self.password_prompts += 1
        return self._password

    def code(self, prompt: str) -> str:
        self.code_prompts += 1
        return self._code() if callable(self._code) else self._code


def openssh_bytes(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )


def pem_bytes(key, passphrase: str = None) -> bytes:
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode())
    else:
        encryption = serialization.NoEncryption()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


# --- Key material ---

@pytest.fixture(scope="session")
def ed25519_key():
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ecdsa_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def master_key():
    return os.urandom(32)


@pytest.fixture
def store(tmp_path):
    return KeyStore(tmp_path / "keys")


# --- OTP ---

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def otp_path(tmp_path):
    return tmp_path / "otp" / "config.enc"


@pytest.fixture
def otp_setup(otp_path):
    """An initialized OTP config with a known seed."""
    return initialize(
        PASSWORD, otp_path, iterations=FAST_ITERATIONS, seed=SEED,
    )


@pytest.fixture
def prompter(clock):
    """Prompter typing the right password and the code valid at ``clock``."""
    return FakePrompter(code=lambda: current_code(SEED, now=clock()))


@pytest.fixture
def short_dir():
    """Short directory for unix sockets (path length is limited)."""
    with tempfile.TemporaryDirectory(prefix="fssh-") as tmp:
        yield Path(tmp)
