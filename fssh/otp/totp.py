"""
TOTP Engine — HOTP (RFC 4226) and TOTP (RFC 6238) code generation.

Verification accepts the codes of the previous, current and next time step
to absorb clock skew between this host and the authenticator device.
"""
import hmac
import time
import base64
import hashlib
import struct
from typing import Optional
from urllib.parse import quote, urlencode

from ..exceptions import ConfigurationError

ALGORITHMS = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}
SUPPORTED_DIGITS = (6, 8)
DEFAULT_PERIOD = 30

# accepted time steps on each side of the current one
SKEW_WINDOWS = 1


def _digest(algorithm: str):
    try:
        return ALGORITHMS[algorithm.upper()]
    except KeyError:
        raise ConfigurationError(
            f"unsupported TOTP algorithm: {algorithm} "
            f"(supported: {', '.join(ALGORITHMS)})"
        ) from None


def _check_digits(digits: int) -> None:
    if digits not in SUPPORTED_DIGITS:
        raise ConfigurationError(f"TOTP digits must be 6 or 8, got {digits}")


def generate(seed: bytes, counter: int, algorithm: str = "SHA1", digits: int = 6) -> str:
    """HOTP value for ``counter``, left-zero-padded to ``digits``."""
    _check_digits(digits)
    mac = hmac.new(bytes(seed), struct.pack(">Q", counter), _digest(algorithm)).digest()
    offset = mac[-1] & 0x0F
    truncated = struct.unpack(">I", mac[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(truncated % 10 ** digits).zfill(digits)


def time_counter(period: int = DEFAULT_PERIOD, now: Optional[float] = None) -> int:
    if now is None:
        now = time.time()
    return int(now) // period


def verify(
    seed: bytes,
    code: str,
    algorithm: str = "SHA1",
    digits: int = 6,
    period: int = DEFAULT_PERIOD,
    now: Optional[float] = None,
) -> bool:
    """Check ``code`` against the current time step ± ``SKEW_WINDOWS``.

    Args:
        seed: Raw TOTP secret.
        code: Code typed by the user.
        algorithm: HMAC hash name (SHA1, SHA256 or SHA512).
        digits: Expected code length.
        period: Time step in seconds.
        now: Unix time to verify at (defaults to the current time).

    Returns:
        True if the code matches any accepted time step.
    """
    code = code.strip()
    if len(code) != digits or not (code.isascii() and code.isdigit()):
        return False
    counter = time_counter(period, now)
    matched = False
    for offset in range(-SKEW_WINDOWS, SKEW_WINDOWS + 1):
        expected = generate(seed, counter + offset, algorithm, digits)
        # no early exit: every window is always computed
        matched |= hmac.compare_digest(expected, code)
    return matched


def current_code(
    seed: bytes,
    algorithm: str = "SHA1",
    digits: int = 6,
    period: int = DEFAULT_PERIOD,
    now: Optional[float] = None,
) -> str:
    return generate(seed, time_counter(period, now), algorithm, digits)


def time_remaining(period: int = DEFAULT_PERIOD, now: Optional[float] = None) -> int:
    """Seconds left before the current code rolls over."""
    if now is None:
        now = time.time()
    return period - int(now) % period


def provisioning_uri(
    seed: bytes,
    account: str,
    issuer: str = "fssh",
    algorithm: str = "SHA1",
    digits: int = 6,
    period: int = DEFAULT_PERIOD,
) -> str:
    """``otpauth://`` URI for enrolling the seed in an authenticator app."""
    _digest(algorithm)
    _check_digits(digits)
    secret = base64.b32encode(bytes(seed)).decode("ascii").rstrip("=")
    label = quote(f"{issuer}:{account}")
    params = urlencode({
        "secret": secret,
        "issuer": issuer,
        "algorithm": algorithm.upper(),
        "digits": digits,
        "period": period,
    })
    return f"otpauth://totp/{label}?{params}"
