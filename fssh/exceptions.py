"""
fssh exceptions.

Authentication failures share a single generic message on purpose: callers
must not be able to tell a wrong password from a wrong code, a declined
presence check or a corrupted ciphertext.
"""

AUTH_FAILED_MESSAGE = "authentication failed"


class FsshError(Exception):
    """Base class for every error raised by fssh."""


class AuthenticationFailed(FsshError):
    """Wrong password, wrong code, declined presence or tampered data."""

    def __init__(self, message: str = AUTH_FAILED_MESSAGE):
        super().__init__(message)


class KeyNotFound(FsshError):
    """No stored record matches the requested alias or fingerprint."""


class UnsupportedOperation(FsshError):
    """Agent operation intentionally not implemented."""


class ConfigurationError(FsshError):
    """Malformed, missing or version-mismatched persisted configuration."""


class AliasConflict(ConfigurationError):
    """An alias is already bound to a different key."""


class IOFailure(FsshError):
    """Filesystem or socket failure."""


class ProtocolError(FsshError):
    """Malformed SSH agent wire message."""
