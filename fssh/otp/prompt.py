"""Interactive prompts for the password and one-time code."""
import re
import sys
import getpass
from abc import ABC, abstractmethod

from ..exceptions import AuthenticationFailed

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z~]|\x1b[@-Z\\-_]")
_STRIP_CHARS = {"\u3000", "\u00a0"}


def clean_input(value: str) -> str:
    """Drop ANSI escape sequences, control characters and odd whitespace."""
    value = _ANSI_ESCAPE.sub("", value.strip())
    kept = (
        ch for ch in value
        if ord(ch) >= 32 and ord(ch) != 127 and ch not in _STRIP_CHARS
    )
    return "".join(kept).strip()


class Prompter(ABC):
    """Source of user secrets for the OTP provider."""

    @abstractmethod
    def password(self, prompt: str) -> str:
        """Return the OTP password."""

    @abstractmethod
    def code(self, prompt: str) -> str:
        """Return a TOTP code (or a recovery code)."""


class ConsolePrompter(Prompter):
    """Reads from the controlling terminal, echo disabled for passwords."""

    def password(self, prompt: str) -> str:
        if sys.stdin.isatty():
            return getpass.getpass(prompt)
        sys.stderr.write(prompt)
        sys.stderr.flush()
        return clean_input(sys.stdin.readline())

    def code(self, prompt: str) -> str:
        sys.stderr.write(prompt)
        sys.stderr.flush()
        code = clean_input(sys.stdin.readline())
        if not code:
            raise AuthenticationFailed()
        return code
