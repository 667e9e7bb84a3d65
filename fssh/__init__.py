"""fssh — SSH agent for private keys that stay encrypted at rest.

Keys are sealed under a MasterKey released by Touch ID (platform secret
store + presence check) or by password + TOTP code.
"""
from .version import __version__

__all__ = ["__version__"]
