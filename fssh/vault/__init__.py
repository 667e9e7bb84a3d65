"""Vault — MasterKey derivation, sealed key records and rotation.

Security Note (Threat Model):
    Decrypted private keys exist in process memory only while a single
    signature is produced (or, in resident mode, for the agent lifetime).
    A memory dump of the agent process taken at that moment could expose
    them. This is an accepted limitation; hardware tokens are out of scope.
"""

from .crypto import expand, seal, open_sealed, stretch_password, generate_master_key
from .store import KeyStore, EncryptedRecord

__all__ = [
    "expand",
    "seal",
    "open_sealed",
    "stretch_password",
    "generate_master_key",
    "KeyStore",
    "EncryptedRecord",
]
