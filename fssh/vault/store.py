"""
Encrypted Key Store — one sealed JSON record per imported SSH private key.

Layout::

    <keys_dir>/<alias>.enc   (mode 0600, directory 0700)

Each record carries the public key and fingerprint in clear so the agent
can list identities without unlocking anything. The PKCS#8 private key is
sealed with AES-GCM under ``HKDF(MasterKey, salt, "fssh-record-key-v1")``;
the record key itself is never stored.

The directory is scanned again on every call. Keys imported or removed by
another process are visible to a running agent immediately.

Security Note:
    Never log plaintext or ciphertext values. Only log aliases and
    fingerprints.
"""
import re
import base64
import binascii
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

import orjson
from pydantic import BaseModel, Field, ValidationError

from .crypto import SALT_SIZE, derive_record_key, open_sealed, random_bytes, seal
from .. import sshkeys
from ..exceptions import (
    AliasConflict,
    AuthenticationFailed,
    ConfigurationError,
    KeyNotFound,
)
from ..fileio import read_file, write_private_file

logger = logging.getLogger("fssh.vault")

RECORD_VERSION = "fssh-key/v1"
RECORD_SUFFIX = ".enc"

_ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9_@+-][A-Za-z0-9._@+-]{0,254}$")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: str) -> bytes:
    return base64.b64decode(value, validate=True)


def validate_alias(alias: str) -> None:
    """Validate an alias name.

    Raises:
        ConfigurationError: If alias is empty, too long, or not filename-safe.
    """
    if not alias or not _ALIAS_PATTERN.match(alias):
        raise ConfigurationError(
            f"invalid alias {alias!r}: use letters, digits and . _ @ + - "
            "(max 255 characters, not starting with '.')"
        )


class EncryptedRecord(BaseModel):
    """On-disk representation of one sealed private key."""

    version: str = RECORD_VERSION
    alias: str
    fingerprint: str
    key_type: str
    public_key: str  # base64 SSH wire blob
    comment: str = ""
    ciphertext: str
    salt: str
    nonce: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def public_blob(self) -> bytes:
        return _unb64(self.public_key)

    def associated_data(self) -> bytes:
        """AEAD associated data binding the ciphertext to its fingerprint."""
        return f"{RECORD_VERSION}:{self.fingerprint}".encode("utf-8")

    def to_json(self) -> bytes:
        return orjson.dumps(self.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

    @classmethod
    def from_json(cls, data: bytes) -> "EncryptedRecord":
        """Parse a record file.

        Raises:
            ConfigurationError: Malformed JSON, missing fields or an
                unsupported record version.
        """
        try:
            raw = orjson.loads(data)
        except orjson.JSONDecodeError as err:
            raise ConfigurationError(f"record is not valid JSON: {err}") from err
        if not isinstance(raw, dict):
            raise ConfigurationError("record must be a JSON object")
        if raw.get("version") != RECORD_VERSION:
            raise ConfigurationError(
                f"record version unsupported: {raw.get('version')!r}"
            )
        try:
            return cls.model_validate(raw)
        except ValidationError as err:
            raise ConfigurationError(f"record is missing required fields: {err}") from err


class KeyStore:
    """Directory of encrypted private-key records."""

    def __init__(self, directory: Path | str):
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, alias: str) -> Path:
        validate_alias(alias)
        return self._dir / f"{alias}{RECORD_SUFFIX}"

    # ------------------------------------------------------------------
    # Sealing
    # ------------------------------------------------------------------

    def seal_record(
        self,
        alias: str,
        private_key_der: bytes,
        master_key: bytes,
        comment: str = "",
        created_at: Optional[datetime] = None,
    ) -> EncryptedRecord:
        """Build a sealed record for ``private_key_der`` without writing it.

        A fresh salt and nonce are drawn on every call.
        """
        validate_alias(alias)
        key = sshkeys.load_pkcs8(private_key_der)
        blob = sshkeys.public_blob(key)
        salt = random_bytes(SALT_SIZE)
        record = EncryptedRecord(
            alias=alias,
            fingerprint=sshkeys.fingerprint(blob),
            key_type=sshkeys.key_type(blob),
            public_key=_b64(blob),
            comment=comment,
            ciphertext="",
            salt=_b64(salt),
            nonce="",
        )
        if created_at is not None:
            record.created_at = created_at
        nonce, ct = seal(
            derive_record_key(master_key, salt),
            private_key_der,
            record.associated_data(),
        )
        record.ciphertext = _b64(ct)
        record.nonce = _b64(nonce)
        return record

    def decrypt(self, record: EncryptedRecord, master_key: bytes) -> bytes:
        """Open a record's ciphertext.

        Raises:
            AuthenticationFailed: Wrong MasterKey or tampered record.
        """
        try:
            salt = _unb64(record.salt)
            nonce = _unb64(record.nonce)
            ct = _unb64(record.ciphertext)
        except (binascii.Error, ValueError):
            raise AuthenticationFailed() from None
        return open_sealed(
            derive_record_key(master_key, salt), nonce, ct, record.associated_data(),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def write_record(self, record: EncryptedRecord, path: Optional[Path] = None) -> Path:
        """Write ``record`` atomically; defaults to its alias path."""
        target = path or self.path_for(record.alias)
        write_private_file(target, record.to_json())
        return target

    def save(
        self,
        alias: str,
        private_key_der: bytes,
        master_key: bytes,
        comment: str = "",
        overwrite: bool = False,
    ) -> EncryptedRecord:
        """Seal and persist a private key under ``alias``.

        Re-importing the same key is allowed. Binding an alias that already
        holds a different key requires ``overwrite=True``.

        Raises:
            AliasConflict: Alias already bound to another fingerprint.
        """
        record = self.seal_record(alias, private_key_der, master_key, comment)
        try:
            existing = self._read_optional(alias)
        except ConfigurationError:
            if not overwrite:
                raise
            logger.warning("Replacing unreadable key record alias=%s", alias)
            existing = None
        if existing is not None:
            if existing.fingerprint != record.fingerprint and not overwrite:
                raise AliasConflict(
                    f"alias {alias!r} already holds key {existing.fingerprint}; "
                    "pass overwrite=True to replace it"
                )
            if existing.fingerprint == record.fingerprint:
                record.created_at = existing.created_at
        self.write_record(record)
        logger.info(
            "Stored key alias=%s fingerprint=%s type=%s",
            alias, record.fingerprint, record.key_type,
        )
        return record

    def import_key(
        self,
        alias: str,
        key_data: bytes,
        master_key: bytes,
        passphrase: Optional[str] = None,
        comment: str = "",
        overwrite: bool = False,
    ) -> EncryptedRecord:
        """Parse an OpenSSH/PEM private key file and store it sealed."""
        key = sshkeys.load_private_key(key_data, passphrase)
        return self.save(
            alias, sshkeys.to_pkcs8(key), master_key,
            comment=comment, overwrite=overwrite,
        )

    def read_record(self, alias: str) -> EncryptedRecord:
        """Read a record without decrypting it.

        Raises:
            KeyNotFound: No record for ``alias``.
        """
        record = self._read_optional(alias)
        if record is None:
            raise KeyNotFound(f"no key stored under alias {alias!r}")
        return record

    def _read_optional(self, alias: str) -> Optional[EncryptedRecord]:
        try:
            data = read_file(self.path_for(alias))
        except FileNotFoundError:
            return None
        return EncryptedRecord.from_json(data)

    def load(self, alias: str, master_key: bytes) -> bytes:
        """Decrypt the PKCS#8 private key stored under ``alias``.

        Raises:
            KeyNotFound: No record for ``alias``.
            AuthenticationFailed: Wrong MasterKey or corrupted record.
        """
        return self.decrypt(self.read_record(alias), master_key)

    def export_pem(
        self, alias: str, master_key: bytes, passphrase: Optional[str] = None,
    ) -> bytes:
        """Return the private key as PKCS#8 PEM, optionally encrypted."""
        key = sshkeys.load_pkcs8(self.load(alias, master_key))
        return sshkeys.to_pkcs8_pem(key, passphrase)

    def remove(self, alias: str) -> None:
        """Delete the record for ``alias``.

        Raises:
            KeyNotFound: No record for ``alias``.
        """
        try:
            self.path_for(alias).unlink()
        except FileNotFoundError:
            raise KeyNotFound(f"no key stored under alias {alias!r}") from None
        logger.info("Removed key alias=%s", alias)

    def exists(self, alias: str) -> bool:
        return self.path_for(alias).is_file()

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def aliases(self) -> list[str]:
        """Aliases of every record file, sorted."""
        if not self._dir.is_dir():
            return []
        return sorted(
            p.name[: -len(RECORD_SUFFIX)]
            for p in self._dir.iterdir()
            if p.is_file() and p.name.endswith(RECORD_SUFFIX) and not p.name.startswith(".")
        )

    def list_metadata(self) -> list[EncryptedRecord]:
        """Return every readable record without decrypting anything.

        Malformed files are skipped with a warning so one bad file does not
        hide the rest of the keys.
        """
        records = []
        for alias in self.aliases():
            try:
                record = self.read_record(alias)
            except (ConfigurationError, KeyNotFound) as err:
                logger.warning("Skipping unreadable key record alias=%s: %s", alias, err)
                continue
            records.append(record)
        return records

    def find_by_fingerprint(self, fp: str) -> Optional[EncryptedRecord]:
        """Resolve a fingerprint to its record through a fresh scan."""
        for record in self.list_metadata():
            if record.fingerprint == fp:
                return record
        return None
