"""
Agent request handlers — List, Sign and Extension over the encrypted store.

``SecureAgent`` unlocks the MasterKey on every signature (the provider may
answer from its cache). ``ResidentAgent`` unlocks once at start-up and keeps
every private key in memory. Both answer the wire protocol identically.

Every request is isolated: any error becomes ``SSH_AGENT_FAILURE`` for that
request and the connection stays usable.

Security Note:
    Never log challenges, signatures or key material. Only log aliases,
    fingerprints and algorithms.
"""
import logging
from abc import ABC, abstractmethod

from .protocol import (
    FAILURE,
    SSH_AGENT_IDENTITIES_ANSWER,
    SSH_AGENT_SIGN_RESPONSE,
    SSH_AGENT_SUCCESS,
    SSH_AGENTC_EXTENSION,
    SSH_AGENTC_REQUEST_IDENTITIES,
    SSH_AGENTC_SIGN_REQUEST,
    SUPPORTED_SIGN_FLAGS,
    UNSUPPORTED_REQUESTS,
    frame,
)
from .. import sshkeys
from ..auth.base import AuthProvider
from ..exceptions import (
    AuthenticationFailed,
    ConfigurationError,
    FsshError,
    KeyNotFound,
    UnsupportedOperation,
)
from ..vault.store import KeyStore
from ..wire import Reader, pack_string, pack_uint32

logger = logging.getLogger("fssh.agent")

EXT_QUERY = "query"
EXT_INFO = "ext-info-c"
SUPPORTED_EXTENSIONS = (EXT_QUERY, EXT_INFO)


class AgentHandler(ABC):
    """Decodes one request and produces one framed reply."""

    def __init__(self, store: KeyStore, provider: AuthProvider):
        self._store = store
        self._provider = provider
        self._handlers = {
            SSH_AGENTC_REQUEST_IDENTITIES: self._request_identities,
            SSH_AGENTC_SIGN_REQUEST: self._sign_request,
            SSH_AGENTC_EXTENSION: self._extension,
        }

    @property
    def provider(self) -> AuthProvider:
        return self._provider

    def dispatch(self, message: bytes) -> bytes:
        """Handle a request body (type byte + payload) and return a reply frame."""
        if not message:
            return FAILURE
        msg_type = message[0]
        handler = self._handlers.get(msg_type)
        try:
            if handler is None:
                name = UNSUPPORTED_REQUESTS.get(msg_type, f"type {msg_type}")
                raise UnsupportedOperation(f"agent operation not supported: {name}")
            return handler(Reader(message[1:]))
        except UnsupportedOperation as err:
            logger.info("%s", err)
        except AuthenticationFailed:
            logger.warning("Signing refused: authentication failed")
        except KeyNotFound as err:
            logger.warning("Signing refused: %s", err)
        except FsshError as err:
            logger.error("Request type %d failed: %s", msg_type, err)
        except Exception:
            logger.exception("Unexpected error handling request type %d", msg_type)
        return FAILURE

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request_identities(self, reader: Reader) -> bytes:
        identities = self.identities()
        body = [pack_uint32(len(identities))]
        for blob, comment in identities:
            body.append(pack_string(blob))
            body.append(pack_string(comment))
        logger.debug("Listed %d identities", len(identities))
        return frame(SSH_AGENT_IDENTITIES_ANSWER, b"".join(body))

    def _sign_request(self, reader: Reader) -> bytes:
        blob = reader.string()
        data = reader.string()
        flags = 0 if reader.exhausted else reader.uint32()
        signature = self.sign(blob, data, flags)
        return frame(SSH_AGENT_SIGN_RESPONSE, pack_string(signature))

    def _extension(self, reader: Reader) -> bytes:
        name = reader.text()
        if name == EXT_QUERY:
            payload = pack_string(EXT_QUERY) + b"".join(
                pack_string(ext) for ext in SUPPORTED_EXTENSIONS
            )
            return frame(SSH_AGENT_SUCCESS, payload)
        if name == EXT_INFO:
            # advertise rsa-sha2-256/512 signature flags
            logger.debug("Extension %s: flags=%d", name, SUPPORTED_SIGN_FLAGS)
            return frame(SSH_AGENT_SUCCESS, pack_uint32(SUPPORTED_SIGN_FLAGS))
        raise UnsupportedOperation(f"agent extension not supported: {name}")

    # ------------------------------------------------------------------
    # Key access
    # ------------------------------------------------------------------

    @abstractmethod
    def identities(self) -> list[tuple[bytes, str]]:
        """(public key blob, comment) for every available key."""

    @abstractmethod
    def sign(self, blob: bytes, data: bytes, flags: int) -> bytes:
        """SSH signature blob over ``data`` with the key matching ``blob``."""


class SecureAgent(AgentHandler):
    """Decrypts the requested key for each signature and drops it afterwards."""

    def identities(self) -> list[tuple[bytes, str]]:
        result = []
        for record in self._store.list_metadata():
            try:
                result.append((record.public_blob, record.alias))
            except ValueError:
                logger.warning("Skipping record alias=%s: bad public key", record.alias)
        return result

    def sign(self, blob: bytes, data: bytes, flags: int) -> bytes:
        fp = sshkeys.fingerprint(blob)
        record = self._store.find_by_fingerprint(fp)
        if record is None:
            raise KeyNotFound(f"key not found: {fp}")
        master_key = self._provider.unlock_master_key()
        key = sshkeys.load_pkcs8(self._store.decrypt(record, master_key))
        try:
            signature = sshkeys.sign(key, data, flags)
        finally:
            del key
        logger.info(
            "Signed with alias=%s fingerprint=%s algorithm=%s",
            record.alias, fp, sshkeys.key_type(signature),
        )
        return signature


class ResidentAgent(AgentHandler):
    """Convenience mode: every key decrypted once at start-up.

    Records that do not open under the unlocked MasterKey are skipped with a
    warning. Keys imported later are not picked up until restart.
    """

    def __init__(self, store: KeyStore, provider: AuthProvider):
        super().__init__(store, provider)
        self._keys: dict[bytes, tuple[sshkeys.PrivateKey, str]] = {}
        self.load_keys()

    def load_keys(self) -> int:
        master_key = self._provider.unlock_master_key()
        keys = {}
        for record in self._store.list_metadata():
            try:
                key = sshkeys.load_pkcs8(self._store.decrypt(record, master_key))
            except (AuthenticationFailed, ConfigurationError) as err:
                logger.warning("Skipping key alias=%s: %s", record.alias, err)
                continue
            keys[sshkeys.public_blob(key)] = (key, record.alias)
        self._keys = keys
        logger.info("Resident mode: %d key(s) decrypted at start-up", len(keys))
        return len(keys)

    def identities(self) -> list[tuple[bytes, str]]:
        return [(blob, alias) for blob, (_, alias) in self._keys.items()]

    def sign(self, blob: bytes, data: bytes, flags: int) -> bytes:
        entry = self._keys.get(blob)
        if entry is None:
            raise KeyNotFound(f"key not found: {sshkeys.fingerprint(blob)}")
        key, alias = entry
        signature = sshkeys.sign(key, data, flags)
        logger.info("Signed with alias=%s (resident)", alias)
        return signature

    def forget_keys(self) -> None:
        self._keys.clear()
