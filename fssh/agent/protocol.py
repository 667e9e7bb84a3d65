"""
SSH agent wire protocol (draft-miller-ssh-agent).

Every message is ``uint32 length || byte type || payload``; ``length``
counts the type byte and payload.
"""
import struct

from ..sshkeys import SSH_AGENT_RSA_SHA2_256, SSH_AGENT_RSA_SHA2_512
from ..wire import pack_byte

# requests
SSH_AGENTC_REQUEST_RSA_IDENTITIES = 1
SSH_AGENTC_REMOVE_RSA_IDENTITY = 8
SSH_AGENTC_REMOVE_ALL_RSA_IDENTITIES = 9
SSH_AGENTC_REQUEST_IDENTITIES = 11
SSH_AGENTC_SIGN_REQUEST = 13
SSH_AGENTC_ADD_IDENTITY = 17
SSH_AGENTC_REMOVE_IDENTITY = 18
SSH_AGENTC_REMOVE_ALL_IDENTITIES = 19
SSH_AGENTC_ADD_SMARTCARD_KEY = 20
SSH_AGENTC_REMOVE_SMARTCARD_KEY = 21
SSH_AGENTC_LOCK = 22
SSH_AGENTC_UNLOCK = 23
SSH_AGENTC_ADD_ID_CONSTRAINED = 25
SSH_AGENTC_ADD_SMARTCARD_KEY_CONSTRAINED = 26
SSH_AGENTC_EXTENSION = 27

# replies
SSH_AGENT_FAILURE = 5
SSH_AGENT_SUCCESS = 6
SSH_AGENT_IDENTITIES_ANSWER = 12
SSH_AGENT_SIGN_RESPONSE = 14

SUPPORTED_SIGN_FLAGS = SSH_AGENT_RSA_SHA2_256 | SSH_AGENT_RSA_SHA2_512

# largest request accepted from a client (OpenSSH uses the same bound)
MAX_MESSAGE_SIZE = 256 * 1024

HEADER = struct.Struct("!I")

# mutating requests: the key set comes from the encrypted store only
UNSUPPORTED_REQUESTS = {
    SSH_AGENTC_REQUEST_RSA_IDENTITIES: "request-rsa-identities",
    SSH_AGENTC_REMOVE_RSA_IDENTITY: "remove-rsa-identity",
    SSH_AGENTC_REMOVE_ALL_RSA_IDENTITIES: "remove-all-rsa-identities",
    SSH_AGENTC_ADD_IDENTITY: "add-identity",
    SSH_AGENTC_REMOVE_IDENTITY: "remove-identity",
    SSH_AGENTC_REMOVE_ALL_IDENTITIES: "remove-all-identities",
    SSH_AGENTC_ADD_SMARTCARD_KEY: "add-smartcard-key",
    SSH_AGENTC_REMOVE_SMARTCARD_KEY: "remove-smartcard-key",
    SSH_AGENTC_LOCK: "lock",
    SSH_AGENTC_UNLOCK: "unlock",
    SSH_AGENTC_ADD_ID_CONSTRAINED: "add-identity-constrained",
    SSH_AGENTC_ADD_SMARTCARD_KEY_CONSTRAINED: "add-smartcard-key-constrained",
}


def frame(msg_type: int, payload: bytes = b"") -> bytes:
    """Prefix a reply with its length and type."""
    return HEADER.pack(len(payload) + 1) + pack_byte(msg_type) + payload


FAILURE = frame(SSH_AGENT_FAILURE)
