"""SSH wire encoding (RFC 4251 §5) shared by key handling and the agent codec."""
import struct

from .exceptions import ProtocolError


def pack_uint32(value: int) -> bytes:
    return struct.pack("!I", value)


def pack_byte(value: int) -> bytes:
    return struct.pack("!B", value)


def pack_string(value: bytes | str) -> bytes:
    """Length-prefixed byte string."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    return struct.pack("!I", len(value)) + value


def pack_mpint(value: int) -> bytes:
    """Two's complement, big-endian, minimal length, length-prefixed."""
    if value == 0:
        return pack_string(b"")
    magnitude = value if value > 0 else ~value
    length = (magnitude.bit_length() + 8) // 8
    return pack_string(value.to_bytes(length, "big", signed=True))


class Reader:
    """Sequential decoder over an SSH wire buffer."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def _take(self, size: int) -> bytes:
        end = self._pos + size
        if size < 0 or end > len(self._data):
            raise ProtocolError(
                f"truncated message: need {size} bytes at offset {self._pos}, "
                f"have {len(self._data) - self._pos}"
            )
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def byte(self) -> int:
        return self._take(1)[0]

    def uint32(self) -> int:
        return struct.unpack("!I", self._take(4))[0]

    def string(self) -> bytes:
        return self._take(self.uint32())

    def text(self) -> str:
        try:
            return self.string().decode("utf-8")
        except UnicodeDecodeError as err:
            raise ProtocolError("invalid utf-8 string") from err

    def mpint(self) -> int:
        return int.from_bytes(self.string(), "big", signed=True)

    def remaining(self) -> bytes:
        chunk = self._data[self._pos:]
        self._pos = len(self._data)
        return chunk

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)
