"""Variable-length binary primitives shared by every protocol frame.

The layout is byte-compatible with lib0 encoding:

* unsigned integers are written in 7-bit little-endian groups, the high
  bit of each byte flagging a continuation;
* byte strings are a varuint length followed by the raw bytes;
* text strings are UTF-8 encoded byte strings.

Encoding is strictly linear, so a decoder consumes exactly the bytes the
encoder wrote.  Running off the end of the buffer raises
:class:`~roomsync.core.errors.MalformedMessage`.
"""

from __future__ import annotations

from roomsync.core.errors import MalformedMessage

# Guard against a hostile buffer announcing an absurdly wide integer.
_MAX_VARUINT_BITS = 64


class Encoder:
    """Append-only byte buffer."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def write_var_uint(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"varuint must be non-negative, got {value}")
        while value > 0x7F:
            self._buf.append(0x80 | (value & 0x7F))
            value >>= 7
        self._buf.append(value)

    def write_var_bytes(self, data: bytes) -> None:
        self.write_var_uint(len(data))
        self._buf.extend(data)

    def write_var_string(self, text: str) -> None:
        self.write_var_bytes(text.encode("utf-8"))

    def to_bytes(self) -> bytes:
        return bytes(self._buf)


class Decoder:
    """Cursor over an immutable byte buffer."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.pos

    def has_content(self) -> bool:
        return self.pos < len(self._data)

    def read_var_uint(self) -> int:
        value = 0
        shift = 0
        while True:
            if self.pos >= len(self._data):
                raise MalformedMessage("Unexpected end of buffer while reading varuint")
            byte = self._data[self.pos]
            self.pos += 1
            value |= (byte & 0x7F) << shift
            if byte < 0x80:
                return value
            shift += 7
            if shift >= _MAX_VARUINT_BITS:
                raise MalformedMessage("varuint exceeds 64 bits")

    def read_var_bytes(self) -> bytes:
        length = self.read_var_uint()
        if length > self.remaining:
            raise MalformedMessage(
                f"Byte string of length {length} overruns buffer ({self.remaining} left)"
            )
        start = self.pos
        self.pos += length
        return self._data[start:self.pos]

    def read_var_string(self) -> str:
        raw = self.read_var_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage(f"Invalid UTF-8 string: {exc}") from exc

    def expect_end(self) -> None:
        """Raise if any bytes are left unread."""
        if self.has_content():
            raise MalformedMessage(f"{self.remaining} trailing byte(s) after message")
