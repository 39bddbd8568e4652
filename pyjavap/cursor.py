"""
Sequential big-endian reader over an immutable byte buffer.
"""

import struct

from .errors import TruncatedData


_U2 = struct.Struct(">H")
_U4 = struct.Struct(">I")
_U8 = struct.Struct(">Q")
_I1 = struct.Struct(">b")
_I2 = struct.Struct(">h")
_I4 = struct.Struct(">i")
_I8 = struct.Struct(">q")
_F4 = struct.Struct(">f")
_F8 = struct.Struct(">d")


class ByteCursor:
    """Reads fixed-width values from a byte buffer, advancing a position.

    ``base`` is the absolute offset of ``data[0]`` within the enclosing
    class file, so errors raised from a sub-cursor still report file offsets.
    """

    def __init__(self, data: bytes, base: int = 0):
        self.data = bytes(data)
        self.base = base
        self.pos = 0

    def __repr__(self) -> str:
        return f"ByteCursor(offset={self.offset}, remaining={self.remaining})"

    @property
    def position(self) -> int:
        return self.pos

    @property
    def offset(self) -> int:
        """Absolute offset of the next byte to be read."""
        return self.base + self.pos

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def _require(self, length: int):
        if length < 0 or self.remaining < length:
            raise TruncatedData(self.offset, length, self.remaining)

    def _unpack(self, fmt: struct.Struct):
        self._require(fmt.size)
        val = fmt.unpack_from(self.data, self.pos)[0]
        self.pos += fmt.size
        return val

    def read_u1(self) -> int:
        self._require(1)
        val = self.data[self.pos]
        self.pos += 1
        return val

    def read_u2(self) -> int:
        return self._unpack(_U2)

    def read_u4(self) -> int:
        return self._unpack(_U4)

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_i1(self) -> int:
        return self._unpack(_I1)

    def read_i2(self) -> int:
        return self._unpack(_I2)

    def read_i4(self) -> int:
        return self._unpack(_I4)

    def read_i8(self) -> int:
        return self._unpack(_I8)

    def read_f4(self) -> float:
        return self._unpack(_F4)

    def read_f8(self) -> float:
        return self._unpack(_F8)

    def read_bytes(self, length: int) -> bytes:
        self._require(length)
        val = self.data[self.pos:self.pos + length]
        self.pos += length
        return val

    def skip(self, length: int):
        self._require(length)
        self.pos += length

    def subcursor(self, length: int) -> "ByteCursor":
        """Consume ``length`` bytes and return a cursor over just those bytes."""
        base = self.offset
        return ByteCursor(self.read_bytes(length), base)
