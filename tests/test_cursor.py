"""Tests for the byte cursor."""

import struct
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pyjavap.cursor import ByteCursor
from pyjavap.errors import TruncatedData


class TestReads:
    def test_unsigned_big_endian(self):
        cursor = ByteCursor(bytes.fromhex("01 0203 04050607 08090a0b0c0d0e0f"))
        assert cursor.read_u1() == 0x01
        assert cursor.read_u2() == 0x0203
        assert cursor.read_u4() == 0x04050607
        assert cursor.read_u8() == 0x08090A0B0C0D0E0F
        assert cursor.at_end

    def test_signed_values(self):
        cursor = ByteCursor(bytes.fromhex("ff fffe fffffffd fffffffffffffffc"))
        assert cursor.read_i1() == -1
        assert cursor.read_i2() == -2
        assert cursor.read_i4() == -3
        assert cursor.read_i8() == -4

    def test_floats(self):
        cursor = ByteCursor(struct.pack(">fd", 1.5, -2.25))
        assert cursor.read_f4() == 1.5
        assert cursor.read_f8() == -2.25

    def test_read_bytes_and_skip(self):
        cursor = ByteCursor(b"abcdef")
        cursor.skip(2)
        assert cursor.read_bytes(3) == b"cde"
        assert cursor.position == 5
        assert cursor.remaining == 1


class TestBounds:
    @pytest.mark.parametrize("method,size", [
        ("read_u2", 2), ("read_u4", 4), ("read_u8", 8),
        ("read_i4", 4), ("read_f4", 4), ("read_f8", 8),
    ])
    def test_short_read_raises(self, method, size):
        cursor = ByteCursor(b"\x00" * (size - 1))
        with pytest.raises(TruncatedData) as exc_info:
            getattr(cursor, method)()
        assert exc_info.value.wanted == size
        assert exc_info.value.available == size - 1

    def test_failed_read_does_not_advance(self):
        cursor = ByteCursor(b"\x01\x02\x03")
        cursor.read_u1()
        with pytest.raises(TruncatedData):
            cursor.read_u4()
        assert cursor.position == 1
        assert cursor.read_u2() == 0x0203

    def test_empty_buffer(self):
        cursor = ByteCursor(b"")
        assert cursor.at_end
        with pytest.raises(TruncatedData):
            cursor.read_u1()

    def test_read_bytes_past_end(self):
        cursor = ByteCursor(b"abc")
        with pytest.raises(TruncatedData) as exc_info:
            cursor.read_bytes(4)
        assert exc_info.value.offset == 0


class TestSubcursor:
    def test_offsets_are_absolute(self):
        cursor = ByteCursor(b"\x00\x00\x00\x00\x01\x02", base=10)
        cursor.skip(4)
        sub = cursor.subcursor(2)
        assert cursor.at_end
        assert sub.offset == 14
        assert sub.read_u1() == 1
        assert sub.offset == 15
        with pytest.raises(TruncatedData) as exc_info:
            sub.read_u2()
        assert exc_info.value.offset == 15
        assert "at offset 15" in str(exc_info.value)

    def test_subcursor_longer_than_remaining(self):
        cursor = ByteCursor(b"\x01\x02")
        with pytest.raises(TruncatedData):
            cursor.subcursor(3)
