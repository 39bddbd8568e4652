"""
Errors raised while reading class files.
"""

from typing import Optional


class ClassFormatError(Exception):
    """Error while decoding a class file."""

    kind = "ClassFormatError"

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.offset = offset

    def __str__(self) -> str:
        if self.offset is None:
            return self.message
        return f"{self.message} (at offset {self.offset})"


class IoFailure(ClassFormatError):
    """The byte source could not be read."""
    kind = "IoFailure"


class InvalidMagicNumber(ClassFormatError):
    kind = "InvalidMagicNumber"


class UnsupportedVersion(ClassFormatError):
    kind = "UnsupportedVersion"


class TruncatedData(ClassFormatError):
    """Fewer bytes remain than a read requires."""
    kind = "TruncatedData"

    def __init__(self, offset: int, wanted: int, available: int):
        super().__init__(
            f"Truncated data: needed {wanted} byte(s), {available} available", offset
        )
        self.wanted = wanted
        self.available = available


class InvalidConstantPoolTag(ClassFormatError):
    kind = "InvalidConstantPoolTag"

    def __init__(self, tag: int, offset: Optional[int] = None):
        super().__init__(f"Unknown constant pool tag: {tag}", offset)
        self.tag = tag


class IndexOutOfRange(ClassFormatError):
    kind = "IndexOutOfRange"

    def __init__(self, index: int, reason: str, offset: Optional[int] = None):
        super().__init__(f"Invalid constant pool index #{index}: {reason}", offset)
        self.index = index


class TypeMismatch(ClassFormatError):
    kind = "TypeMismatch"

    def __init__(self, index: int, expected: str, found: str, offset: Optional[int] = None):
        super().__init__(
            f"Expected {expected} at constant pool index #{index}, found {found}", offset
        )
        self.index = index
        self.expected = expected
        self.found = found


class UnknownOpcode(ClassFormatError):
    kind = "UnknownOpcode"

    def __init__(self, opcode: int, pc: int, offset: Optional[int] = None):
        super().__init__(f"Unknown opcode 0x{opcode:02x} at code offset {pc}", offset)
        self.opcode = opcode
        self.pc = pc


class MalformedData(ClassFormatError):
    """Structurally inconsistent data, e.g. an attribute with trailing bytes."""
    kind = "MalformedData"


class DescriptorError(ClassFormatError):
    kind = "DescriptorError"
