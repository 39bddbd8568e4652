"""
Constant pool entries, lookup and decoding.
"""

import codecs
import logging
import math
import struct
from dataclasses import dataclass
from typing import ClassVar, Iterator, Optional, Sequence

from .classfile import ConstantPoolTag, ReferenceKind
from .cursor import ByteCursor
from .errors import (
    IndexOutOfRange,
    InvalidConstantPoolTag,
    MalformedData,
    TypeMismatch,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConstantPoolEntry:
    """A constant pool entry."""
    tag: ClassVar[int] = 0
    kind: ClassVar[str] = "Unknown"
    # Long and Double take two slots
    width: ClassVar[int] = 1


@dataclass(frozen=True)
class ConstantUtf8(ConstantPoolEntry):
    tag = ConstantPoolTag.UTF8
    kind = "Utf8"
    value: str


@dataclass(frozen=True)
class ConstantInteger(ConstantPoolEntry):
    tag = ConstantPoolTag.INTEGER
    kind = "Integer"
    value: int


@dataclass(frozen=True)
class ConstantFloat(ConstantPoolEntry):
    tag = ConstantPoolTag.FLOAT
    kind = "Float"
    value: float


@dataclass(frozen=True)
class ConstantLong(ConstantPoolEntry):
    tag = ConstantPoolTag.LONG
    kind = "Long"
    width = 2
    value: int


@dataclass(frozen=True)
class ConstantDouble(ConstantPoolEntry):
    tag = ConstantPoolTag.DOUBLE
    kind = "Double"
    width = 2
    value: float


@dataclass(frozen=True)
class ConstantClass(ConstantPoolEntry):
    tag = ConstantPoolTag.CLASS
    kind = "Class"
    name_index: int


@dataclass(frozen=True)
class ConstantString(ConstantPoolEntry):
    tag = ConstantPoolTag.STRING
    kind = "String"
    string_index: int


@dataclass(frozen=True)
class MemberRef(ConstantPoolEntry):
    """Fieldref, Methodref and InterfaceMethodref share one layout."""
    kind = "Fieldref, Methodref or InterfaceMethodref"
    class_index: int
    name_and_type_index: int


@dataclass(frozen=True)
class ConstantFieldref(MemberRef):
    tag = ConstantPoolTag.FIELDREF
    kind = "Fieldref"


@dataclass(frozen=True)
class ConstantMethodref(MemberRef):
    tag = ConstantPoolTag.METHODREF
    kind = "Methodref"


@dataclass(frozen=True)
class ConstantInterfaceMethodref(MemberRef):
    tag = ConstantPoolTag.INTERFACE_METHODREF
    kind = "InterfaceMethodref"


@dataclass(frozen=True)
class ConstantNameAndType(ConstantPoolEntry):
    tag = ConstantPoolTag.NAME_AND_TYPE
    kind = "NameAndType"
    name_index: int
    descriptor_index: int


@dataclass(frozen=True)
class ConstantMethodHandle(ConstantPoolEntry):
    tag = ConstantPoolTag.METHOD_HANDLE
    kind = "MethodHandle"
    reference_kind: int
    reference_index: int


@dataclass(frozen=True)
class ConstantMethodType(ConstantPoolEntry):
    tag = ConstantPoolTag.METHOD_TYPE
    kind = "MethodType"
    descriptor_index: int


@dataclass(frozen=True)
class ConstantDynamic(ConstantPoolEntry):
    tag = ConstantPoolTag.DYNAMIC
    kind = "Dynamic"
    bootstrap_method_attr_index: int
    name_and_type_index: int


@dataclass(frozen=True)
class ConstantInvokeDynamic(ConstantPoolEntry):
    tag = ConstantPoolTag.INVOKE_DYNAMIC
    kind = "InvokeDynamic"
    bootstrap_method_attr_index: int
    name_and_type_index: int


@dataclass(frozen=True)
class ConstantModule(ConstantPoolEntry):
    tag = ConstantPoolTag.MODULE
    kind = "Module"
    name_index: int


@dataclass(frozen=True)
class ConstantPackage(ConstantPoolEntry):
    tag = ConstantPoolTag.PACKAGE
    kind = "Package"
    name_index: int


# Entries that ldc/ldc_w/ldc2_w and ConstantValue may load
LOADABLE_TYPES = (
    ConstantInteger, ConstantFloat, ConstantLong, ConstantDouble,
    ConstantClass, ConstantString, ConstantMethodHandle, ConstantMethodType,
    ConstantDynamic,
)


# What a MethodHandle of each reference kind may point at
_HANDLE_TARGETS = {
    ReferenceKind.GET_FIELD: (ConstantFieldref,),
    ReferenceKind.GET_STATIC: (ConstantFieldref,),
    ReferenceKind.PUT_FIELD: (ConstantFieldref,),
    ReferenceKind.PUT_STATIC: (ConstantFieldref,),
    ReferenceKind.INVOKE_VIRTUAL: (ConstantMethodref,),
    ReferenceKind.INVOKE_STATIC: (ConstantMethodref, ConstantInterfaceMethodref),
    ReferenceKind.INVOKE_SPECIAL: (ConstantMethodref, ConstantInterfaceMethodref),
    ReferenceKind.NEW_INVOKE_SPECIAL: (ConstantMethodref,),
    ReferenceKind.INVOKE_INTERFACE: (ConstantInterfaceMethodref,),
}


_MODIFIED_UTF8_ERRORS = "pyjavap.modified-utf8"


def _modified_utf8_errors(exc: UnicodeDecodeError):
    """Keep 3-byte surrogate sequences; replace any other bad byte with U+FFFD."""
    data = exc.object
    start = exc.start
    chunk = data[start:start + 3]
    if (len(chunk) == 3 and chunk[0] == 0xED
            and 0xA0 <= chunk[1] <= 0xBF and 0x80 <= chunk[2] <= 0xBF):
        unit = 0xD000 | ((chunk[1] & 0x3F) << 6) | (chunk[2] & 0x3F)
        return chr(unit), start + 3
    return "\ufffd", exc.end


codecs.register_error(_MODIFIED_UTF8_ERRORS, _modified_utf8_errors)


def decode_modified_utf8(data: bytes) -> str:
    """Decode the JVM's modified UTF-8.

    NUL is encoded as C0 80 and supplementary characters as a surrogate
    pair of two 3-byte sequences.
    """
    text = data.replace(b"\xc0\x80", b"\x00").decode("utf-8", _MODIFIED_UTF8_ERRORS)
    if any("\ud800" <= ch <= "\udfff" for ch in text):
        text = text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")
    return text


def _java_number_text(text: str) -> str:
    if text in ("inf", "-inf"):
        return text.replace("inf", "Infinity")
    if text == "nan":
        return "NaN"
    if "e" in text:
        mantissa, exponent = text.split("e")
        if "." not in mantissa:
            mantissa += ".0"
        return f"{mantissa}E{int(exponent)}"
    if "." not in text:
        text += ".0"
    return text


def format_float(value: float) -> str:
    """Shortest decimal text that round-trips through a 32-bit float."""
    if math.isnan(value) or math.isinf(value):
        return _java_number_text(repr(value))
    packed = struct.pack(">f", value)
    for precision in range(1, 10):
        text = f"{value:.{precision}g}"
        if struct.pack(">f", float(text)) == packed:
            return _java_number_text(repr(float(text)))
    return _java_number_text(repr(value))


def format_double(value: float) -> str:
    return _java_number_text(repr(value))


_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def _escape_char(ch: str) -> str:
    if ch in _ESCAPES:
        return _ESCAPES[ch]
    if ch.isprintable():
        return ch
    code_point = ord(ch)
    if code_point > 0xFFFF:
        code_point -= 0x10000
        return f"\\u{0xD800 + (code_point >> 10):04x}\\u{0xDC00 + (code_point & 0x3FF):04x}"
    return f"\\u{code_point:04x}"


def escape_text(text: str) -> str:
    """Printable rendering of a string constant; control characters and
    unpaired surrogates become \\uXXXX escapes."""
    return "".join(_escape_char(ch) for ch in text)


def format_name_and_type(name: str, descriptor: str) -> str:
    """Render a name/descriptor pair, quoting special method names."""
    if name.startswith("<"):
        name = f'"{name}"'
    return f"{name}:{descriptor}"


class ConstantPool:
    """The 1-indexed constant pool of a parsed class file."""

    def __init__(self, entries: Sequence[Optional[ConstantPoolEntry]]):
        # Slot 0 and the slot after each Long/Double hold None
        self._entries = tuple(entries)

    def __repr__(self) -> str:
        return f"ConstantPool(count={self.count}, entries={len(self)})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, ConstantPool):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __len__(self) -> int:
        """Number of logical entries (Long/Double count once)."""
        return sum(1 for entry in self._entries if entry is not None)

    def __iter__(self) -> Iterator[tuple[int, ConstantPoolEntry]]:
        for index, entry in enumerate(self._entries):
            if entry is not None:
                yield index, entry

    @property
    def count(self) -> int:
        """The constant_pool_count as declared in the class file."""
        return len(self._entries)

    @property
    def slots_used(self) -> int:
        return sum(entry.width for entry in self._entries if entry is not None)

    def get(self, index: int) -> ConstantPoolEntry:
        if index == 0:
            raise IndexOutOfRange(index, "index 0 is never valid")
        if index < 0 or index >= self.count:
            raise IndexOutOfRange(index, f"pool has indices 1..{self.count - 1}")
        entry = self._entries[index]
        if entry is None:
            raise IndexOutOfRange(index, "second slot of a Long or Double entry")
        return entry

    def expect(self, index: int, *types: type) -> ConstantPoolEntry:
        """Get an entry and check that it is one of the given kinds."""
        entry = self.get(index)
        if not isinstance(entry, types):
            expected = " or ".join(t.kind for t in types)
            raise TypeMismatch(index, expected, entry.kind)
        return entry

    def get_utf8(self, index: int) -> str:
        return self.expect(index, ConstantUtf8).value

    def get_class_name(self, index: int) -> str:
        """Get class name from constant pool."""
        entry = self.expect(index, ConstantClass)
        return self.get_utf8(entry.name_index)

    def get_string(self, index: int) -> str:
        entry = self.expect(index, ConstantString)
        return self.get_utf8(entry.string_index)

    def get_name_and_type(self, index: int) -> tuple[str, str]:
        entry = self.expect(index, ConstantNameAndType)
        return self.get_utf8(entry.name_index), self.get_utf8(entry.descriptor_index)

    def get_member_ref(self, index: int) -> tuple[str, str, str]:
        """Resolve a Fieldref/Methodref/InterfaceMethodref to (owner, name, descriptor)."""
        entry = self.expect(index, MemberRef)
        owner = self.get_class_name(entry.class_index)
        name, descriptor = self.get_name_and_type(entry.name_and_type_index)
        return owner, name, descriptor

    def describe(self, index: int) -> str:
        """Human-readable rendering of an entry, as used in disassembly comments."""
        entry = self.get(index)
        if isinstance(entry, ConstantUtf8):
            return escape_text(entry.value)
        if isinstance(entry, ConstantInteger):
            return str(entry.value)
        if isinstance(entry, ConstantFloat):
            return format_float(entry.value) + "f"
        if isinstance(entry, ConstantLong):
            return f"{entry.value}l"
        if isinstance(entry, ConstantDouble):
            return format_double(entry.value) + "d"
        if isinstance(entry, ConstantClass):
            name = self.get_utf8(entry.name_index)
            return f'"{name}"' if name.startswith("[") else name
        if isinstance(entry, ConstantString):
            return escape_text(self.get_utf8(entry.string_index))
        if isinstance(entry, MemberRef):
            owner, name, descriptor = self.get_member_ref(index)
            return f"{owner}.{format_name_and_type(name, descriptor)}"
        if isinstance(entry, ConstantNameAndType):
            return format_name_and_type(*self.get_name_and_type(index))
        if isinstance(entry, ConstantMethodHandle):
            kind = ReferenceKind(entry.reference_kind).mnemonic
            return f"{kind} {self.describe(entry.reference_index)}"
        if isinstance(entry, ConstantMethodType):
            return self.get_utf8(entry.descriptor_index)
        if isinstance(entry, (ConstantInvokeDynamic, ConstantDynamic)):
            nat = format_name_and_type(*self.get_name_and_type(entry.name_and_type_index))
            return f"#{entry.bootstrap_method_attr_index}:{nat}"
        if isinstance(entry, (ConstantModule, ConstantPackage)):
            return self.get_utf8(entry.name_index)
        raise TypeMismatch(index, "known constant", entry.kind)

    def check_links(self):
        """Verify every cross-reference points at an entry of the right kind."""
        for index, entry in self:
            if isinstance(entry, (ConstantClass, ConstantModule, ConstantPackage)):
                self.expect(entry.name_index, ConstantUtf8)
            elif isinstance(entry, ConstantString):
                self.expect(entry.string_index, ConstantUtf8)
            elif isinstance(entry, ConstantMethodType):
                self.expect(entry.descriptor_index, ConstantUtf8)
            elif isinstance(entry, MemberRef):
                self.expect(entry.class_index, ConstantClass)
                self.expect(entry.name_and_type_index, ConstantNameAndType)
            elif isinstance(entry, ConstantNameAndType):
                self.expect(entry.name_index, ConstantUtf8)
                self.expect(entry.descriptor_index, ConstantUtf8)
            elif isinstance(entry, ConstantMethodHandle):
                if entry.reference_kind not in _HANDLE_TARGETS:
                    raise MalformedData(
                        f"Invalid method handle reference kind {entry.reference_kind} at #{index}"
                    )
                self.expect(entry.reference_index, *_HANDLE_TARGETS[entry.reference_kind])
            elif isinstance(entry, (ConstantInvokeDynamic, ConstantDynamic)):
                self.expect(entry.name_and_type_index, ConstantNameAndType)


def read_constant_pool(cursor: ByteCursor) -> ConstantPool:
    """Read the constant pool: a u2 count followed by count - 1 slots of entries."""
    count = cursor.read_u2()
    entries: list[Optional[ConstantPoolEntry]] = [None]  # 1-indexed
    i = 1
    while i < count:
        offset = cursor.offset
        tag = cursor.read_u1()

        if tag == ConstantPoolTag.UTF8:
            length = cursor.read_u2()
            entry = ConstantUtf8(decode_modified_utf8(cursor.read_bytes(length)))

        elif tag == ConstantPoolTag.INTEGER:
            entry = ConstantInteger(cursor.read_i4())

        elif tag == ConstantPoolTag.FLOAT:
            entry = ConstantFloat(cursor.read_f4())

        elif tag == ConstantPoolTag.LONG:
            entry = ConstantLong(cursor.read_i8())

        elif tag == ConstantPoolTag.DOUBLE:
            entry = ConstantDouble(cursor.read_f8())

        elif tag == ConstantPoolTag.CLASS:
            entry = ConstantClass(cursor.read_u2())

        elif tag == ConstantPoolTag.STRING:
            entry = ConstantString(cursor.read_u2())

        elif tag == ConstantPoolTag.FIELDREF:
            entry = ConstantFieldref(cursor.read_u2(), cursor.read_u2())

        elif tag == ConstantPoolTag.METHODREF:
            entry = ConstantMethodref(cursor.read_u2(), cursor.read_u2())

        elif tag == ConstantPoolTag.INTERFACE_METHODREF:
            entry = ConstantInterfaceMethodref(cursor.read_u2(), cursor.read_u2())

        elif tag == ConstantPoolTag.NAME_AND_TYPE:
            entry = ConstantNameAndType(cursor.read_u2(), cursor.read_u2())

        elif tag == ConstantPoolTag.METHOD_HANDLE:
            entry = ConstantMethodHandle(cursor.read_u1(), cursor.read_u2())

        elif tag == ConstantPoolTag.METHOD_TYPE:
            entry = ConstantMethodType(cursor.read_u2())

        elif tag == ConstantPoolTag.DYNAMIC:
            entry = ConstantDynamic(cursor.read_u2(), cursor.read_u2())

        elif tag == ConstantPoolTag.INVOKE_DYNAMIC:
            entry = ConstantInvokeDynamic(cursor.read_u2(), cursor.read_u2())

        elif tag == ConstantPoolTag.MODULE:
            entry = ConstantModule(cursor.read_u2())

        elif tag == ConstantPoolTag.PACKAGE:
            entry = ConstantPackage(cursor.read_u2())

        else:
            raise InvalidConstantPoolTag(tag, offset)

        if i + entry.width > count:
            raise MalformedData(f"{entry.kind} entry #{i} overruns the constant pool", offset)
        entries.append(entry)
        if entry.width == 2:
            entries.append(None)
        i += entry.width

    pool = ConstantPool(entries)
    pool.check_links()
    log.debug("Read constant pool: count=%d, entries=%d", count, len(pool))
    return pool
