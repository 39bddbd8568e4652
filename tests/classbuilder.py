"""
Class file writer used by the tests to synthesize class files.

Attributes are passed around as already-encoded bytes so tests can build
malformed ones as easily as valid ones.
"""

import struct
from dataclasses import dataclass, field
from typing import Optional

from pyjavap.classfile import AccessFlags, ClassFileVersion, ConstantPoolTag, Opcode


def _three_byte_unit(unit: int) -> bytes:
    return bytes([0xE0 | (unit >> 12), 0x80 | ((unit >> 6) & 0x3F), 0x80 | (unit & 0x3F)])


def encode_modified_utf8(value: str) -> bytes:
    out = bytearray()
    for ch in value:
        code_point = ord(ch)
        if code_point == 0:
            out.extend(b"\xc0\x80")
        elif code_point >= 0x10000:
            code_point -= 0x10000
            out.extend(_three_byte_unit(0xD800 + (code_point >> 10)))
            out.extend(_three_byte_unit(0xDC00 + (code_point & 0x3FF)))
        else:
            out.extend(ch.encode("utf-8", "surrogatepass"))
    return bytes(out)


class ConstantPool:
    """Builds a deduplicated constant pool."""

    def __init__(self):
        self._entries: list[Optional[tuple]] = [None]  # 1-indexed
        self._cache: dict = {}

    def __len__(self) -> int:
        """The constant_pool_count to write."""
        return len(self._entries)

    def add_entry(self, *entry) -> int:
        key = entry
        if key in self._cache:
            return self._cache[key]
        idx = len(self._entries)
        self._entries.append(entry)
        self._cache[key] = idx
        # Long and Double take two slots
        if entry[0] in (ConstantPoolTag.LONG, ConstantPoolTag.DOUBLE):
            self._entries.append(None)
        return idx

    def add_utf8(self, value: str) -> int:
        return self.add_entry(ConstantPoolTag.UTF8, value)

    def add_integer(self, value: int) -> int:
        return self.add_entry(ConstantPoolTag.INTEGER, value)

    def add_float(self, value: float) -> int:
        return self.add_entry(ConstantPoolTag.FLOAT, value)

    def add_long(self, value: int) -> int:
        return self.add_entry(ConstantPoolTag.LONG, value)

    def add_double(self, value: float) -> int:
        return self.add_entry(ConstantPoolTag.DOUBLE, value)

    def add_class(self, internal_name: str) -> int:
        name_idx = self.add_utf8(internal_name)
        return self.add_entry(ConstantPoolTag.CLASS, name_idx)

    def add_string(self, value: str) -> int:
        utf8_idx = self.add_utf8(value)
        return self.add_entry(ConstantPoolTag.STRING, utf8_idx)

    def add_name_and_type(self, name: str, descriptor: str) -> int:
        name_idx = self.add_utf8(name)
        desc_idx = self.add_utf8(descriptor)
        return self.add_entry(ConstantPoolTag.NAME_AND_TYPE, name_idx, desc_idx)

    def add_fieldref(self, class_name: str, field_name: str, descriptor: str) -> int:
        class_idx = self.add_class(class_name)
        nat_idx = self.add_name_and_type(field_name, descriptor)
        return self.add_entry(ConstantPoolTag.FIELDREF, class_idx, nat_idx)

    def add_methodref(self, class_name: str, method_name: str, descriptor: str) -> int:
        class_idx = self.add_class(class_name)
        nat_idx = self.add_name_and_type(method_name, descriptor)
        return self.add_entry(ConstantPoolTag.METHODREF, class_idx, nat_idx)

    def add_interface_methodref(self, class_name: str, method_name: str, descriptor: str) -> int:
        class_idx = self.add_class(class_name)
        nat_idx = self.add_name_and_type(method_name, descriptor)
        return self.add_entry(ConstantPoolTag.INTERFACE_METHODREF, class_idx, nat_idx)

    def add_method_handle(self, reference_kind: int, reference_idx: int) -> int:
        return self.add_entry(ConstantPoolTag.METHOD_HANDLE, reference_kind, reference_idx)

    def add_method_type(self, descriptor: str) -> int:
        return self.add_entry(ConstantPoolTag.METHOD_TYPE, self.add_utf8(descriptor))

    def add_invoke_dynamic(self, bootstrap_idx: int, name: str, descriptor: str) -> int:
        nat_idx = self.add_name_and_type(name, descriptor)
        return self.add_entry(ConstantPoolTag.INVOKE_DYNAMIC, bootstrap_idx, nat_idx)

    def add_dynamic(self, bootstrap_idx: int, name: str, descriptor: str) -> int:
        nat_idx = self.add_name_and_type(name, descriptor)
        return self.add_entry(ConstantPoolTag.DYNAMIC, bootstrap_idx, nat_idx)

    def add_module(self, name: str) -> int:
        return self.add_entry(ConstantPoolTag.MODULE, self.add_utf8(name))

    def add_package(self, name: str) -> int:
        return self.add_entry(ConstantPoolTag.PACKAGE, self.add_utf8(name))

    def write(self, out: bytearray):
        out.extend(struct.pack(">H", len(self._entries)))
        for entry in self._entries[1:]:
            if entry is None:
                continue
            tag = entry[0]
            out.append(tag)
            if tag == ConstantPoolTag.UTF8:
                data = encode_modified_utf8(entry[1])
                out.extend(struct.pack(">H", len(data)))
                out.extend(data)
            elif tag == ConstantPoolTag.INTEGER:
                out.extend(struct.pack(">i", entry[1]))
            elif tag == ConstantPoolTag.FLOAT:
                out.extend(struct.pack(">f", entry[1]))
            elif tag == ConstantPoolTag.LONG:
                out.extend(struct.pack(">q", entry[1]))
            elif tag == ConstantPoolTag.DOUBLE:
                out.extend(struct.pack(">d", entry[1]))
            elif tag in (ConstantPoolTag.CLASS, ConstantPoolTag.STRING, ConstantPoolTag.METHOD_TYPE,
                         ConstantPoolTag.MODULE, ConstantPoolTag.PACKAGE):
                out.extend(struct.pack(">H", entry[1]))
            elif tag == ConstantPoolTag.METHOD_HANDLE:
                out.extend(struct.pack(">BH", entry[1], entry[2]))
            else:
                # NameAndType, member refs, Dynamic and InvokeDynamic
                out.extend(struct.pack(">HH", entry[1], entry[2]))

    def to_bytes(self) -> bytes:
        out = bytearray()
        self.write(out)
        return bytes(out)


def attribute(cp: ConstantPool, name: str, data: bytes) -> bytes:
    """Encode an attribute_info with the given payload."""
    return struct.pack(">HI", cp.add_utf8(name), len(data)) + bytes(data)


def attribute_list(attributes) -> bytes:
    return struct.pack(">H", len(attributes)) + b"".join(attributes)


def code_attribute(cp: ConstantPool, code: bytes, max_stack: int = 1, max_locals: int = 1,
                   exception_table=(), attributes=()) -> bytes:
    data = bytearray()
    data.extend(struct.pack(">HHI", max_stack, max_locals, len(code)))
    data.extend(code)
    data.extend(struct.pack(">H", len(exception_table)))
    for entry in exception_table:
        data.extend(struct.pack(">HHHH", *entry))
    data.extend(attribute_list(attributes))
    return attribute(cp, "Code", bytes(data))


def u2(value: int) -> bytes:
    return struct.pack(">H", value)


def s4(value: int) -> bytes:
    return struct.pack(">i", value)


@dataclass
class MemberInfo:
    """A field or method to write."""
    access_flags: int
    name: str
    descriptor: str
    attributes: list[bytes] = field(default_factory=list)

    def write(self, cp: ConstantPool, out: bytearray):
        out.extend(struct.pack(">HHH", self.access_flags,
                               cp.add_utf8(self.name), cp.add_utf8(self.descriptor)))
        out.extend(attribute_list(self.attributes))


class ClassFile:
    """A class file to synthesize."""

    MAGIC = 0xCAFEBABE

    def __init__(self, name: str, super_class: Optional[str] = "java/lang/Object",
                 version: tuple[int, int] = ClassFileVersion.JAVA_8):
        self.magic = self.MAGIC
        self.version = version
        self.access_flags = AccessFlags.PUBLIC | AccessFlags.SUPER
        self.name = name
        self.super_class = super_class
        self.interfaces: list[str] = []
        self.fields: list[MemberInfo] = []
        self.methods: list[MemberInfo] = []
        self.attributes: list[bytes] = []
        self.cp = ConstantPool()

    def add_method(self, method: MemberInfo):
        self.methods.append(method)

    def add_field(self, field_info: MemberInfo):
        self.fields.append(field_info)

    def to_bytes(self) -> bytes:
        # Everything after the pool is written first so its entries exist
        body = bytearray()
        this_class_idx = self.cp.add_class(self.name)
        super_class_idx = self.cp.add_class(self.super_class) if self.super_class else 0
        interface_indices = [self.cp.add_class(i) for i in self.interfaces]

        body.extend(struct.pack(">HHH", self.access_flags, this_class_idx, super_class_idx))
        body.extend(struct.pack(">H", len(interface_indices)))
        for idx in interface_indices:
            body.extend(struct.pack(">H", idx))

        body.extend(struct.pack(">H", len(self.fields)))
        for fld in self.fields:
            fld.write(self.cp, body)

        body.extend(struct.pack(">H", len(self.methods)))
        for method in self.methods:
            method.write(self.cp, body)

        body.extend(attribute_list(self.attributes))

        major, minor = self.version
        out = bytearray(struct.pack(">IHH", self.magic, minor, major))
        self.cp.write(out)
        out.extend(body)
        return bytes(out)


def hello_class() -> ClassFile:
    """A class with only a default constructor, as javac emits for ``class Hello {}``."""
    cf = ClassFile("Hello")
    init_ref = cf.cp.add_methodref("java/lang/Object", "<init>", "()V")
    code = bytes([Opcode.ALOAD_0, Opcode.INVOKESPECIAL]) + u2(init_ref) + bytes([Opcode.RETURN])
    cf.add_method(MemberInfo(
        AccessFlags.PUBLIC, "<init>", "()V",
        [code_attribute(cf.cp, code, max_stack=1, max_locals=1)],
    ))
    return cf


def nested_annotation_class(depth: int) -> ClassFile:
    """Hello with a class annotation whose value is ``depth`` nested one-element arrays."""
    cf = hello_class()
    type_idx = cf.cp.add_utf8("LDeep;")
    name_idx = cf.cp.add_utf8("value")
    leaf_idx = cf.cp.add_utf8("leaf")
    value = (b"[" + u2(1)) * depth + b"s" + u2(leaf_idx)
    payload = u2(1) + u2(type_idx) + u2(1) + u2(name_idx) + value
    cf.attributes.append(attribute(cf.cp, "RuntimeVisibleAnnotations", payload))
    return cf
