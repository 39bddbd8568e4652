"""
Attribute decoding.

Every attribute is a ``(name_index, length, info)`` envelope. Attributes with
a recognized name get a typed body decoded from ``info``; all others keep
only the raw bytes.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from .bytecode import Instruction, disassemble
from .constant_pool import (
    LOADABLE_TYPES,
    ConstantClass,
    ConstantDouble,
    ConstantFloat,
    ConstantInteger,
    ConstantLong,
    ConstantMethodHandle,
    ConstantNameAndType,
    ConstantPool,
    ConstantString,
    ConstantUtf8,
)
from .cursor import ByteCursor
from .errors import ClassFormatError, MalformedData

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttributeInfo:
    """A class, field, method or Code attribute."""
    name_index: int
    name: str
    info: bytes
    body: Optional[object] = None

    @property
    def length(self) -> int:
        return len(self.info)

    @property
    def is_known(self) -> bool:
        return self.body is not None


@dataclass(frozen=True)
class ConstantValue:
    constant_index: int


@dataclass(frozen=True)
class ExceptionTableEntry:
    """An entry in the exception table."""
    start_pc: int
    end_pc: int
    handler_pc: int
    catch_type: int  # 0 for finally (catches all), otherwise constant pool index of class


@dataclass(frozen=True)
class Code:
    """Code attribute for a method."""
    max_stack: int
    max_locals: int
    code: bytes
    exception_table: tuple[ExceptionTableEntry, ...]
    attributes: tuple[AttributeInfo, ...]
    instructions: tuple[Instruction, ...]

    def get_attribute(self, name: str) -> Optional[AttributeInfo]:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    @property
    def line_numbers(self) -> tuple["LineNumber", ...]:
        entries = []
        for attr in self.attributes:
            if attr.name == "LineNumberTable":
                entries.extend(attr.body.entries)
        return tuple(entries)


@dataclass(frozen=True)
class Exceptions:
    exception_indices: tuple[int, ...]


@dataclass(frozen=True)
class SourceFile:
    sourcefile_index: int
    source_file: str


@dataclass(frozen=True)
class LineNumber:
    start_pc: int
    line_number: int


@dataclass(frozen=True)
class LineNumberTable:
    entries: tuple[LineNumber, ...]


@dataclass(frozen=True)
class LocalVariable:
    start_pc: int
    length: int
    name_index: int
    descriptor_index: int
    index: int
    name: str
    descriptor: str  # a generic signature in LocalVariableTypeTable


@dataclass(frozen=True)
class LocalVariableTable:
    entries: tuple[LocalVariable, ...]


@dataclass(frozen=True)
class LocalVariableTypeTable(LocalVariableTable):
    pass


@dataclass(frozen=True)
class Signature:
    signature_index: int
    signature: str


@dataclass(frozen=True)
class Deprecated:
    pass


@dataclass(frozen=True)
class Synthetic:
    pass


@dataclass(frozen=True)
class InnerClass:
    """Represents an entry in the InnerClasses attribute."""
    inner_class_info_index: int
    outer_class_info_index: int  # 0 for anonymous/local classes
    inner_name_index: int  # 0 for anonymous classes
    inner_class_access_flags: int


@dataclass(frozen=True)
class InnerClasses:
    classes: tuple[InnerClass, ...]


@dataclass(frozen=True)
class EnclosingMethod:
    class_index: int
    method_index: int  # 0 when not enclosed by a method


@dataclass(frozen=True)
class BootstrapMethod:
    method_ref: int
    arguments: tuple[int, ...]


@dataclass(frozen=True)
class BootstrapMethods:
    methods: tuple[BootstrapMethod, ...]


@dataclass(frozen=True)
class MethodParameter:
    name_index: int  # 0 for a formal parameter with no name
    access_flags: int


@dataclass(frozen=True)
class MethodParameters:
    parameters: tuple[MethodParameter, ...]


@dataclass(frozen=True)
class NestHost:
    host_class_index: int


@dataclass(frozen=True)
class NestMembers:
    classes: tuple[int, ...]


@dataclass(frozen=True)
class ElementValue:
    """An annotation element value.

    ``value`` by tag: a constant pool index for B C D F I J S Z s,
    ``(type_name_index, const_name_index)`` for e, a Utf8 index for c,
    an ``Annotation`` for @ and a tuple of ``ElementValue`` for [.
    """
    tag: str
    value: object


@dataclass(frozen=True)
class Annotation:
    """A parsed annotation."""
    type_index: int
    type_name: str
    elements: tuple[tuple[str, ElementValue], ...] = ()


@dataclass(frozen=True)
class Annotations:
    visible: bool
    annotations: tuple[Annotation, ...]


@contextmanager
def _located(offset: int):
    """Attach ``offset`` to errors raised without one."""
    try:
        yield
    except ClassFormatError as exc:
        if exc.offset is None:
            exc.offset = offset
        raise


def _optional_index(pool: ConstantPool, index: int, *types: type) -> int:
    if index != 0:
        pool.expect(index, *types)
    return index


def _read_constant_value(cursor: ByteCursor, pool: ConstantPool) -> ConstantValue:
    index = cursor.read_u2()
    pool.expect(index, ConstantInteger, ConstantFloat, ConstantLong, ConstantDouble, ConstantString)
    return ConstantValue(index)


def _read_code(cursor: ByteCursor, pool: ConstantPool) -> Code:
    max_stack = cursor.read_u2()
    max_locals = cursor.read_u2()
    code_length = cursor.read_u4()
    code_offset = cursor.offset
    code = cursor.read_bytes(code_length)

    instructions = disassemble(code, code_offset)
    for insn in instructions:
        index = insn.constant_index
        if index is not None:
            pool.get(index)

    exception_table = []
    for _ in range(cursor.read_u2()):
        entry = ExceptionTableEntry(
            start_pc=cursor.read_u2(),
            end_pc=cursor.read_u2(),
            handler_pc=cursor.read_u2(),
            catch_type=cursor.read_u2(),
        )
        _optional_index(pool, entry.catch_type, ConstantClass)
        exception_table.append(entry)

    attributes = read_attributes(cursor, pool)

    return Code(
        max_stack=max_stack,
        max_locals=max_locals,
        code=code,
        exception_table=tuple(exception_table),
        attributes=attributes,
        instructions=instructions,
    )


def _read_exceptions(cursor: ByteCursor, pool: ConstantPool) -> Exceptions:
    indices = []
    for _ in range(cursor.read_u2()):
        index = cursor.read_u2()
        pool.expect(index, ConstantClass)
        indices.append(index)
    return Exceptions(tuple(indices))


def _read_source_file(cursor: ByteCursor, pool: ConstantPool) -> SourceFile:
    index = cursor.read_u2()
    return SourceFile(index, pool.get_utf8(index))


def _read_line_number_table(cursor: ByteCursor, pool: ConstantPool) -> LineNumberTable:
    count = cursor.read_u2()
    entries = tuple(LineNumber(cursor.read_u2(), cursor.read_u2()) for _ in range(count))
    return LineNumberTable(entries)


def _read_local_variables(cursor: ByteCursor, pool: ConstantPool) -> tuple[LocalVariable, ...]:
    entries = []
    for _ in range(cursor.read_u2()):
        start_pc = cursor.read_u2()
        length = cursor.read_u2()
        name_index = cursor.read_u2()
        descriptor_index = cursor.read_u2()
        index = cursor.read_u2()
        entries.append(LocalVariable(
            start_pc=start_pc,
            length=length,
            name_index=name_index,
            descriptor_index=descriptor_index,
            index=index,
            name=pool.get_utf8(name_index),
            descriptor=pool.get_utf8(descriptor_index),
        ))
    return tuple(entries)


def _read_local_variable_table(cursor: ByteCursor, pool: ConstantPool) -> LocalVariableTable:
    return LocalVariableTable(_read_local_variables(cursor, pool))


def _read_local_variable_type_table(cursor: ByteCursor, pool: ConstantPool) -> LocalVariableTypeTable:
    return LocalVariableTypeTable(_read_local_variables(cursor, pool))


def _read_signature(cursor: ByteCursor, pool: ConstantPool) -> Signature:
    index = cursor.read_u2()
    return Signature(index, pool.get_utf8(index))


def _read_deprecated(cursor: ByteCursor, pool: ConstantPool) -> Deprecated:
    return Deprecated()


def _read_synthetic(cursor: ByteCursor, pool: ConstantPool) -> Synthetic:
    return Synthetic()


def _read_inner_classes(cursor: ByteCursor, pool: ConstantPool) -> InnerClasses:
    classes = []
    for _ in range(cursor.read_u2()):
        inner_class_idx = cursor.read_u2()
        outer_class_idx = cursor.read_u2()
        inner_name_idx = cursor.read_u2()
        inner_access = cursor.read_u2()
        pool.expect(inner_class_idx, ConstantClass)
        _optional_index(pool, outer_class_idx, ConstantClass)
        _optional_index(pool, inner_name_idx, ConstantUtf8)
        classes.append(InnerClass(inner_class_idx, outer_class_idx, inner_name_idx, inner_access))
    return InnerClasses(tuple(classes))


def _read_enclosing_method(cursor: ByteCursor, pool: ConstantPool) -> EnclosingMethod:
    class_index = cursor.read_u2()
    pool.expect(class_index, ConstantClass)
    method_index = _optional_index(pool, cursor.read_u2(), ConstantNameAndType)
    return EnclosingMethod(class_index, method_index)


def _read_bootstrap_methods(cursor: ByteCursor, pool: ConstantPool) -> BootstrapMethods:
    methods = []
    for _ in range(cursor.read_u2()):
        method_ref = cursor.read_u2()
        pool.expect(method_ref, ConstantMethodHandle)
        arguments = []
        for _ in range(cursor.read_u2()):
            arg = cursor.read_u2()
            pool.expect(arg, *LOADABLE_TYPES)
            arguments.append(arg)
        methods.append(BootstrapMethod(method_ref, tuple(arguments)))
    return BootstrapMethods(tuple(methods))


def _read_method_parameters(cursor: ByteCursor, pool: ConstantPool) -> MethodParameters:
    parameters = []
    for _ in range(cursor.read_u1()):
        name_index = _optional_index(pool, cursor.read_u2(), ConstantUtf8)
        parameters.append(MethodParameter(name_index, cursor.read_u2()))
    return MethodParameters(tuple(parameters))


def _read_nest_host(cursor: ByteCursor, pool: ConstantPool) -> NestHost:
    index = cursor.read_u2()
    pool.expect(index, ConstantClass)
    return NestHost(index)


def _read_nest_members(cursor: ByteCursor, pool: ConstantPool) -> NestMembers:
    return NestMembers(_read_exceptions(cursor, pool).exception_indices)


def _read_annotation(cursor: ByteCursor, pool: ConstantPool) -> Annotation:
    """Read a single annotation."""
    type_idx = cursor.read_u2()
    type_name = pool.get_utf8(type_idx)
    num_pairs = cursor.read_u2()
    elements = []
    for _ in range(num_pairs):
        name = pool.get_utf8(cursor.read_u2())
        elements.append((name, _read_element_value(cursor, pool)))
    return Annotation(type_index=type_idx, type_name=type_name, elements=tuple(elements))


def _read_element_value(cursor: ByteCursor, pool: ConstantPool) -> ElementValue:
    """Read an annotation element value."""
    offset = cursor.offset
    tag = chr(cursor.read_u1())

    if tag in "BCIJSZ":
        # Constant value
        const_idx = cursor.read_u2()
        pool.expect(const_idx, ConstantLong if tag == "J" else ConstantInteger)
        return ElementValue(tag, const_idx)

    elif tag in "DFs":
        const_idx = cursor.read_u2()
        expected = {"D": ConstantDouble, "F": ConstantFloat, "s": ConstantUtf8}[tag]
        pool.expect(const_idx, expected)
        return ElementValue(tag, const_idx)

    elif tag == "e":
        # Enum constant
        type_idx = cursor.read_u2()
        const_idx = cursor.read_u2()
        pool.expect(type_idx, ConstantUtf8)
        pool.expect(const_idx, ConstantUtf8)
        return ElementValue(tag, (type_idx, const_idx))

    elif tag == "c":
        # Class
        class_idx = cursor.read_u2()
        pool.expect(class_idx, ConstantUtf8)
        return ElementValue(tag, class_idx)

    elif tag == "@":
        # Nested annotation
        return ElementValue(tag, _read_annotation(cursor, pool))

    elif tag == "[":
        # Array
        num_values = cursor.read_u2()
        values = tuple(_read_element_value(cursor, pool) for _ in range(num_values))
        return ElementValue(tag, values)

    raise MalformedData(f"Unknown annotation element value tag: {tag!r}", offset)


def _read_annotations(cursor: ByteCursor, pool: ConstantPool, visible: bool) -> Annotations:
    num_ann = cursor.read_u2()
    return Annotations(visible, tuple(_read_annotation(cursor, pool) for _ in range(num_ann)))


def _read_visible_annotations(cursor: ByteCursor, pool: ConstantPool) -> Annotations:
    return _read_annotations(cursor, pool, True)


def _read_invisible_annotations(cursor: ByteCursor, pool: ConstantPool) -> Annotations:
    return _read_annotations(cursor, pool, False)


_DECODERS = {
    "ConstantValue": _read_constant_value,
    "Code": _read_code,
    "Exceptions": _read_exceptions,
    "SourceFile": _read_source_file,
    "LineNumberTable": _read_line_number_table,
    "LocalVariableTable": _read_local_variable_table,
    "LocalVariableTypeTable": _read_local_variable_type_table,
    "Signature": _read_signature,
    "Deprecated": _read_deprecated,
    "Synthetic": _read_synthetic,
    "InnerClasses": _read_inner_classes,
    "EnclosingMethod": _read_enclosing_method,
    "BootstrapMethods": _read_bootstrap_methods,
    "MethodParameters": _read_method_parameters,
    "NestHost": _read_nest_host,
    "NestMembers": _read_nest_members,
    "RuntimeVisibleAnnotations": _read_visible_annotations,
    "RuntimeInvisibleAnnotations": _read_invisible_annotations,
}

KNOWN_ATTRIBUTES = frozenset(_DECODERS)


def read_attribute(cursor: ByteCursor, pool: ConstantPool) -> AttributeInfo:
    """Read one attribute, decoding its body when the name is recognized."""
    offset = cursor.offset
    name_index = cursor.read_u2()
    with _located(offset):
        name = pool.get_utf8(name_index)
    length = cursor.read_u4()
    body_cursor = cursor.subcursor(length)

    decoder = _DECODERS.get(name)
    if decoder is None:
        log.debug("Keeping unrecognized attribute %s (%d bytes) as raw data", name, length)
        return AttributeInfo(name_index, name, body_cursor.data)

    with _located(offset):
        body = decoder(body_cursor, pool)
    if not body_cursor.at_end:
        raise MalformedData(
            f"{name} attribute has {body_cursor.remaining} unread byte(s)", body_cursor.offset
        )
    return AttributeInfo(name_index, name, body_cursor.data, body)


def read_attributes(cursor: ByteCursor, pool: ConstantPool) -> tuple[AttributeInfo, ...]:
    """Read a u2 attribute count followed by that many attributes."""
    count = cursor.read_u2()
    return tuple(read_attribute(cursor, pool) for _ in range(count))
