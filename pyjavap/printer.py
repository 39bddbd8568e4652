"""
javap-style rendering of a parsed class file.

The printer only formats; it assumes a ClassFile accepted by the reader and
falls back to raw strings wherever a descriptor cannot be decoded.
"""

import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional, TextIO

from .attributes import (
    Annotation,
    Annotations,
    AttributeInfo,
    BootstrapMethods,
    Code,
    ConstantValue,
    Deprecated,
    ElementValue,
    EnclosingMethod,
    Exceptions,
    InnerClasses,
    LineNumberTable,
    LocalVariableTable,
    MethodParameters,
    NestHost,
    NestMembers,
    Signature,
    SourceFile,
    Synthetic,
)
from .bytecode import NEWARRAY_TYPES, Instruction, OperandLayout
from .classfile import (
    AccessFlags,
    ClassFile,
    FieldInfo,
    FlagContext,
    MethodInfo,
    flag_keywords,
)
from .constant_pool import (
    ConstantClass,
    ConstantDouble,
    ConstantDynamic,
    ConstantFloat,
    ConstantInteger,
    ConstantInvokeDynamic,
    ConstantLong,
    ConstantMethodHandle,
    ConstantMethodType,
    ConstantModule,
    ConstantNameAndType,
    ConstantPackage,
    ConstantPoolEntry,
    ConstantString,
    ConstantUtf8,
    MemberRef,
    escape_text,
    format_double,
    format_float,
)
from .descriptors import parse_field_descriptor, parse_method_descriptor
from .errors import DescriptorError


@dataclass(frozen=True)
class PrinterOptions:
    """What to include in the disassembly."""
    show_constant_pool: bool = True
    show_code: bool = True
    show_private: bool = True
    show_attributes: bool = True


# Column where "// comment" starts on header and instruction lines
COMMENT_COLUMN = 40

_CONSTANT_VALUE_TYPES = {
    ConstantInteger: "int",
    ConstantFloat: "float",
    ConstantLong: "long",
    ConstantDouble: "double",
    ConstantString: "String",
}

_PARAMETER_FLAGS = ((0x0010, "final"), (0x1000, "synthetic"), (0x8000, "mandated"))


def _append_comment(text: str, comment: str, column: int) -> str:
    if len(text) < column:
        return f"{text.ljust(column)}// {comment}"
    return f"{text} // {comment}"


def _java_class_name(internal_name: str) -> str:
    return internal_name.replace("/", ".")


def _java_type(descriptor: str) -> str:
    """Java source spelling of a field descriptor, or the descriptor itself."""
    if descriptor == "V":
        return "void"
    try:
        return parse_field_descriptor(descriptor).java_name
    except DescriptorError:
        return descriptor


def _pool_arguments(entry: ConstantPoolEntry) -> str:
    """The raw operands of a pool entry, as shown in the listing."""
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
    if isinstance(entry, (ConstantClass, ConstantModule, ConstantPackage)):
        return f"#{entry.name_index}"
    if isinstance(entry, ConstantString):
        return f"#{entry.string_index}"
    if isinstance(entry, MemberRef):
        return f"#{entry.class_index}.#{entry.name_and_type_index}"
    if isinstance(entry, ConstantNameAndType):
        return f"#{entry.name_index}:#{entry.descriptor_index}"
    if isinstance(entry, ConstantMethodHandle):
        return f"{entry.reference_kind}:#{entry.reference_index}"
    if isinstance(entry, ConstantMethodType):
        return f"#{entry.descriptor_index}"
    if isinstance(entry, (ConstantDynamic, ConstantInvokeDynamic)):
        return f"#{entry.bootstrap_method_attr_index}:#{entry.name_and_type_index}"
    return ""


# Entries whose listing line is self-contained and carries no comment
_LITERAL_ENTRIES = (ConstantUtf8, ConstantInteger, ConstantFloat, ConstantLong, ConstantDouble)


class ClassFilePrinter:
    """Renders a ClassFile as javap -v style text."""

    def __init__(self, class_file: ClassFile, options: Optional[PrinterOptions] = None):
        self.class_file = class_file
        self.pool = class_file.constant_pool
        self.options = options or PrinterOptions()
        self.lines: list[str] = []
        self.indent_level = 0

    @contextmanager
    def indented(self):
        self.indent_level += 1
        try:
            yield
        finally:
            self.indent_level -= 1

    def emit(self, text: str = ""):
        if text:
            self.lines.append("  " * self.indent_level + text)
        else:
            self.lines.append("")

    def format(self) -> str:
        cf = self.class_file
        if cf.source_file is not None:
            self.emit(f'Compiled from "{cf.source_file}"')
        self.emit(self.class_declaration())
        with self.indented():
            self.print_header()
        if self.options.show_constant_pool:
            self.print_constant_pool()

        self.emit("{")
        members = [m for m in (*cf.fields, *cf.methods) if self.is_visible(m)]
        for i, member in enumerate(members):
            if i:
                self.emit()
            with self.indented():
                if isinstance(member, FieldInfo):
                    self.print_field(member)
                else:
                    self.print_method(member)
        self.emit("}")

        if self.options.show_attributes:
            for attr in cf.attributes:
                self.print_attribute(attr)
        text = "\n".join(self.lines) + "\n"
        # Names are not escaped; unpaired surrogates in them become \uXXXX
        return text.encode("utf-8", "backslashreplace").decode("utf-8")

    def is_visible(self, member) -> bool:
        return self.options.show_private or not member.has_flag(AccessFlags.PRIVATE)

    def flags_line(self, flags: int, names: list[str]) -> str:
        return f"flags: (0x{flags:04x}) {', '.join(names)}".rstrip()

    # Header

    def class_declaration(self) -> str:
        cf = self.class_file
        words = flag_keywords(cf.access_flags, FlagContext.CLASS)
        if cf.access_flags & AccessFlags.MODULE:
            return f"module {_java_class_name(cf.name)}"
        if cf.is_interface:
            words = [w for w in words if w != "abstract"]
            words.append("@interface" if cf.access_flags & AccessFlags.ANNOTATION else "interface")
        else:
            words.append("class")
        words.append(_java_class_name(cf.name))

        interfaces = ", ".join(_java_class_name(n) for n in cf.interface_names)
        if cf.is_interface:
            if interfaces:
                words.append(f"extends {interfaces}")
        else:
            if cf.super_name is not None and cf.super_name != "java/lang/Object":
                words.append(f"extends {_java_class_name(cf.super_name)}")
            if interfaces:
                words.append(f"implements {interfaces}")
        return " ".join(words)

    def print_header(self):
        cf = self.class_file
        self.emit(f"minor version: {cf.minor_version}")
        self.emit(f"major version: {cf.major_version}")
        self.emit(self.flags_line(cf.access_flags, cf.access_flag_names))
        self.emit(_append_comment(f"this_class: #{cf.this_class}", cf.name, COMMENT_COLUMN))
        if cf.super_class:
            self.emit(_append_comment(
                f"super_class: #{cf.super_class}", cf.super_name, COMMENT_COLUMN
            ))
        else:
            self.emit("super_class: #0")
        self.emit(
            f"interfaces: {len(cf.interfaces)}, fields: {len(cf.fields)}, "
            f"methods: {len(cf.methods)}, attributes: {len(cf.attributes)}"
        )

    def print_constant_pool(self):
        self.emit("Constant pool:")
        width = len(str(self.pool.count - 1)) + 1
        for index, entry in self.pool:
            label = f"#{index}".rjust(width + 2)
            args = _pool_arguments(entry)
            if isinstance(entry, _LITERAL_ENTRIES):
                line = f"{label} = {entry.kind:<18} {args}"
            else:
                line = f"{label} = {entry.kind:<18} {args:<14} // {self.pool.describe(index)}"
            self.lines.append(line.rstrip())

    # Members

    def field_declaration(self, field: FieldInfo) -> str:
        words = flag_keywords(field.access_flags, FlagContext.FIELD)
        words.append(_java_type(field.descriptor))
        words.append(field.name)
        return " ".join(words) + ";"

    def method_declaration(self, method: MethodInfo) -> str:
        if method.name == "<clinit>":
            return "static {};"
        words = flag_keywords(method.access_flags, FlagContext.METHOD)
        try:
            desc = parse_method_descriptor(method.descriptor)
        except DescriptorError:
            words.append(f"{method.name}{method.descriptor}")
            return " ".join(words) + ";"

        params = [p.java_name for p in desc.parameters]
        if method.has_flag(AccessFlags.VARARGS) and params and params[-1].endswith("[]"):
            params[-1] = params[-1][:-2] + "..."
        if method.name == "<init>":
            words.append(f"{_java_class_name(self.class_file.name)}({', '.join(params)})")
        else:
            words.append(desc.return_type.java_name)
            words.append(f"{method.name}({', '.join(params)})")

        decl = " ".join(words)
        if method.exception_indices:
            thrown = ", ".join(
                _java_class_name(self.pool.get_class_name(i)) for i in method.exception_indices
            )
            decl += f" throws {thrown}"
        return decl + ";"

    def print_field(self, field: FieldInfo):
        self.emit(self.field_declaration(field))
        with self.indented():
            self.emit(f"descriptor: {field.descriptor}")
            self.emit(self.flags_line(field.access_flags, field.access_flag_names))
            if self.options.show_attributes:
                for attr in field.attributes:
                    self.print_attribute(attr)

    def print_method(self, method: MethodInfo):
        self.emit(self.method_declaration(method))
        with self.indented():
            self.emit(f"descriptor: {method.descriptor}")
            self.emit(self.flags_line(method.access_flags, method.access_flag_names))
            for attr in method.attributes:
                if isinstance(attr.body, Code):
                    if self.options.show_code:
                        self.print_code(method, attr.body)
                elif self.options.show_attributes:
                    self.print_attribute(attr)

    # Code

    def print_code(self, method: MethodInfo, code: Code):
        try:
            args_size = str(method.args_size)
        except DescriptorError:
            args_size = "?"
        self.emit("Code:")
        with self.indented():
            self.emit(f"stack={code.max_stack}, locals={code.max_locals}, args_size={args_size}")
            for insn in code.instructions:
                for line in self.format_instruction(insn):
                    self.emit(line)
            if code.exception_table:
                self.print_exception_table(code)
            if self.options.show_attributes:
                for attr in code.attributes:
                    self.print_attribute(attr)

    def format_instruction(self, insn: Instruction) -> list[str]:
        """One or more lines for an instruction (switches span several)."""
        head = f"{insn.offset:>4}: "
        mnemonic = insn.mnemonic + "_w" if insn.wide else insn.mnemonic
        layout = insn.layout
        ops = insn.operands
        comment = None

        if layout is OperandLayout.NONE:
            return [head + mnemonic]

        elif layout in (OperandLayout.BYTE, OperandLayout.SHORT, OperandLayout.LOCAL):
            operands = str(ops[0])

        elif layout is OperandLayout.IINC:
            operands = f"{ops[0]}, {ops[1]}"

        elif layout in (OperandLayout.CONSTANT_U1, OperandLayout.CONSTANT_U2):
            operands = f"#{ops[0]}"
            comment = self.pool.describe(ops[0])

        elif layout in (OperandLayout.BRANCH_S2, OperandLayout.BRANCH_S4):
            operands = str(insn.branch_targets[0])

        elif layout in (OperandLayout.INVOKEINTERFACE, OperandLayout.MULTIANEWARRAY):
            operands = f"#{ops[0]},  {ops[1]}"
            comment = self.pool.describe(ops[0])

        elif layout is OperandLayout.INVOKEDYNAMIC:
            operands = f"#{ops[0]},  0"
            comment = self.pool.describe(ops[0])

        elif layout is OperandLayout.NEWARRAY:
            operands = NEWARRAY_TYPES.get(ops[0], str(ops[0]))

        elif layout in (OperandLayout.TABLESWITCH, OperandLayout.LOOKUPSWITCH):
            return self.format_switch(head, mnemonic, insn)

        else:
            operands = " ".join(str(op) for op in ops)

        text = f"{head}{mnemonic:<13} {operands}"
        if comment is not None:
            text = _append_comment(text, comment, COMMENT_COLUMN)
        return [text]

    def format_switch(self, head: str, mnemonic: str, insn: Instruction) -> list[str]:
        switch = insn.operands[0]
        if insn.layout is OperandLayout.TABLESWITCH:
            summary = f"{switch.low} to {switch.high}"
        else:
            summary = str(len(switch.pairs))
        pad = " " * len(head)
        lines = [f"{head}{mnemonic:<13} {{ // {summary}"]
        for match, rel in switch.cases():
            lines.append(f"{pad}{match:>12}: {insn.offset + rel}")
        lines.append(f"{pad}{'default':>12}: {insn.offset + switch.default}")
        lines.append(f"{pad}}}")
        return lines

    def print_exception_table(self, code: Code):
        self.emit("Exception table:")
        self.emit("   from    to  target type")
        for entry in code.exception_table:
            if entry.catch_type:
                catch = f"Class {self.pool.describe(entry.catch_type)}"
            else:
                catch = "any"
            self.emit(f"{entry.start_pc:>7}{entry.end_pc:>6}{entry.handler_pc:>6}   {catch}")

    # Attributes

    def print_attribute(self, attr: AttributeInfo):
        body = attr.body
        pool = self.pool

        if body is None:
            self.emit(f"{attr.name}: length = 0x{attr.length:x}")
            with self.indented():
                for start in range(0, attr.length, 16):
                    self.emit(" ".join(f"{b:02x}" for b in attr.info[start:start + 16]))

        elif isinstance(body, SourceFile):
            self.emit(f'SourceFile: "{body.source_file}"')

        elif isinstance(body, Signature):
            self.emit(_append_comment(
                f"Signature: #{body.signature_index}", body.signature, COMMENT_COLUMN
            ))

        elif isinstance(body, ConstantValue):
            entry = pool.get(body.constant_index)
            type_name = _CONSTANT_VALUE_TYPES.get(type(entry), entry.kind)
            self.emit(f"ConstantValue: {type_name} {pool.describe(body.constant_index)}")

        elif isinstance(body, (Deprecated, Synthetic)):
            self.emit(f"{attr.name}: true")

        elif isinstance(body, Exceptions):
            self.emit("Exceptions:")
            with self.indented():
                names = ", ".join(_java_class_name(pool.get_class_name(i)) for i in body.exception_indices)
                self.emit(f"throws {names}")

        elif isinstance(body, LineNumberTable):
            self.emit("LineNumberTable:")
            with self.indented():
                for entry in body.entries:
                    self.emit(f"line {entry.line_number}: {entry.start_pc}")

        elif isinstance(body, LocalVariableTable):
            self.emit(f"{attr.name}:")
            with self.indented():
                self.emit("Start  Length  Slot  Name   Signature")
                for var in body.entries:
                    self.emit(f"{var.start_pc:>5}{var.length:>8}{var.index:>6}{var.name:>6}   {var.descriptor}")

        elif isinstance(body, InnerClasses):
            self.emit("InnerClasses:")
            with self.indented():
                for inner in body.classes:
                    self.emit(self.format_inner_class(inner))

        elif isinstance(body, EnclosingMethod):
            text = f"EnclosingMethod: #{body.class_index}.#{body.method_index}"
            comment = pool.describe(body.class_index)
            if body.method_index:
                comment += "." + pool.get_name_and_type(body.method_index)[0]
            self.emit(_append_comment(text, comment, COMMENT_COLUMN))

        elif isinstance(body, BootstrapMethods):
            self.emit("BootstrapMethods:")
            with self.indented():
                for i, method in enumerate(body.methods):
                    self.emit(f"{i}: #{method.method_ref} {pool.describe(method.method_ref)}")
                    with self.indented():
                        self.emit("Method arguments:")
                        with self.indented():
                            for arg in method.arguments:
                                self.emit(f"#{arg} {pool.describe(arg)}")

        elif isinstance(body, MethodParameters):
            self.emit("MethodParameters:")
            with self.indented():
                self.emit(f"{'Name':<30} Flags")
                for param in body.parameters:
                    name = pool.get_utf8(param.name_index) if param.name_index else "<no name>"
                    flags = " ".join(word for mask, word in _PARAMETER_FLAGS if param.access_flags & mask)
                    self.emit(f"{name:<30} {flags}".rstrip())

        elif isinstance(body, NestHost):
            self.emit(f"NestHost: class {pool.describe(body.host_class_index)}")

        elif isinstance(body, NestMembers):
            self.emit("NestMembers:")
            with self.indented():
                for index in body.classes:
                    self.emit(pool.describe(index))

        elif isinstance(body, Annotations):
            self.emit(f"{attr.name}:")
            with self.indented():
                for i, annotation in enumerate(body.annotations):
                    self.emit(f"{i}: #{annotation.type_index}()")
                    try:
                        text = self.format_annotation(annotation)
                    except RecursionError:
                        text = f"{_java_type(annotation.type_name)}(...)"
                    with self.indented():
                        self.emit(text)

        elif isinstance(body, Code):
            # Code nested below a field or the class; print it without a method
            self.emit(f"{attr.name}: stack={body.max_stack}, locals={body.max_locals}")
            with self.indented():
                for insn in body.instructions:
                    for line in self.format_instruction(insn):
                        self.emit(line)

    def format_inner_class(self, inner) -> str:
        pool = self.pool
        words = flag_keywords(inner.inner_class_access_flags, FlagContext.INNER_CLASS)
        inner_name = pool.describe(inner.inner_class_info_index)
        if inner.inner_name_index:
            ref = f"#{inner.inner_name_index}= #{inner.inner_class_info_index}"
            comment = f"{pool.get_utf8(inner.inner_name_index)}=class {inner_name}"
        else:
            ref = f"#{inner.inner_class_info_index}"
            comment = f"class {inner_name}"
        if inner.outer_class_info_index:
            ref += f" of #{inner.outer_class_info_index}"
            comment += f" of class {pool.describe(inner.outer_class_info_index)}"
        words.append(ref + ";")
        return _append_comment(" ".join(words), comment, COMMENT_COLUMN)

    def format_annotation(self, annotation: Annotation) -> str:
        text = _java_type(annotation.type_name)
        if annotation.elements:
            values = ", ".join(
                f"{name}={self.format_element_value(value)}" for name, value in annotation.elements
            )
            text += f"({values})"
        return text

    def format_element_value(self, value: ElementValue) -> str:
        pool = self.pool
        tag = value.tag

        if tag == "s":
            return '"' + escape_text(pool.get_utf8(value.value)) + '"'

        elif tag == "Z":
            return "true" if pool.get(value.value).value else "false"

        elif tag == "C":
            code_point = pool.get(value.value).value
            if 0 <= code_point <= 0x10FFFF:
                return f"'{escape_text(chr(code_point))}'"
            return str(code_point)

        elif tag in "BDFIJS":
            return pool.describe(value.value)

        elif tag == "e":
            type_index, const_index = value.value
            return f"{_java_type(pool.get_utf8(type_index))}.{pool.get_utf8(const_index)}"

        elif tag == "c":
            return f"{_java_type(pool.get_utf8(value.value))}.class"

        elif tag == "@":
            return "@" + self.format_annotation(value.value)

        elif tag == "[":
            return "[" + ",".join(self.format_element_value(v) for v in value.value) + "]"

        return str(value.value)


def format_class_file(class_file: ClassFile, options: Optional[PrinterOptions] = None) -> str:
    """Render a parsed class file as javap-style text."""
    return ClassFilePrinter(class_file, options).format()


def print_class_file(
    class_file: ClassFile,
    options: Optional[PrinterOptions] = None,
    file: Optional[TextIO] = None,
):
    """Dump a class file."""
    (file or sys.stdout).write(format_class_file(class_file, options))
