"""pyjavap - Java class file parser and javap-style disassembler."""

from .classfile import ClassFile, FieldInfo, MethodInfo
from .classreader import ClassPath, ClassReader, parse_class, read_class_file, read_class_stream
from .errors import ClassFormatError
from .printer import PrinterOptions, format_class_file, print_class_file

__version__ = "0.1.0"
__all__ = [
    "ClassFile",
    "ClassFormatError",
    "ClassPath",
    "ClassReader",
    "FieldInfo",
    "MethodInfo",
    "PrinterOptions",
    "format_class_file",
    "parse_class",
    "print_class_file",
    "read_class_file",
    "read_class_stream",
]
