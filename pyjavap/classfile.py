"""
Java class file constants and the parsed, read-only class file model.
"""

from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING
from enum import IntEnum, IntFlag

from .descriptors import parse_field_descriptor, parse_method_descriptor

if TYPE_CHECKING:
    from .attributes import AttributeInfo, Code
    from .bytecode import Instruction
    from .constant_pool import ConstantPool
    from .descriptors import FieldType, MethodDescriptor


MAGIC = 0xCAFEBABE

# JDK 1.0.2 class files are version 45; nothing older exists
MIN_MAJOR_VERSION = 45


class ClassFileVersion:
    JAVA_1_1 = (45, 3)
    JAVA_5 = (49, 0)
    JAVA_6 = (50, 0)
    JAVA_7 = (51, 0)
    JAVA_8 = (52, 0)
    JAVA_11 = (55, 0)
    JAVA_17 = (61, 0)
    JAVA_21 = (65, 0)


class AccessFlags(IntFlag):
    PUBLIC = 0x0001
    PRIVATE = 0x0002
    PROTECTED = 0x0004
    STATIC = 0x0008
    FINAL = 0x0010
    SUPER = 0x0020  # For classes (invokespecial semantics)
    SYNCHRONIZED = 0x0020  # For methods
    VOLATILE = 0x0040
    BRIDGE = 0x0040
    TRANSIENT = 0x0080
    VARARGS = 0x0080
    NATIVE = 0x0100
    INTERFACE = 0x0200
    ABSTRACT = 0x0400
    STRICT = 0x0800
    SYNTHETIC = 0x1000
    ANNOTATION = 0x2000
    ENUM = 0x4000
    MODULE = 0x8000  # For classes
    MANDATED = 0x8000  # For parameters


class FlagContext(IntEnum):
    CLASS = 0
    FIELD = 1
    METHOD = 2
    INNER_CLASS = 3


# Mnemonic tables, in the order javap lists them
_FLAG_NAMES = {
    FlagContext.CLASS: (
        (0x0001, "ACC_PUBLIC"), (0x0010, "ACC_FINAL"), (0x0020, "ACC_SUPER"),
        (0x0200, "ACC_INTERFACE"), (0x0400, "ACC_ABSTRACT"), (0x1000, "ACC_SYNTHETIC"),
        (0x2000, "ACC_ANNOTATION"), (0x4000, "ACC_ENUM"), (0x8000, "ACC_MODULE"),
    ),
    FlagContext.FIELD: (
        (0x0001, "ACC_PUBLIC"), (0x0002, "ACC_PRIVATE"), (0x0004, "ACC_PROTECTED"),
        (0x0008, "ACC_STATIC"), (0x0010, "ACC_FINAL"), (0x0040, "ACC_VOLATILE"),
        (0x0080, "ACC_TRANSIENT"), (0x1000, "ACC_SYNTHETIC"), (0x4000, "ACC_ENUM"),
    ),
    FlagContext.METHOD: (
        (0x0001, "ACC_PUBLIC"), (0x0002, "ACC_PRIVATE"), (0x0004, "ACC_PROTECTED"),
        (0x0008, "ACC_STATIC"), (0x0010, "ACC_FINAL"), (0x0020, "ACC_SYNCHRONIZED"),
        (0x0040, "ACC_BRIDGE"), (0x0080, "ACC_VARARGS"), (0x0100, "ACC_NATIVE"),
        (0x0400, "ACC_ABSTRACT"), (0x0800, "ACC_STRICT"), (0x1000, "ACC_SYNTHETIC"),
    ),
    FlagContext.INNER_CLASS: (
        (0x0001, "ACC_PUBLIC"), (0x0002, "ACC_PRIVATE"), (0x0004, "ACC_PROTECTED"),
        (0x0008, "ACC_STATIC"), (0x0010, "ACC_FINAL"), (0x0200, "ACC_INTERFACE"),
        (0x0400, "ACC_ABSTRACT"), (0x1000, "ACC_SYNTHETIC"), (0x2000, "ACC_ANNOTATION"),
        (0x4000, "ACC_ENUM"),
    ),
}

# Source-level modifiers, in Java's canonical modifier order
_FLAG_KEYWORDS = {
    FlagContext.CLASS: ((0x0001, "public"), (0x0400, "abstract"), (0x0010, "final")),
    FlagContext.FIELD: (
        (0x0001, "public"), (0x0004, "protected"), (0x0002, "private"),
        (0x0008, "static"), (0x0010, "final"), (0x0080, "transient"), (0x0040, "volatile"),
    ),
    FlagContext.METHOD: (
        (0x0001, "public"), (0x0004, "protected"), (0x0002, "private"),
        (0x0400, "abstract"), (0x0008, "static"), (0x0010, "final"),
        (0x0020, "synchronized"), (0x0100, "native"), (0x0800, "strictfp"),
    ),
    FlagContext.INNER_CLASS: (
        (0x0001, "public"), (0x0004, "protected"), (0x0002, "private"),
        (0x0400, "abstract"), (0x0008, "static"), (0x0010, "final"),
    ),
}


def flag_names(flags: int, context: FlagContext) -> list[str]:
    """Decode an access flag bitmask into ACC_* mnemonics for the given context."""
    return [name for mask, name in _FLAG_NAMES[context] if flags & mask]


def flag_keywords(flags: int, context: FlagContext) -> list[str]:
    """Decode an access flag bitmask into Java modifier keywords."""
    return [word for mask, word in _FLAG_KEYWORDS[context] if flags & mask]


class Opcode(IntEnum):
    NOP = 0x00
    ACONST_NULL = 0x01
    ICONST_M1 = 0x02
    ICONST_0 = 0x03
    ICONST_1 = 0x04
    ICONST_2 = 0x05
    ICONST_3 = 0x06
    ICONST_4 = 0x07
    ICONST_5 = 0x08
    LCONST_0 = 0x09
    LCONST_1 = 0x0A
    FCONST_0 = 0x0B
    FCONST_1 = 0x0C
    FCONST_2 = 0x0D
    DCONST_0 = 0x0E
    DCONST_1 = 0x0F
    BIPUSH = 0x10
    SIPUSH = 0x11
    LDC = 0x12
    LDC_W = 0x13
    LDC2_W = 0x14
    ILOAD = 0x15
    LLOAD = 0x16
    FLOAD = 0x17
    DLOAD = 0x18
    ALOAD = 0x19
    ILOAD_0 = 0x1A
    ILOAD_1 = 0x1B
    ILOAD_2 = 0x1C
    ILOAD_3 = 0x1D
    LLOAD_0 = 0x1E
    LLOAD_1 = 0x1F
    LLOAD_2 = 0x20
    LLOAD_3 = 0x21
    FLOAD_0 = 0x22
    FLOAD_1 = 0x23
    FLOAD_2 = 0x24
    FLOAD_3 = 0x25
    DLOAD_0 = 0x26
    DLOAD_1 = 0x27
    DLOAD_2 = 0x28
    DLOAD_3 = 0x29
    ALOAD_0 = 0x2A
    ALOAD_1 = 0x2B
    ALOAD_2 = 0x2C
    ALOAD_3 = 0x2D
    IALOAD = 0x2E
    LALOAD = 0x2F
    FALOAD = 0x30
    DALOAD = 0x31
    AALOAD = 0x32
    BALOAD = 0x33
    CALOAD = 0x34
    SALOAD = 0x35
    ISTORE = 0x36
    LSTORE = 0x37
    FSTORE = 0x38
    DSTORE = 0x39
    ASTORE = 0x3A
    ISTORE_0 = 0x3B
    ISTORE_1 = 0x3C
    ISTORE_2 = 0x3D
    ISTORE_3 = 0x3E
    LSTORE_0 = 0x3F
    LSTORE_1 = 0x40
    LSTORE_2 = 0x41
    LSTORE_3 = 0x42
    FSTORE_0 = 0x43
    FSTORE_1 = 0x44
    FSTORE_2 = 0x45
    FSTORE_3 = 0x46
    DSTORE_0 = 0x47
    DSTORE_1 = 0x48
    DSTORE_2 = 0x49
    DSTORE_3 = 0x4A
    ASTORE_0 = 0x4B
    ASTORE_1 = 0x4C
    ASTORE_2 = 0x4D
    ASTORE_3 = 0x4E
    IASTORE = 0x4F
    LASTORE = 0x50
    FASTORE = 0x51
    DASTORE = 0x52
    AASTORE = 0x53
    BASTORE = 0x54
    CASTORE = 0x55
    SASTORE = 0x56
    POP = 0x57
    POP2 = 0x58
    DUP = 0x59
    DUP_X1 = 0x5A
    DUP_X2 = 0x5B
    DUP2 = 0x5C
    DUP2_X1 = 0x5D
    DUP2_X2 = 0x5E
    SWAP = 0x5F
    IADD = 0x60
    LADD = 0x61
    FADD = 0x62
    DADD = 0x63
    ISUB = 0x64
    LSUB = 0x65
    FSUB = 0x66
    DSUB = 0x67
    IMUL = 0x68
    LMUL = 0x69
    FMUL = 0x6A
    DMUL = 0x6B
    IDIV = 0x6C
    LDIV = 0x6D
    FDIV = 0x6E
    DDIV = 0x6F
    IREM = 0x70
    LREM = 0x71
    FREM = 0x72
    DREM = 0x73
    INEG = 0x74
    LNEG = 0x75
    FNEG = 0x76
    DNEG = 0x77
    ISHL = 0x78
    LSHL = 0x79
    ISHR = 0x7A
    LSHR = 0x7B
    IUSHR = 0x7C
    LUSHR = 0x7D
    IAND = 0x7E
    LAND = 0x7F
    IOR = 0x80
    LOR = 0x81
    IXOR = 0x82
    LXOR = 0x83
    IINC = 0x84
    I2L = 0x85
    I2F = 0x86
    I2D = 0x87
    L2I = 0x88
    L2F = 0x89
    L2D = 0x8A
    F2I = 0x8B
    F2L = 0x8C
    F2D = 0x8D
    D2I = 0x8E
    D2L = 0x8F
    D2F = 0x90
    I2B = 0x91
    I2C = 0x92
    I2S = 0x93
    LCMP = 0x94
    FCMPL = 0x95
    FCMPG = 0x96
    DCMPL = 0x97
    DCMPG = 0x98
    IFEQ = 0x99
    IFNE = 0x9A
    IFLT = 0x9B
    IFGE = 0x9C
    IFGT = 0x9D
    IFLE = 0x9E
    IF_ICMPEQ = 0x9F
    IF_ICMPNE = 0xA0
    IF_ICMPLT = 0xA1
    IF_ICMPGE = 0xA2
    IF_ICMPGT = 0xA3
    IF_ICMPLE = 0xA4
    IF_ACMPEQ = 0xA5
    IF_ACMPNE = 0xA6
    GOTO = 0xA7
    JSR = 0xA8
    RET = 0xA9
    TABLESWITCH = 0xAA
    LOOKUPSWITCH = 0xAB
    IRETURN = 0xAC
    LRETURN = 0xAD
    FRETURN = 0xAE
    DRETURN = 0xAF
    ARETURN = 0xB0
    RETURN = 0xB1
    GETSTATIC = 0xB2
    PUTSTATIC = 0xB3
    GETFIELD = 0xB4
    PUTFIELD = 0xB5
    INVOKEVIRTUAL = 0xB6
    INVOKESPECIAL = 0xB7
    INVOKESTATIC = 0xB8
    INVOKEINTERFACE = 0xB9
    INVOKEDYNAMIC = 0xBA
    NEW = 0xBB
    NEWARRAY = 0xBC
    ANEWARRAY = 0xBD
    ARRAYLENGTH = 0xBE
    ATHROW = 0xBF
    CHECKCAST = 0xC0
    INSTANCEOF = 0xC1
    MONITORENTER = 0xC2
    MONITOREXIT = 0xC3
    WIDE = 0xC4
    MULTIANEWARRAY = 0xC5
    IFNULL = 0xC6
    IFNONNULL = 0xC7
    GOTO_W = 0xC8
    JSR_W = 0xC9
    # Reserved: never appear in valid class files, but javap still names them
    BREAKPOINT = 0xCA
    IMPDEP1 = 0xFE
    IMPDEP2 = 0xFF


class ConstantPoolTag(IntEnum):
    UTF8 = 1
    INTEGER = 3
    FLOAT = 4
    LONG = 5
    DOUBLE = 6
    CLASS = 7
    STRING = 8
    FIELDREF = 9
    METHODREF = 10
    INTERFACE_METHODREF = 11
    NAME_AND_TYPE = 12
    METHOD_HANDLE = 15
    METHOD_TYPE = 16
    DYNAMIC = 17
    INVOKE_DYNAMIC = 18
    MODULE = 19
    PACKAGE = 20


class ReferenceKind(IntEnum):
    """Kinds of CONSTANT_MethodHandle references."""
    GET_FIELD = 1
    GET_STATIC = 2
    PUT_FIELD = 3
    PUT_STATIC = 4
    INVOKE_VIRTUAL = 5
    INVOKE_STATIC = 6
    INVOKE_SPECIAL = 7
    NEW_INVOKE_SPECIAL = 8
    INVOKE_INTERFACE = 9

    @property
    def mnemonic(self) -> str:
        """javap spelling, e.g. REF_invokeStatic."""
        head, *rest = self.name.lower().split("_")
        return "REF_" + head + "".join(part.capitalize() for part in rest)


def _find_attribute(attributes, name: str):
    for attr in attributes:
        if attr.name == name:
            return attr
    return None


@dataclass(frozen=True)
class MemberInfo:
    """Shared shape of field_info and method_info records."""
    access_flags: int
    name_index: int
    descriptor_index: int
    name: str
    descriptor: str
    attributes: tuple["AttributeInfo", ...] = ()

    def get_attribute(self, name: str) -> Optional["AttributeInfo"]:
        return _find_attribute(self.attributes, name)

    def has_flag(self, flag: int) -> bool:
        return bool(self.access_flags & flag)

    @property
    def is_static(self) -> bool:
        return self.has_flag(AccessFlags.STATIC)

    @property
    def signature(self) -> Optional[str]:
        """Generic signature, if the member carries a Signature attribute."""
        attr = self.get_attribute("Signature")
        return attr.body.signature if attr is not None else None


@dataclass(frozen=True)
class FieldInfo(MemberInfo):
    """Field in a class file."""

    @property
    def access_flag_names(self) -> list[str]:
        return flag_names(self.access_flags, FlagContext.FIELD)

    @property
    def parsed_descriptor(self) -> "FieldType":
        return parse_field_descriptor(self.descriptor)

    @property
    def constant_value_index(self) -> Optional[int]:
        attr = self.get_attribute("ConstantValue")
        return attr.body.constant_index if attr is not None else None


@dataclass(frozen=True)
class MethodInfo(MemberInfo):
    """Method in a class file."""

    @property
    def access_flag_names(self) -> list[str]:
        return flag_names(self.access_flags, FlagContext.METHOD)

    @property
    def parsed_descriptor(self) -> "MethodDescriptor":
        return parse_method_descriptor(self.descriptor)

    @property
    def code(self) -> Optional["Code"]:
        """The Code attribute body; None for abstract and native methods."""
        attr = self.get_attribute("Code")
        return attr.body if attr is not None else None

    @property
    def instructions(self) -> tuple["Instruction", ...]:
        code = self.code
        return code.instructions if code is not None else ()

    @property
    def exception_indices(self) -> tuple[int, ...]:
        attr = self.get_attribute("Exceptions")
        return attr.body.exception_indices if attr is not None else ()

    @property
    def args_size(self) -> int:
        """Local slots taken by the arguments, including the receiver."""
        slots = self.parsed_descriptor.argument_slots
        return slots if self.is_static else slots + 1


@dataclass(frozen=True)
class ClassFile:
    """A parsed Java class file."""
    magic: int
    minor_version: int
    major_version: int
    constant_pool: "ConstantPool"
    access_flags: int
    this_class: int
    super_class: int
    interfaces: tuple[int, ...]
    fields: tuple[FieldInfo, ...]
    methods: tuple[MethodInfo, ...]
    attributes: tuple["AttributeInfo", ...]

    @property
    def version(self) -> tuple[int, int]:
        return (self.major_version, self.minor_version)

    @property
    def name(self) -> str:
        return self.constant_pool.get_class_name(self.this_class)

    @property
    def super_name(self) -> Optional[str]:
        """Superclass name; None only for java/lang/Object (and module-info)."""
        if self.super_class == 0:
            return None
        return self.constant_pool.get_class_name(self.super_class)

    @property
    def interface_names(self) -> tuple[str, ...]:
        return tuple(self.constant_pool.get_class_name(i) for i in self.interfaces)

    @property
    def access_flag_names(self) -> list[str]:
        return flag_names(self.access_flags, FlagContext.CLASS)

    @property
    def is_interface(self) -> bool:
        return bool(self.access_flags & AccessFlags.INTERFACE)

    @property
    def source_file(self) -> Optional[str]:
        attr = self.get_attribute("SourceFile")
        return attr.body.source_file if attr is not None else None

    @property
    def signature(self) -> Optional[str]:
        attr = self.get_attribute("Signature")
        return attr.body.signature if attr is not None else None

    def get_attribute(self, name: str) -> Optional["AttributeInfo"]:
        """Return the first class-level attribute with the given name."""
        return _find_attribute(self.attributes, name)

    def get_attributes(self, name: str) -> tuple["AttributeInfo", ...]:
        return tuple(attr for attr in self.attributes if attr.name == name)

    def find_method(self, name: str, descriptor: Optional[str] = None) -> Optional[MethodInfo]:
        for method in self.methods:
            if method.name == name and (descriptor is None or method.descriptor == descriptor):
                return method
        return None

    def find_field(self, name: str) -> Optional[FieldInfo]:
        for fld in self.fields:
            if fld.name == name:
                return fld
        return None
