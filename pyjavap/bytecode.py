"""
Bytecode disassembler: decodes a method's code array into instructions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, NamedTuple, Optional

from .classfile import Opcode
from .cursor import ByteCursor
from .errors import MalformedData, UnknownOpcode


class OperandLayout(Enum):
    """How the bytes after an opcode are laid out."""
    NONE = "none"
    BYTE = "s1"                  # bipush
    SHORT = "s2"                 # sipush
    LOCAL = "local"              # u1 slot, u2 under wide
    CONSTANT_U1 = "cp1"          # ldc
    CONSTANT_U2 = "cp2"
    BRANCH_S2 = "branch2"
    BRANCH_S4 = "branch4"
    IINC = "iinc"                # slot, signed constant (u1/s1, u2/s2 under wide)
    INVOKEINTERFACE = "invokeinterface"  # u2 index, u1 count, u1 zero
    INVOKEDYNAMIC = "invokedynamic"      # u2 index, u2 zero
    NEWARRAY = "newarray"        # u1 array type code
    MULTIANEWARRAY = "multianewarray"    # u2 index, u1 dimensions
    TABLESWITCH = "tableswitch"
    LOOKUPSWITCH = "lookupswitch"
    WIDE = "wide"


CONSTANT_LAYOUTS = frozenset({
    OperandLayout.CONSTANT_U1,
    OperandLayout.CONSTANT_U2,
    OperandLayout.INVOKEINTERFACE,
    OperandLayout.INVOKEDYNAMIC,
    OperandLayout.MULTIANEWARRAY,
})


class OpcodeInfo(NamedTuple):
    opcode: int
    mnemonic: str
    layout: OperandLayout


def _layouts() -> dict[int, OperandLayout]:
    layouts = {
        Opcode.BIPUSH: OperandLayout.BYTE,
        Opcode.SIPUSH: OperandLayout.SHORT,
        Opcode.LDC: OperandLayout.CONSTANT_U1,
        Opcode.IINC: OperandLayout.IINC,
        Opcode.GOTO_W: OperandLayout.BRANCH_S4,
        Opcode.JSR_W: OperandLayout.BRANCH_S4,
        Opcode.TABLESWITCH: OperandLayout.TABLESWITCH,
        Opcode.LOOKUPSWITCH: OperandLayout.LOOKUPSWITCH,
        Opcode.INVOKEINTERFACE: OperandLayout.INVOKEINTERFACE,
        Opcode.INVOKEDYNAMIC: OperandLayout.INVOKEDYNAMIC,
        Opcode.NEWARRAY: OperandLayout.NEWARRAY,
        Opcode.MULTIANEWARRAY: OperandLayout.MULTIANEWARRAY,
        Opcode.WIDE: OperandLayout.WIDE,
    }
    for op in (Opcode.LDC_W, Opcode.LDC2_W, Opcode.GETSTATIC, Opcode.PUTSTATIC,
               Opcode.GETFIELD, Opcode.PUTFIELD, Opcode.INVOKEVIRTUAL,
               Opcode.INVOKESPECIAL, Opcode.INVOKESTATIC, Opcode.NEW,
               Opcode.ANEWARRAY, Opcode.CHECKCAST, Opcode.INSTANCEOF):
        layouts[op] = OperandLayout.CONSTANT_U2
    for op in range(Opcode.ILOAD, Opcode.ALOAD + 1):
        layouts[op] = OperandLayout.LOCAL
    for op in range(Opcode.ISTORE, Opcode.ASTORE + 1):
        layouts[op] = OperandLayout.LOCAL
    layouts[Opcode.RET] = OperandLayout.LOCAL
    for op in range(Opcode.IFEQ, Opcode.JSR + 1):
        layouts[op] = OperandLayout.BRANCH_S2
    layouts[Opcode.IFNULL] = OperandLayout.BRANCH_S2
    layouts[Opcode.IFNONNULL] = OperandLayout.BRANCH_S2
    return layouts


def _build_table() -> tuple[Optional[OpcodeInfo], ...]:
    layouts = _layouts()
    table: list[Optional[OpcodeInfo]] = [None] * 256
    for op in Opcode:
        table[op] = OpcodeInfo(int(op), op.name.lower(), layouts.get(op, OperandLayout.NONE))
    return tuple(table)


# opcode byte -> OpcodeInfo, None for bytes that are not opcodes
OPCODES = _build_table()

# Array type codes of newarray
NEWARRAY_TYPES = {
    4: "boolean", 5: "char", 6: "float", 7: "double",
    8: "byte", 9: "short", 10: "int", 11: "long",
}


@dataclass(frozen=True)
class TableSwitch:
    default: int
    low: int
    high: int
    offsets: tuple[int, ...]

    def cases(self) -> list[tuple[int, int]]:
        """(match value, relative offset) pairs."""
        return [(self.low + i, offset) for i, offset in enumerate(self.offsets)]


@dataclass(frozen=True)
class LookupSwitch:
    default: int
    pairs: tuple[tuple[int, int], ...]

    def cases(self) -> list[tuple[int, int]]:
        return list(self.pairs)


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction.

    For a ``wide``-prefixed instruction, ``opcode`` and ``mnemonic`` name the
    modified instruction, ``wide`` is set and ``length`` includes the prefix.
    """
    offset: int
    opcode: int
    mnemonic: str
    operands: tuple = ()
    length: int = 1
    wide: bool = False

    @property
    def layout(self) -> OperandLayout:
        return OPCODES[self.opcode].layout

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def constant_index(self) -> Optional[int]:
        """Constant pool index operand, if this instruction has one."""
        if self.layout in CONSTANT_LAYOUTS:
            return self.operands[0]
        return None

    @property
    def branch_targets(self) -> tuple[int, ...]:
        """Absolute code offsets this instruction may jump to."""
        layout = self.layout
        if layout in (OperandLayout.BRANCH_S2, OperandLayout.BRANCH_S4):
            return (self.offset + self.operands[0],)
        if layout in (OperandLayout.TABLESWITCH, OperandLayout.LOOKUPSWITCH):
            switch = self.operands[0]
            targets = [self.offset + switch.default]
            targets.extend(self.offset + rel for _, rel in switch.cases())
            return tuple(targets)
        return ()


def _read_operands(cursor: ByteCursor, layout: OperandLayout, pc: int, wide: bool) -> tuple:
    if layout is OperandLayout.NONE:
        return ()

    elif layout is OperandLayout.BYTE:
        return (cursor.read_i1(),)

    elif layout is OperandLayout.SHORT:
        return (cursor.read_i2(),)

    elif layout is OperandLayout.LOCAL:
        return (cursor.read_u2() if wide else cursor.read_u1(),)

    elif layout is OperandLayout.IINC:
        if wide:
            return (cursor.read_u2(), cursor.read_i2())
        return (cursor.read_u1(), cursor.read_i1())

    elif layout is OperandLayout.CONSTANT_U1:
        return (cursor.read_u1(),)

    elif layout is OperandLayout.CONSTANT_U2:
        return (cursor.read_u2(),)

    elif layout is OperandLayout.BRANCH_S2:
        return (cursor.read_i2(),)

    elif layout is OperandLayout.BRANCH_S4:
        return (cursor.read_i4(),)

    elif layout is OperandLayout.INVOKEINTERFACE:
        index = cursor.read_u2()
        count = cursor.read_u1()
        cursor.skip(1)  # reserved, always zero
        return (index, count)

    elif layout is OperandLayout.INVOKEDYNAMIC:
        index = cursor.read_u2()
        cursor.skip(2)  # reserved, always zero
        return (index,)

    elif layout is OperandLayout.NEWARRAY:
        return (cursor.read_u1(),)

    elif layout is OperandLayout.MULTIANEWARRAY:
        return (cursor.read_u2(), cursor.read_u1())

    elif layout is OperandLayout.TABLESWITCH:
        # Padding to 4-byte alignment, relative to the start of the code array
        cursor.skip((4 - (pc + 1) % 4) % 4)
        default = cursor.read_i4()
        low = cursor.read_i4()
        high = cursor.read_i4()
        if high < low:
            raise MalformedData(f"tableswitch at {pc} has high {high} < low {low}", cursor.offset)
        offsets = tuple(cursor.read_i4() for _ in range(high - low + 1))
        return (TableSwitch(default, low, high, offsets),)

    elif layout is OperandLayout.LOOKUPSWITCH:
        cursor.skip((4 - (pc + 1) % 4) % 4)
        default = cursor.read_i4()
        npairs = cursor.read_i4()
        if npairs < 0:
            raise MalformedData(f"lookupswitch at {pc} has negative npairs {npairs}", cursor.offset)
        pairs = tuple((cursor.read_i4(), cursor.read_i4()) for _ in range(npairs))
        return (LookupSwitch(default, pairs),)

    raise MalformedData(f"Unexpected operand layout {layout.name} at {pc}", cursor.offset)


def read_instruction(cursor: ByteCursor) -> Instruction:
    """Decode the instruction at the cursor's position within the code array."""
    pc = cursor.position
    opcode = cursor.read_u1()
    info = OPCODES[opcode]
    if info is None:
        raise UnknownOpcode(opcode, pc, cursor.base + pc)

    wide = False
    if info.layout is OperandLayout.WIDE:
        opcode = cursor.read_u1()
        info = OPCODES[opcode]
        if info is None:
            raise UnknownOpcode(opcode, pc + 1, cursor.base + pc + 1)
        if info.layout not in (OperandLayout.LOCAL, OperandLayout.IINC):
            raise MalformedData(
                f"wide cannot modify {info.mnemonic} at {pc}", cursor.base + pc + 1
            )
        wide = True

    operands = _read_operands(cursor, info.layout, pc, wide)
    return Instruction(
        offset=pc,
        opcode=opcode,
        mnemonic=info.mnemonic,
        operands=operands,
        length=cursor.position - pc,
        wide=wide,
    )


def iter_instructions(code: bytes, base: int = 0) -> Iterator[Instruction]:
    """Lazily decode a code array; each call starts again from offset 0.

    ``base`` is the file offset of the code array, used in error offsets.
    """
    cursor = ByteCursor(code, base)
    while not cursor.at_end:
        yield read_instruction(cursor)


def disassemble(code: bytes, base: int = 0) -> tuple[Instruction, ...]:
    return tuple(iter_instructions(code, base))
