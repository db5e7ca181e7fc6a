"""Instruction encoding.

Bits 15:14 of every word select the instruction class::

    00  control   [00 <ignored:11> <op:3>]
    01  set       [01 <dst:3> <value:11>]
    10  memory    [10 <reg:3> <base:3> <load:1> <offset:7>]
    11  alu       [11 <dst:3> <src1:3> <src2:3> <op:5>]

Control ops 5-7 and ALU ops 28-31 are unassigned and decode to ``Nop``, so
every 16-bit word maps to exactly one instruction.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Union

from .alu import AluOp
from .errors import EncodingError
from .register_file import Reg

CLASS_CONTROL = 0b00
CLASS_SET = 0b01
CLASS_MEMORY = 0b10
CLASS_ALU = 0b11

SET_VALUE_MAX = 0x7FF
OFFSET_MAX = 0x7F

NOP_WORD = 0x0005


class ControlOp(IntEnum):
    HALT = 0
    SETZ = 1
    CLRZ = 2
    SETC = 3
    CLRC = 4


@dataclass(frozen=True)
class Control:
    op: ControlOp

    def __str__(self) -> str:
        return self.op.name.lower()


@dataclass(frozen=True)
class Nop:
    def __str__(self) -> str:
        return "nop"


@dataclass(frozen=True)
class SetImmediate:
    dst: Reg
    value: int

    def __str__(self) -> str:
        return f"set {self.dst}, 0x{self.value:03x}"


@dataclass(frozen=True)
class MemoryAccess:
    reg: Reg
    base: Reg
    offset: int
    load: bool

    def __str__(self) -> str:
        kind = "load" if self.load else "store"
        return f"{kind} {self.reg}, {self.base} + 0x{self.offset:02x}"


@dataclass(frozen=True)
class AluInstruction:
    dst: Reg
    src1: Reg
    src2: Reg
    op: AluOp

    def __str__(self) -> str:
        return f"{self.op.mnemonic} {self.dst}, {self.src1}, {self.src2}"


Instruction = Union[Control, Nop, SetImmediate, MemoryAccess, AluInstruction]


def _reg(word: int, shift: int) -> Reg:
    return Reg((word >> shift) & 0b111)


def decode(word: int) -> Instruction:
    """Decode a 16-bit word. Total: never raises."""
    word &= 0xFFFF
    kind = word >> 14

    if kind == CLASS_CONTROL:
        op = word & 0b111
        if op <= ControlOp.CLRC:
            return Control(ControlOp(op))
        return Nop()

    if kind == CLASS_SET:
        return SetImmediate(dst=_reg(word, 11), value=word & SET_VALUE_MAX)

    if kind == CLASS_MEMORY:
        return MemoryAccess(
            reg=_reg(word, 11),
            base=_reg(word, 8),
            offset=word & OFFSET_MAX,
            load=bool(word & 0x80),
        )

    op = word & 0b11111
    if op > AluOp.DEC:
        return Nop()
    return AluInstruction(
        dst=_reg(word, 11),
        src1=_reg(word, 8),
        src2=_reg(word, 5),
        op=AluOp(op),
    )


def _check_field(name: str, value: int, maximum: int) -> int:
    value = int(value)
    if not 0 <= value <= maximum:
        raise EncodingError(f"{name} {value} does not fit in 0..{maximum}")
    return value


def encode(instruction: Instruction) -> int:
    """Encode an instruction, raising ``EncodingError`` on oversized fields."""
    if isinstance(instruction, Control):
        return CLASS_CONTROL << 14 | int(instruction.op)

    if isinstance(instruction, Nop):
        return NOP_WORD

    if isinstance(instruction, SetImmediate):
        return (
            CLASS_SET << 14
            | _check_field("register", instruction.dst, 7) << 11
            | _check_field("set value", instruction.value, SET_VALUE_MAX)
        )

    if isinstance(instruction, MemoryAccess):
        return (
            CLASS_MEMORY << 14
            | _check_field("register", instruction.reg, 7) << 11
            | _check_field("register", instruction.base, 7) << 8
            | int(bool(instruction.load)) << 7
            | _check_field("offset", instruction.offset, OFFSET_MAX)
        )

    if isinstance(instruction, AluInstruction):
        return (
            CLASS_ALU << 14
            | _check_field("register", instruction.dst, 7) << 11
            | _check_field("register", instruction.src1, 7) << 8
            | _check_field("register", instruction.src2, 7) << 5
            | _check_field("alu op", instruction.op, AluOp.DEC)
        )

    raise EncodingError(f"Not an instruction: {instruction!r}")


def disassemble(words: list[int], start: int = 0) -> list[str]:
    """Render ``address: text`` lines for a program image."""
    return [f"{start + i:04x}: {decode(word)}" for i, word in enumerate(words)]
