"""Builder-style assembler.

Every method appends one or more instruction words and returns the
assembler, so programs read as chains::

    words = (
        Assembler()
        .set(Reg.R1, 10)
        .label("loop")
        .dec(Reg.R1)
        .jmpnz("loop")
        .halt()
        .assemble()
    )

The machine has no jump instruction. Jumps are PC-relative additions to
``pc``: ``set tmp |offset|`` followed by a conditional ``add``/``sub`` on
``pc``. Reading ``pc`` yields the address of the instruction doing the read,
so the offset is taken from the address right after the ``set``.
"""

import logging
from typing import Optional

from .alu import AluOp, Condition
from .errors import DuplicateLabel, EncodingError, JumpOutOfRange, OperandRangeError, UnresolvedLabel
from .isa import (
    OFFSET_MAX,
    SET_VALUE_MAX,
    AluInstruction,
    Control,
    ControlOp,
    Instruction,
    MemoryAccess,
    SetImmediate,
    encode,
)
from .register_file import Reg

logger = logging.getLogger(__name__)

STACK_TOP = 0x7F00
JUMP_RANGE = SET_VALUE_MAX

# Instructions emitted by ``call`` after the return-address computation.
_CALL_TAIL = 4


class Assembler:
    def __init__(self):
        self.output: list[int] = []
        self.labels: dict[str, int] = {}
        self._fixups: list[tuple[str, int]] = []

    def __len__(self) -> int:
        return len(self.output)

    @property
    def address(self) -> int:
        """Address the next emitted instruction will occupy."""
        return len(self.output)

    def emit(self, instruction: Instruction) -> "Assembler":
        try:
            self.output.append(encode(instruction))
        except EncodingError as e:
            raise OperandRangeError(e.message, addr=self.address) from e
        return self

    def word(self, value: int) -> "Assembler":
        """Raw data word."""
        if not 0 <= value <= 0xFFFF:
            raise OperandRangeError(f"word: {value} is not a 16-bit value", addr=self.address)
        self.output.append(value)
        return self

    def label(self, name: str) -> "Assembler":
        if name in self.labels:
            raise DuplicateLabel(f"label {name} already defined", addr=self.address)
        self.labels[name] = self.address
        return self

    def assemble(self) -> list[int]:
        out = self.output.copy()
        for name, set_addr in self._fixups:
            if name not in self.labels:
                raise UnresolvedLabel(f"unresolved label: {name}", addr=set_addr)
            offset = self._relative_offset(self.labels[name], set_addr)
            if not 0 <= offset <= JUMP_RANGE:
                raise JumpOutOfRange(
                    f"jump to {name} is too far away (max {JUMP_RANGE} instructions)",
                    addr=set_addr,
                )
            out[set_addr] = encode(SetImmediate(Reg.TMP, offset))
        logger.debug("Assembled %d words, %d labels", len(out), len(self.labels))
        return out

    # -- primitives ---------------------------------------------------------

    def ctrl(self, op: ControlOp) -> "Assembler":
        return self.emit(Control(op))

    def halt(self) -> "Assembler":
        return self.ctrl(ControlOp.HALT)

    def setz(self) -> "Assembler":
        return self.ctrl(ControlOp.SETZ)

    def clrz(self) -> "Assembler":
        return self.ctrl(ControlOp.CLRZ)

    def setc(self) -> "Assembler":
        return self.ctrl(ControlOp.SETC)

    def clrc(self) -> "Assembler":
        return self.ctrl(ControlOp.CLRC)

    def nop(self) -> "Assembler":
        return self.set(Reg.Z, 0)

    def set(self, dst: Reg, value: int) -> "Assembler":
        if not 0 <= value <= SET_VALUE_MAX:
            raise OperandRangeError(
                f"set: {value} does not fit in 11 bits, use setw instead",
                addr=self.address,
            )
        return self.emit(SetImmediate(dst, value))

    def alu(self, dst: Reg, src1: Reg, src2: Reg, op: AluOp) -> "Assembler":
        return self.emit(AluInstruction(dst, src1, src2, op))

    def load(self, dst: Reg, addr: Reg, offset: int = 0) -> "Assembler":
        if not 0 <= offset <= OFFSET_MAX:
            raise OperandRangeError(f"load: offset {offset} out of range (max {OFFSET_MAX})", addr=self.address)
        return self.emit(MemoryAccess(reg=dst, base=addr, offset=offset, load=True))

    def store(self, src: Reg, addr: Reg, offset: int = 0) -> "Assembler":
        if not 0 <= offset <= OFFSET_MAX:
            raise OperandRangeError(f"store: offset {offset} out of range (max {OFFSET_MAX})", addr=self.address)
        return self.emit(MemoryAccess(reg=src, base=addr, offset=offset, load=False))

    # -- alu ----------------------------------------------------------------

    def add_if(self, dst: Reg, src1: Reg, src2: Reg, cond: Condition) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.conditional(AluOp.ADD, cond))

    def sub_if(self, dst: Reg, src1: Reg, src2: Reg, cond: Condition) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.conditional(AluOp.SUB, cond))

    def adc_if(self, dst: Reg, src1: Reg, src2: Reg, cond: Condition) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.conditional(AluOp.ADC, cond))

    def sbc_if(self, dst: Reg, src1: Reg, src2: Reg, cond: Condition) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.conditional(AluOp.SBC, cond))

    def add(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.add_if(dst, src1, src2, Condition.ALWAYS)

    def sub(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.sub_if(dst, src1, src2, Condition.ALWAYS)

    def adc(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.adc_if(dst, src1, src2, Condition.ALWAYS)

    def sbc(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.sbc_if(dst, src1, src2, Condition.ALWAYS)

    def and_(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.AND)

    def nand(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.NAND)

    def or_(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.OR)

    def xor(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.XOR)

    def shl(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.SHL)

    def shr(self, dst: Reg, src1: Reg, src2: Reg) -> "Assembler":
        return self.alu(dst, src1, src2, AluOp.SHR)

    def inc(self, dst: Reg, src: Optional[Reg] = None) -> "Assembler":
        return self.alu(dst, dst if src is None else src, Reg.Z, AluOp.INC)

    def dec(self, dst: Reg, src: Optional[Reg] = None) -> "Assembler":
        return self.alu(dst, dst if src is None else src, Reg.Z, AluOp.DEC)

    # -- pseudo instructions ------------------------------------------------

    def setw(self, dst: Reg, word: int, tmp: Reg = Reg.TMP) -> "Assembler":
        """Load any 16-bit constant, clobbering ``tmp`` when it needs two halves."""
        if not 0 <= word <= 0xFFFF:
            raise OperandRangeError(f"setw: {word} is not a 16-bit value", addr=self.address)
        if word <= SET_VALUE_MAX:
            return self.set(dst, word)
        if dst == tmp:
            raise OperandRangeError("setw: dst == tmp", addr=self.address)

        high, low = word >> 8, word & 0xFF
        self.set(dst, high).set(tmp, 8).shl(dst, dst, tmp)
        if low:
            self.set(tmp, low).or_(dst, dst, tmp)
        return self

    def mov_if(self, dst: Reg, src: Reg, cond: Condition) -> "Assembler":
        return self.add_if(dst, src, Reg.Z, cond)

    def mov(self, dst: Reg, src: Reg) -> "Assembler":
        return self.mov_if(dst, src, Condition.ALWAYS)

    def update_flags(self, src: Reg) -> "Assembler":
        """Set zero from ``src`` and clear carry."""
        return self.add(Reg.Z, Reg.Z, src)

    def cmp(self, src1: Reg, src2: Reg) -> "Assembler":
        """zero: src1 == src2, carry: src1 >= src2 (unsigned)."""
        return self.sub(Reg.Z, src1, src2)

    def not_(self, dst: Reg, src: Reg) -> "Assembler":
        return self.nand(dst, src, src)

    def init_sp(self) -> "Assembler":
        return self.setw(Reg.SP, STACK_TOP, Reg.TMP)

    def muli(self, dst: Reg, src: Reg, n: int, tmp: Reg = Reg.TMP) -> "Assembler":
        """dst = src * n by shift-and-add."""
        if not 0 <= n <= 0xFFFF:
            raise OperandRangeError(f"muli: {n} is not a 16-bit value", addr=self.address)
        if dst == src:
            raise OperandRangeError("muli: dst == src", addr=self.address)
        if tmp in (dst, src):
            raise OperandRangeError(f"muli: {tmp} is the scratch register", addr=self.address)
        if n == 0:
            return self.mov(dst, Reg.Z)
        if n & (n - 1) == 0:
            return self.set(tmp, n.bit_length() - 1).shl(dst, src, tmp)

        self.set(dst, 0)
        for bit in range(15, -1, -1):
            if (n >> bit) & 1:
                if bit == 0:
                    self.add(dst, dst, src)
                else:
                    self.set(tmp, bit).shl(tmp, src, tmp).add(dst, dst, tmp)
        return self

    def add32(self, hi1: Reg, lo1: Reg, hi2: Reg, lo2: Reg) -> "Assembler":
        return self.add(lo1, lo1, lo2).adc(hi1, hi1, hi2)

    def sub32(self, hi1: Reg, lo1: Reg, hi2: Reg, lo2: Reg) -> "Assembler":
        return self.sub(lo1, lo1, lo2).sbc(hi1, hi1, hi2)

    def inline_div(self, dst: Reg, a: Reg, b: Reg, label: str) -> "Assembler":
        """dst = a // b, a = a % b. Clobbers tmp."""
        if Reg.TMP in (dst, a, b):
            raise OperandRangeError("inline_div: tmp is clobbered by the jumps", addr=self.address)
        if dst in (a, b):
            raise OperandRangeError("inline_div: dst must differ from a and b", addr=self.address)
        loop_label = f"__{label}_loop"
        end_label = f"__{label}_end"
        return (
            self.set(dst, 0)
            .label(loop_label)
            .cmp(a, b)
            .jmp_if_neg(end_label)
            .sub(a, a, b)
            .inc(dst)
            .jmp(loop_label)
            .label(end_label)
        )

    def push(self, src: Reg) -> "Assembler":
        return self.store(src, Reg.SP, 0).inc(Reg.SP)

    def pop(self, dst: Reg) -> "Assembler":
        return self.dec(Reg.SP).load(dst, Reg.SP, 0)

    def ret(self) -> "Assembler":
        return self.pop(Reg.PC)

    def call(self, procedure_label: str) -> "Assembler":
        # The return address is the pc of the add plus the length of what follows it.
        return (
            self.set(Reg.TMP, _CALL_TAIL + 1)
            .add(Reg.TMP, Reg.TMP, Reg.PC)
            .push(Reg.TMP)
            .jmp(procedure_label)
        )

    # -- jumps --------------------------------------------------------------

    @staticmethod
    def _relative_offset(label_addr: int, set_addr: int) -> int:
        return label_addr - set_addr - 1

    def jmp_if(self, label: str, cond: Condition) -> "Assembler":
        set_addr = self.address
        if label in self.labels:
            offset = self._relative_offset(self.labels[label], set_addr)
        else:
            self._fixups.append((label, set_addr))
            offset = 0

        if abs(offset) > JUMP_RANGE:
            raise JumpOutOfRange(
                f"jump to {label} is too far away (max {JUMP_RANGE} instructions)",
                addr=set_addr,
            )
        self.set(Reg.TMP, abs(offset))
        if offset < 0:
            return self.sub_if(Reg.PC, Reg.PC, Reg.TMP, cond)
        return self.add_if(Reg.PC, Reg.PC, Reg.TMP, cond)

    def jmp(self, label: str) -> "Assembler":
        return self.jmp_if(label, Condition.ALWAYS)

    def jmpz(self, label: str) -> "Assembler":
        return self.jmp_if(label, Condition.IF_ZERO)

    def jmpnz(self, label: str) -> "Assembler":
        return self.jmp_if(label, Condition.IF_NOT_ZERO)

    def jmpc(self, label: str) -> "Assembler":
        return self.jmp_if(label, Condition.IF_CARRY)

    def jmpnc(self, label: str) -> "Assembler":
        return self.jmp_if(label, Condition.IF_NOT_CARRY)

    # Aliases reading naturally after ``cmp``.

    def jmp_if_pos(self, label: str) -> "Assembler":
        return self.jmpc(label)

    def jmp_if_neg(self, label: str) -> "Assembler":
        return self.jmpnc(label)

    def jump_if_eq(self, label: str) -> "Assembler":
        return self.jmpz(label)

    def jump_if_ne(self, label: str) -> "Assembler":
        return self.jmpnz(label)
