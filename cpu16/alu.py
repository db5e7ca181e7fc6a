"""Arithmetic/logic unit.

A pure function of ``(op, a, b, flags)``. Conditional variants of the
arithmetic ops pass ``a`` through unchanged when their flag condition does
not hold; ``AluResult.condition_met`` tells the control unit whether to
commit the result.
"""

from dataclasses import dataclass
from enum import IntEnum

WORD_MASK = 0xFFFF


class Condition(IntEnum):
    """Flag condition selected by bits 4:2 of a conditional opcode."""
    ALWAYS = 0
    IF_ZERO = 1
    IF_NOT_ZERO = 2
    IF_CARRY = 3
    IF_NOT_CARRY = 4


CONDITION_SUFFIXES = {
    Condition.ALWAYS: "",
    Condition.IF_ZERO: "z",
    Condition.IF_NOT_ZERO: "nz",
    Condition.IF_CARRY: "c",
    Condition.IF_NOT_CARRY: "nc",
}


class AluOp(IntEnum):
    ADD = 0
    SUB = 1
    ADC = 2
    SBC = 3
    ADD_IF_ZERO = 4
    SUB_IF_ZERO = 5
    ADC_IF_ZERO = 6
    SBC_IF_ZERO = 7
    ADD_IF_NOT_ZERO = 8
    SUB_IF_NOT_ZERO = 9
    ADC_IF_NOT_ZERO = 10
    SBC_IF_NOT_ZERO = 11
    ADD_IF_CARRY = 12
    SUB_IF_CARRY = 13
    ADC_IF_CARRY = 14
    SBC_IF_CARRY = 15
    ADD_IF_NOT_CARRY = 16
    SUB_IF_NOT_CARRY = 17
    ADC_IF_NOT_CARRY = 18
    SBC_IF_NOT_CARRY = 19
    AND = 20
    NAND = 21
    OR = 22
    XOR = 23
    SHL = 24
    SHR = 25
    INC = 26
    DEC = 27

    @property
    def is_arithmetic(self) -> bool:
        return self <= AluOp.SBC_IF_NOT_CARRY

    @property
    def condition(self) -> Condition:
        if self.is_arithmetic:
            return Condition(self >> 2)
        return Condition.ALWAYS

    @property
    def base(self) -> "AluOp":
        """Unconditional op this variant gates (ADD, SUB, ADC or SBC)."""
        if self.is_arithmetic:
            return AluOp(self & 0b11)
        return self

    @property
    def mnemonic(self) -> str:
        if self.is_arithmetic:
            return self.base.name.lower() + CONDITION_SUFFIXES[self.condition]
        return self.name.lower()

    @classmethod
    def conditional(cls, base: "AluOp", condition: Condition) -> "AluOp":
        """Return the variant of ``base`` gated by ``condition``."""
        if base not in (cls.ADD, cls.SUB, cls.ADC, cls.SBC):
            raise ValueError(f"{base.name} has no conditional variants")
        return cls((Condition(condition) << 2) | base)


@dataclass(frozen=True)
class Flags:
    """Latched status flags."""
    zero: bool = False
    carry: bool = False

    def satisfies(self, condition: Condition) -> bool:
        if condition == Condition.IF_ZERO:
            return self.zero
        if condition == Condition.IF_NOT_ZERO:
            return not self.zero
        if condition == Condition.IF_CARRY:
            return self.carry
        if condition == Condition.IF_NOT_CARRY:
            return not self.carry
        return True


@dataclass(frozen=True)
class AluResult:
    """ALU output: 16-bit result and carry-out, kept as separate fields."""
    result: int
    carry: bool
    condition_met: bool = True
    valid: bool = True

    @property
    def packed(self) -> int:
        """17-bit ``{carry, result}`` view used by traces."""
        return (int(self.carry) << 16) | self.result

    @property
    def zero(self) -> bool:
        return self.result == 0


def _add(a: int, b: int, carry_in: int) -> tuple[int, bool]:
    total = a + b + carry_in
    return total & WORD_MASK, total > WORD_MASK


def evaluate(op: AluOp, a: int, b: int, flags: Flags = Flags(), enable: bool = True) -> AluResult:
    """Compute ``op`` over 16-bit operands ``a`` and ``b``.

    Subtraction is ``a + ~b + carry_in`` so the carry-out means "no borrow".
    INC and DEC ignore ``b``. Shift amounts are taken modulo 16 and shifts
    and logic ops always produce carry 0.
    """
    op = AluOp(op)
    a &= WORD_MASK
    b &= WORD_MASK

    if op.is_arithmetic:
        if not flags.satisfies(op.condition):
            return AluResult(a, flags.carry, condition_met=False, valid=enable)
        base = op.base
        if base == AluOp.ADD:
            result, carry = _add(a, b, 0)
        elif base == AluOp.ADC:
            result, carry = _add(a, b, int(flags.carry))
        elif base == AluOp.SUB:
            result, carry = _add(a, ~b & WORD_MASK, 1)
        else:
            result, carry = _add(a, ~b & WORD_MASK, int(flags.carry))
        return AluResult(result, carry, valid=enable)

    if op == AluOp.INC:
        result, carry = _add(a, 1, 0)
    elif op == AluOp.DEC:
        result, carry = _add(a, WORD_MASK, 0)
    elif op == AluOp.AND:
        result, carry = a & b, False
    elif op == AluOp.NAND:
        result, carry = ~(a & b) & WORD_MASK, False
    elif op == AluOp.OR:
        result, carry = a | b, False
    elif op == AluOp.XOR:
        result, carry = a ^ b, False
    elif op == AluOp.SHL:
        result, carry = (a << (b & 0xF)) & WORD_MASK, False
    else:
        result, carry = a >> (b & 0xF), False
    return AluResult(result, carry, valid=enable)
