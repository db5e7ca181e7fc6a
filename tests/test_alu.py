"""Tests for the ALU."""

import pytest
from cpu16.alu import AluOp, AluResult, Condition, Flags, evaluate


ALL_FLAGS = [Flags(zero=z, carry=c) for z in (False, True) for c in (False, True)]

CONDITIONAL_OPS = [op for op in AluOp if op.is_arithmetic and op.condition != Condition.ALWAYS]

UNMET_CONDITIONS = [
    (op, flags)
    for op in CONDITIONAL_OPS
    for flags in ALL_FLAGS
    if not flags.satisfies(op.condition)
]

SWEEP_VALUES = [0, 1, 2, 3, 0x00FF, 0x0100, 0x1234, 0x7FFF, 0x8000, 0x8001, 0xBABA, 0xFFFE, 0xFFFF]
SWEEP_PAIRS = [(a, b) for a in SWEEP_VALUES for b in SWEEP_VALUES]


class TestArithmetic:
    """ADD, SUB, ADC, SBC, INC, DEC."""

    @pytest.mark.parametrize("op, a, b, flags, result, carry", [
        (AluOp.ADD, 5, 3, Flags(), 8, False),
        (AluOp.ADD, 0xFFFF, 1, Flags(), 0, True),
        (AluOp.SUB, 5, 3, Flags(), 2, True),
        (AluOp.SUB, 3, 5, Flags(), 0xFFFE, False),
        (AluOp.SUB, 4, 4, Flags(), 0, True),
        (AluOp.ADC, 5, 3, Flags(carry=True), 9, False),
        (AluOp.ADC, 5, 3, Flags(carry=False), 8, False),
        (AluOp.SBC, 5, 3, Flags(carry=True), 2, True),
        (AluOp.SBC, 5, 3, Flags(carry=False), 1, True),
        (AluOp.INC, 5, 0x1234, Flags(), 6, False),
        (AluOp.INC, 0xFFFF, 0, Flags(), 0, True),
        (AluOp.DEC, 5, 0x1234, Flags(), 4, True),
        (AluOp.DEC, 0, 0, Flags(), 0xFFFF, False),
    ])
    def test_result_and_carry(self, op, a, b, flags, result, carry):
        """Arithmetic ops produce a 16-bit result and carry-out."""
        out = evaluate(op, a, b, flags)
        assert out.result == result
        assert out.carry == carry
        assert out.condition_met

    def test_sub_carry_means_no_borrow(self):
        """Carry after SUB is set exactly when a >= b."""
        assert evaluate(AluOp.SUB, 7, 7).carry
        assert evaluate(AluOp.SUB, 8, 7).carry
        assert not evaluate(AluOp.SUB, 6, 7).carry

    def test_add_sweep(self):
        """ADD is the low 16 bits of a + b with carry on overflow."""
        for a, b in SWEEP_PAIRS:
            out = evaluate(AluOp.ADD, a, b)
            assert out.result == (a + b) & 0xFFFF
            assert out.carry == (a + b > 0xFFFF)

    def test_sub_sweep(self):
        """SUB is the low 16 bits of a - b with carry when a >= b."""
        for a, b in SWEEP_PAIRS:
            out = evaluate(AluOp.SUB, a, b)
            assert out.result == (a - b) & 0xFFFF
            assert out.carry == (a >= b)

    def test_packed_view(self):
        """Packed view puts carry in bit 16."""
        assert evaluate(AluOp.SUB, 5, 3).packed == 0b1_0000_0000_0000_0010
        assert evaluate(AluOp.DEC, 5, 0).packed == 0x10004
        assert evaluate(AluOp.ADD, 5, 3).packed == 8

    def test_operands_are_masked(self):
        """Operands wider than 16 bits are truncated."""
        assert evaluate(AluOp.ADD, 0x10005, 0x20003).result == 8


class TestLogic:
    """AND, NAND, OR, XOR, SHL, SHR."""

    @pytest.mark.parametrize("op, a, b, result", [
        (AluOp.AND, 5, 3, 1),
        (AluOp.NAND, 5, 3, 0xFFFE),
        (AluOp.OR, 5, 3, 7),
        (AluOp.XOR, 5, 3, 6),
        (AluOp.SHL, 5, 3, 40),
        (AluOp.SHR, 5, 3, 0),
        (AluOp.SHR, 0x8000, 15, 1),
        (AluOp.SHL, 0x8001, 1, 2),
    ])
    def test_result(self, op, a, b, result):
        """Logic and shift results."""
        assert evaluate(op, a, b).result == result

    @pytest.mark.parametrize("op", [AluOp.AND, AluOp.NAND, AluOp.OR, AluOp.XOR, AluOp.SHL, AluOp.SHR])
    def test_carry_is_cleared(self, op):
        """Logic and shift ops never produce a carry, whatever the flags."""
        assert evaluate(op, 0xFFFF, 1, Flags(carry=True)).carry is False

    def test_shift_amount_modulo_16(self):
        """Shift amount uses the low four bits of b."""
        assert evaluate(AluOp.SHL, 1, 16).result == 1
        assert evaluate(AluOp.SHL, 1, 17).result == 2
        assert evaluate(AluOp.SHR, 0x8000, 0x1F).result == 1


class TestConditional:
    """Flag-gated variants of the arithmetic ops."""

    @pytest.mark.parametrize("op, flags", UNMET_CONDITIONS)
    def test_every_unmet_condition_passes_through(self, op, flags):
        """Each conditional op with a false condition returns a and the incoming carry."""
        out = evaluate(op, 0x1234, 0x0F0F, flags)
        assert out.result == 0x1234
        assert out.carry == flags.carry
        assert not out.condition_met

    @pytest.mark.parametrize("op", CONDITIONAL_OPS)
    def test_met_condition_matches_base(self, op):
        """With its condition true a conditional op behaves like its base op."""
        flags = next(
            Flags(zero=z, carry=c)
            for z in (False, True) for c in (False, True)
            if Flags(zero=z, carry=c).satisfies(op.condition)
        )
        for a, b in SWEEP_PAIRS:
            assert evaluate(op, a, b, flags) == evaluate(op.base, a, b, flags)

    def test_condition_met(self):
        """A met condition computes the base op."""
        out = evaluate(AluOp.ADD_IF_ZERO, 5, 3, Flags(zero=True))
        assert out.result == 8
        assert out.condition_met

    def test_condition_not_met_passes_a_through(self):
        """An unmet condition passes a and the incoming carry through."""
        out = evaluate(AluOp.SUB_IF_NOT_CARRY, 5, 3, Flags(carry=True))
        assert out == AluResult(5, True, condition_met=False)

    @pytest.mark.parametrize("cond, flags, expected", [
        (Condition.ALWAYS, Flags(), True),
        (Condition.IF_ZERO, Flags(zero=True), True),
        (Condition.IF_ZERO, Flags(zero=False), False),
        (Condition.IF_NOT_ZERO, Flags(zero=False), True),
        (Condition.IF_NOT_ZERO, Flags(zero=True), False),
        (Condition.IF_CARRY, Flags(carry=True), True),
        (Condition.IF_CARRY, Flags(carry=False), False),
        (Condition.IF_NOT_CARRY, Flags(carry=True), False),
    ])
    def test_flags_satisfy(self, cond, flags, expected):
        """Flags.satisfies covers every condition."""
        assert flags.satisfies(cond) is expected

    def test_conditional_opcode_layout(self):
        """Condition sits above the two base-op bits."""
        assert AluOp.conditional(AluOp.ADD, Condition.IF_NOT_ZERO) == AluOp.ADD_IF_NOT_ZERO
        assert AluOp.conditional(AluOp.SBC, Condition.IF_NOT_CARRY) == AluOp.SBC_IF_NOT_CARRY
        assert AluOp.SUB_IF_CARRY.base == AluOp.SUB
        assert AluOp.SUB_IF_CARRY.condition == Condition.IF_CARRY

    def test_conditional_rejects_logic_ops(self):
        """Only ADD, SUB, ADC and SBC have conditional variants."""
        with pytest.raises(ValueError):
            AluOp.conditional(AluOp.AND, Condition.IF_ZERO)

    @pytest.mark.parametrize("op, mnemonic", [
        (AluOp.ADD, "add"),
        (AluOp.ADD_IF_NOT_ZERO, "addnz"),
        (AluOp.SBC_IF_CARRY, "sbcc"),
        (AluOp.SUB_IF_NOT_CARRY, "subnc"),
        (AluOp.AND, "and"),
        (AluOp.DEC, "dec"),
    ])
    def test_mnemonic(self, op, mnemonic):
        """Mnemonics append the condition suffix."""
        assert op.mnemonic == mnemonic

    def test_valid_follows_enable(self):
        """valid mirrors the enable input."""
        assert evaluate(AluOp.ADD, 1, 1).valid
        assert not evaluate(AluOp.ADD, 1, 1, enable=False).valid
