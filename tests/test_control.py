"""Tests for the control unit, clocked by hand."""

import pytest
from cpu16.alu import AluOp, Flags
from cpu16.control import (
    CoreInputs,
    CoreState,
    Port,
    PendingRead,
    Stage,
    initial_state,
    step,
)
from cpu16.isa import AluInstruction, Control, ControlOp, MemoryAccess, SetImmediate, encode
from cpu16.register_file import Reg, RegisterFile


def run_instruction(state, word, read_data=0):
    """Clock one instruction through all four stages with no wait states."""
    outputs = []
    state, out = step(state)
    outputs.append(out)
    state, out = step(state, CoreInputs(instruction_word=word))
    outputs.append(out)
    state, out = step(state)
    outputs.append(out)
    state, out = step(state, CoreInputs(read_data=read_data))
    outputs.append(out)
    return state, outputs


def with_registers(*values, flags=Flags()):
    return CoreState(registers=RegisterFile(tuple(values)), flags=flags)


class TestStages:
    """Stage sequencing."""

    def test_initial_state(self):
        """Reset state fetches from address 0."""
        state = initial_state()
        assert state.stage == Stage.FETCH
        assert state.program_counter == 0
        assert not state.halt

    def test_fetch_drives_pc(self):
        """FETCH drives the ROM address and records the pending read."""
        state = with_registers(0, 0, 0, 0, 0, 0, 0, 0x20)
        next_state, out = step(state)
        assert out.rom_address == 0x20
        assert next_state.stage == Stage.DECODE
        assert next_state.pending == PendingRead(Port.ROM, 0x20)

    def test_stage_order(self):
        """Stages run FETCH, DECODE, EXECUTE, WRITEBACK."""
        state, outputs = run_instruction(initial_state(), encode(SetImmediate(Reg.R1, 5)))
        assert [o.stage for o in outputs] == [Stage.FETCH, Stage.DECODE, Stage.EXECUTE, Stage.WRITEBACK]
        assert state.stage == Stage.FETCH

    def test_retired_on_writeback_only(self):
        """Only the WRITEBACK cycle reports a retired instruction."""
        _, outputs = run_instruction(initial_state(), encode(SetImmediate(Reg.R1, 5)))
        assert [o.retired for o in outputs[:3]] == [None, None, None]
        assert outputs[3].retired == SetImmediate(Reg.R1, 5)

    def test_retired_count(self):
        """Each instruction bumps the retired counter."""
        state, _ = run_instruction(initial_state(), encode(SetImmediate(Reg.R1, 5)))
        state, _ = run_instruction(state, encode(SetImmediate(Reg.R2, 6)))
        assert state.retired_count == 2


class TestInstructions:
    """Effects committed at WRITEBACK."""

    def test_set(self):
        """SET writes the immediate and advances pc."""
        state, _ = run_instruction(initial_state(), encode(SetImmediate(Reg.R1, 0x7FF)))
        assert state.registers[Reg.R1] == 0x7FF
        assert state.program_counter == 1

    def test_alu_updates_flags(self):
        """An ALU commit latches zero and carry."""
        state = with_registers(0, 5, 5, 0, 0, 0, 0, 0)
        state, _ = run_instruction(state, encode(AluInstruction(Reg.R3, Reg.R1, Reg.R2, AluOp.SUB)))
        assert state.registers[Reg.R3] == 0
        assert state.flags == Flags(zero=True, carry=True)

    def test_logic_clears_carry(self):
        """Logic ops clear a previously set carry."""
        state = with_registers(0, 5, 3, 0, 0, 0, 0, 0, flags=Flags(carry=True))
        state, _ = run_instruction(state, encode(AluInstruction(Reg.R3, Reg.R1, Reg.R2, AluOp.XOR)))
        assert state.registers[Reg.R3] == 6
        assert state.flags == Flags(zero=False, carry=False)

    def test_condition_not_met_commits_nothing(self):
        """An unmet condition leaves registers and flags alone but advances pc."""
        flags = Flags(zero=False, carry=True)
        state = with_registers(0, 0, 3, 0, 0, 0, 0, 0, flags=flags)
        state, _ = run_instruction(state, encode(AluInstruction(Reg.R1, Reg.R2, Reg.R2, AluOp.ADD_IF_ZERO)))
        assert state.registers[Reg.R1] == 0
        assert state.flags == flags
        assert state.program_counter == 1

    def test_pc_write_wins(self):
        """Writing pc jumps instead of incrementing."""
        state, _ = run_instruction(initial_state(), encode(SetImmediate(Reg.PC, 0x10)))
        assert state.program_counter == 0x10

    def test_reading_pc_gives_current_address(self):
        """pc as an operand reads the address of the executing instruction."""
        state = with_registers(0, 0, 0, 0, 0, 0, 0, 0x30)
        state, _ = run_instruction(state, encode(AluInstruction(Reg.R1, Reg.PC, Reg.Z, AluOp.ADD)))
        assert state.registers[Reg.R1] == 0x30

    @pytest.mark.parametrize("op, zero, carry", [
        (ControlOp.SETZ, True, False),
        (ControlOp.SETC, False, True),
    ])
    def test_flag_control(self, op, zero, carry):
        """SETZ and SETC set one flag each."""
        state, _ = run_instruction(initial_state(), encode(Control(op)))
        assert state.flags == Flags(zero=zero, carry=carry)

    def test_flag_clear(self):
        """CLRZ and CLRC clear their flag."""
        state = with_registers(0, 0, 0, 0, 0, 0, 0, 0, flags=Flags(zero=True, carry=True))
        state, _ = run_instruction(state, encode(Control(ControlOp.CLRZ)))
        assert state.flags == Flags(zero=False, carry=True)
        state, _ = run_instruction(state, encode(Control(ControlOp.CLRC)))
        assert state.flags == Flags()

    def test_store_drives_bus(self):
        """A store drives address, data and write enable during EXECUTE."""
        state = with_registers(0, 0x10, 7, 0, 0, 0, 0, 0)
        _, outputs = run_instruction(state, encode(MemoryAccess(Reg.R2, Reg.R1, 5, load=False)))
        execute = outputs[2]
        assert execute.ram_write_enable
        assert execute.ram_write_address == 0x15
        assert execute.ram_write_data == 7
        assert not any(o.ram_write_enable for o in (outputs[0], outputs[1], outputs[3]))

    def test_load_commits_read_data(self):
        """A load drives the read address and writes the returned data."""
        state = with_registers(0, 0x10, 0, 0, 0, 0, 0, 0)
        state, outputs = run_instruction(
            state, encode(MemoryAccess(Reg.R2, Reg.R1, 1, load=True)), read_data=0x1234,
        )
        assert outputs[2].ram_read_address == 0x11
        assert state.registers[Reg.R2] == 0x1234

    def test_effective_address_wraps(self):
        """Base + offset wraps at 16 bits."""
        state = with_registers(0, 0xFFFF, 0, 0, 0, 0, 0, 0)
        _, outputs = run_instruction(state, encode(MemoryAccess(Reg.R2, Reg.R1, 2, load=True)))
        assert outputs[2].ram_read_address == 1


class TestStalls:
    """Collaborators that are not ready hold the core in place."""

    def test_decode_stalls_without_rom(self):
        """DECODE waits for the ROM and keeps driving pc."""
        state, _ = step(initial_state())
        stalled, out = step(state, CoreInputs(rom_ready=False))
        assert stalled == state
        assert out.stalled
        assert out.rom_address == 0

    def test_writeback_stalls_without_ram(self):
        """WRITEBACK waits for load data and re-issues the address."""
        state = with_registers(0, 0, 0, 0, 0, 0, 0, 0)
        state, _ = step(state)
        state, _ = step(state, CoreInputs(instruction_word=encode(MemoryAccess(Reg.R1, Reg.Z, 9, load=True))))
        state, _ = step(state)
        assert state.pending == PendingRead(Port.RAM, 9)

        for _ in range(3):
            next_state, out = step(state, CoreInputs(ram_ready=False))
            assert next_state == state
            assert out.stalled
            assert out.ram_read_address == 9

        state, out = step(state, CoreInputs(read_data=77))
        assert not out.stalled
        assert state.registers[Reg.R1] == 77
        assert state.pending is None

    def test_store_does_not_wait_for_ram(self):
        """Stores retire without a ready handshake."""
        state = initial_state()
        state, _ = step(state)
        state, _ = step(state, CoreInputs(instruction_word=encode(MemoryAccess(Reg.R1, Reg.Z, 9, load=False))))
        state, _ = step(state)
        state, out = step(state, CoreInputs(ram_ready=False))
        assert out.retired is not None
        assert state.stage == Stage.FETCH


class TestHaltAndReset:
    """HALT and synchronous reset."""

    def test_halt_freezes_pc(self):
        """HALT latches halt and keeps pc on the HALT instruction."""
        state = with_registers(0, 0, 0, 0, 0, 0, 0, 4)
        state, _ = run_instruction(state, encode(Control(ControlOp.HALT)))
        assert state.halt
        assert state.program_counter == 4

    def test_halt_is_sticky(self):
        """Clocking a halted core changes nothing."""
        state, _ = run_instruction(initial_state(), encode(Control(ControlOp.HALT)))
        for _ in range(5):
            next_state, out = step(state, CoreInputs(instruction_word=encode(SetImmediate(Reg.R1, 1))))
            assert next_state == state
            assert out.halt

    def test_reset_from_halt(self):
        """Reset clears halt."""
        state, _ = run_instruction(initial_state(), encode(Control(ControlOp.HALT)))
        state, _ = step(state, CoreInputs(reset=True))
        assert state == initial_state()

    def test_reset_mid_instruction(self):
        """Reset abandons an instruction in flight."""
        state = with_registers(0, 9, 9, 9, 9, 9, 9, 9, flags=Flags(True, True))
        state, _ = step(state)
        state, _ = step(state, CoreInputs(instruction_word=encode(SetImmediate(Reg.R1, 5))))
        state, _ = step(state, CoreInputs(reset=True))
        assert state == initial_state()

    def test_get_state(self):
        """Architectural state includes flags and halt."""
        state = with_registers(0, 1, 2, 3, 4, 5, 6, 7, flags=Flags(zero=True))
        assert state.get_state() == {
            "r1": 1, "r2": 2, "r3": 3, "r4": 4, "tmp": 5, "sp": 6, "pc": 7,
            "zero": True, "carry": False, "halt": False,
        }
