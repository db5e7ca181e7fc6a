"""Control unit: the clocked instruction sequencer of the core.

The whole machine state lives in one immutable ``CoreState``. ``step`` is
the only transition: it takes the state and the signals sampled on this
cycle and returns the state after the rising edge together with the signals
the core drives during the cycle.

Every instruction passes through four stages::

    FETCH      drive rom_address = pc
    DECODE     instruction word arrives, decode, read registers
    EXECUTE    run the ALU, drive the RAM read or write
    WRITEBACK  read data arrives, commit registers and flags, advance pc

ROM and RAM answer one cycle after an address is driven. The address of an
outstanding read is kept in ``CoreState.pending``; while the collaborator
reports not-ready the core stays in the same stage and drives the same
address again.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional

from .alu import AluOp, AluResult, Flags, evaluate
from .isa import (
    AluInstruction,
    Control,
    ControlOp,
    Instruction,
    MemoryAccess,
    SetImmediate,
    decode,
)
from .register_file import Reg, RegisterFile

WORD_MASK = 0xFFFF
START_ADDRESS = 0


class Stage(IntEnum):
    FETCH = 0
    DECODE = 1
    EXECUTE = 2
    WRITEBACK = 3


class Port(IntEnum):
    ROM = 0
    RAM = 1


@dataclass(frozen=True)
class PendingRead:
    """Read request driven on an earlier cycle whose data has not been used yet."""
    port: Port
    address: int


@dataclass(frozen=True)
class CoreInputs:
    instruction_word: int = 0
    read_data: int = 0
    rom_ready: bool = True
    ram_ready: bool = True
    reset: bool = False


@dataclass(frozen=True)
class CoreOutputs:
    rom_address: int
    program_counter: int
    halt: bool
    zero: bool
    carry: bool
    stage: Stage
    ram_read_address: Optional[int] = None
    ram_write_address: int = 0
    ram_write_data: int = 0
    ram_write_enable: bool = False
    stalled: bool = False
    retired: Optional[Instruction] = None


@dataclass(frozen=True)
class CoreState:
    registers: RegisterFile = RegisterFile()
    flags: Flags = Flags()
    stage: Stage = Stage.FETCH
    halt: bool = False
    pending: Optional[PendingRead] = None
    instruction: Optional[Instruction] = None
    operand_a: int = 0
    operand_b: int = 0
    alu: Optional[AluResult] = None
    mem_address: int = 0
    retired_count: int = 0

    @property
    def program_counter(self) -> int:
        return self.registers.program_counter

    def get_state(self) -> dict:
        """Architectural state in the trace layout."""
        state = self.registers.get_state()
        state.update(zero=self.flags.zero, carry=self.flags.carry, halt=self.halt)
        return state


def initial_state() -> CoreState:
    """State right after reset."""
    cells = [0] * len(Reg)
    cells[Reg.PC] = START_ADDRESS
    return CoreState(registers=RegisterFile(tuple(cells)))


def _outputs(state: CoreState, **signals) -> CoreOutputs:
    return CoreOutputs(
        rom_address=state.program_counter,
        program_counter=state.program_counter,
        halt=state.halt,
        zero=state.flags.zero,
        carry=state.flags.carry,
        stage=state.stage,
        **signals,
    )


def _fetch(state: CoreState, inputs: CoreInputs):
    pc = state.program_counter
    next_state = replace(state, stage=Stage.DECODE, pending=PendingRead(Port.ROM, pc))
    return next_state, _outputs(state)


def _decode(state: CoreState, inputs: CoreInputs):
    if not inputs.rom_ready:
        return state, _outputs(state, stalled=True)

    instruction = decode(inputs.instruction_word)
    registers = state.registers
    operand_a = operand_b = 0

    if isinstance(instruction, AluInstruction):
        operand_a, operand_b = registers.read(instruction.src1, instruction.src2)
    elif isinstance(instruction, MemoryAccess):
        operand_a, operand_b = registers.read(instruction.base, instruction.reg)
    elif isinstance(instruction, SetImmediate):
        operand_a = instruction.value

    next_state = replace(
        state,
        stage=Stage.EXECUTE,
        pending=None,
        instruction=instruction,
        operand_a=operand_a,
        operand_b=operand_b,
    )
    return next_state, _outputs(state)


def _execute(state: CoreState, inputs: CoreInputs):
    instruction = state.instruction

    if isinstance(instruction, AluInstruction):
        alu = evaluate(instruction.op, state.operand_a, state.operand_b, state.flags)
        return replace(state, stage=Stage.WRITEBACK, alu=alu), _outputs(state)

    if isinstance(instruction, MemoryAccess):
        # Effective address goes through the adder; flags are not latched for it.
        address = evaluate(AluOp.ADD, state.operand_a, instruction.offset).result
        if instruction.load:
            next_state = replace(
                state,
                stage=Stage.WRITEBACK,
                mem_address=address,
                pending=PendingRead(Port.RAM, address),
            )
            return next_state, _outputs(state, ram_read_address=address)

        next_state = replace(state, stage=Stage.WRITEBACK, mem_address=address)
        return next_state, _outputs(
            state,
            ram_write_address=address,
            ram_write_data=state.operand_b,
            ram_write_enable=True,
        )

    return replace(state, stage=Stage.WRITEBACK), _outputs(state)


def _writeback(state: CoreState, inputs: CoreInputs):
    pending = state.pending
    if pending is not None and not inputs.ram_ready:
        return state, _outputs(state, ram_read_address=pending.address, stalled=True)

    instruction = state.instruction
    flags = state.flags
    halt = False
    write_dest, write_data, write_enable = 0, 0, False

    if isinstance(instruction, Control):
        if instruction.op == ControlOp.HALT:
            halt = True
        elif instruction.op == ControlOp.SETZ:
            flags = replace(flags, zero=True)
        elif instruction.op == ControlOp.CLRZ:
            flags = replace(flags, zero=False)
        elif instruction.op == ControlOp.SETC:
            flags = replace(flags, carry=True)
        elif instruction.op == ControlOp.CLRC:
            flags = replace(flags, carry=False)
    elif isinstance(instruction, SetImmediate):
        write_dest, write_data, write_enable = instruction.dst, state.operand_a, True
    elif isinstance(instruction, MemoryAccess):
        if instruction.load:
            write_dest, write_data, write_enable = instruction.reg, inputs.read_data & WORD_MASK, True
    elif isinstance(instruction, AluInstruction):
        alu = state.alu
        if alu.condition_met:
            write_dest, write_data, write_enable = instruction.dst, alu.result, True
            flags = Flags(zero=alu.zero, carry=alu.carry)

    registers = state.registers.clock(
        write_dest=write_dest,
        write_data=write_data,
        write_enable=write_enable,
        count_enable=not halt,
    )
    next_state = CoreState(
        registers=registers,
        flags=flags,
        stage=Stage.FETCH,
        halt=halt,
        retired_count=state.retired_count + 1,
    )
    signals = {"retired": instruction}
    if pending is not None:
        signals["ram_read_address"] = pending.address
    return next_state, _outputs(state, **signals)


_STAGES = {
    Stage.FETCH: _fetch,
    Stage.DECODE: _decode,
    Stage.EXECUTE: _execute,
    Stage.WRITEBACK: _writeback,
}


def step(state: CoreState, inputs: CoreInputs = CoreInputs()) -> tuple[CoreState, CoreOutputs]:
    """Advance the core by one clock cycle.

    Reset returns the initial state regardless of stage. A halted core
    stays exactly as it is until reset.
    """
    if inputs.reset:
        return initial_state(), _outputs(state)
    if state.halt:
        return state, _outputs(state)
    return _STAGES[state.stage](state, inputs)
