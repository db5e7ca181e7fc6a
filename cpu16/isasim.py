"""Instruction-level reference simulator.

Runs one whole instruction per ``step`` with no memory latency. It shares
the decoder, the ALU and the data bus with the cycle-level core, and is the
yardstick the core's architectural state is compared against.
"""

from typing import Iterable, Iterator, Optional

from .alu import Flags, evaluate
from .errors import CycleLimitExceeded
from .isa import AluInstruction, Control, ControlOp, MemoryAccess, SetImmediate, decode
from .peripherals import DataBus, Ram, Rom, TileTable
from .register_file import Reg

WORD_MASK = 0xFFFF


class InstructionSimulator:
    """Architectural model of the machine."""

    def __init__(
        self,
        program: Iterable[int] = (),
        initial_memory: Optional[dict[int, int]] = None,
    ):
        self.rom = Rom(program)
        self.ram = Ram(initial_values=initial_memory)
        self.tiles = TileTable()
        self.bus = DataBus(self.ram, self.tiles)
        self.regs: list[int] = [0] * len(Reg)
        self.flags = Flags()
        self.halted = False
        self.steps = 0

    @property
    def pc(self) -> int:
        return self.regs[Reg.PC]

    def _read(self, reg: int) -> int:
        return 0 if reg == Reg.Z else self.regs[reg]

    def step(self) -> None:
        if self.halted:
            return
        pc = self.pc
        instruction = decode(self.rom.read(pc))
        next_pc = (pc + 1) & WORD_MASK
        dst, value = None, 0

        if isinstance(instruction, Control):
            if instruction.op == ControlOp.HALT:
                self.halted = True
                next_pc = pc
            elif instruction.op == ControlOp.SETZ:
                self.flags = Flags(zero=True, carry=self.flags.carry)
            elif instruction.op == ControlOp.CLRZ:
                self.flags = Flags(zero=False, carry=self.flags.carry)
            elif instruction.op == ControlOp.SETC:
                self.flags = Flags(zero=self.flags.zero, carry=True)
            elif instruction.op == ControlOp.CLRC:
                self.flags = Flags(zero=self.flags.zero, carry=False)
        elif isinstance(instruction, SetImmediate):
            dst, value = instruction.dst, instruction.value
        elif isinstance(instruction, MemoryAccess):
            addr = (self._read(instruction.base) + instruction.offset) & WORD_MASK
            if instruction.load:
                dst, value = instruction.reg, self.bus.read(addr)
            else:
                self.bus.write(addr, self._read(instruction.reg))
        elif isinstance(instruction, AluInstruction):
            out = evaluate(
                instruction.op,
                self._read(instruction.src1),
                self._read(instruction.src2),
                self.flags,
            )
            if out.condition_met:
                dst, value = instruction.dst, out.result
                self.flags = Flags(zero=out.zero, carry=out.carry)

        if dst == Reg.PC:
            next_pc = value
        elif dst is not None and dst != Reg.Z:
            self.regs[dst] = value
        self.regs[Reg.PC] = next_pc
        self.steps += 1

    def run(self, max_steps: int = 1_000_000) -> int:
        """Step until halt. Returns the number of instructions executed."""
        start = self.steps
        while not self.halted:
            if self.steps - start >= max_steps:
                raise CycleLimitExceeded(
                    f"Step limit exceeded: {max_steps}",
                    step=self.steps,
                    addr=self.pc,
                )
            self.step()
        return self.steps - start

    def get_state(self) -> dict:
        state = {str(reg): self._read(reg) for reg in Reg if reg != Reg.Z}
        state.update(zero=self.flags.zero, carry=self.flags.carry, halt=self.halted)
        return state

    def __iter__(self) -> Iterator[dict]:
        while not self.halted:
            self.step()
            yield self.get_state()
