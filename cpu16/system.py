"""Top-level harness: the core clocked against ROM, RAM and the display."""

import logging
from typing import Callable, Iterable, Optional

from .alu import Flags
from .control import CoreInputs, CoreOutputs, CoreState, initial_state, step
from .errors import CycleLimitExceeded
from .peripherals import DataBus, Ram, Rom, TileTable
from .register_file import RegisterFile

logger = logging.getLogger(__name__)


class ReadPort:
    """Synchronous read port with one cycle of latency plus wait states.

    ``drive`` is called on each clock edge with the address the core drove
    during that cycle. Data for it is presented on the next cycle, once the
    configured number of wait states has elapsed for that address.
    """

    def __init__(self, read: Callable[[int], int], wait_states: int = 0):
        self._read = read
        self.wait_states = wait_states
        self._address: Optional[int] = None
        self._remaining = 0
        self.data = 0

    @property
    def ready(self) -> bool:
        return self._address is not None and self._remaining == 0

    def drive(self, address: Optional[int]) -> None:
        if address is None:
            self._address = None
            return
        if address != self._address:
            self._address = address
            self._remaining = self.wait_states
        elif self._remaining > 0:
            self._remaining -= 1
        self.data = self._read(address)


class System:
    """Core, program ROM, data RAM and the tile table on one clock."""

    def __init__(
        self,
        program: Iterable[int] = (),
        ram_wait_states: int = 0,
        rom_wait_states: int = 0,
        initial_memory: Optional[dict[int, int]] = None,
        tiles: Optional[TileTable] = None,
    ):
        self.rom = Rom(program)
        self.ram = Ram(initial_values=initial_memory)
        self.tiles = tiles if tiles is not None else TileTable()
        self.bus = DataBus(self.ram, self.tiles)
        self._rom_port = ReadPort(self.rom.read, rom_wait_states)
        self._ram_port = ReadPort(self.bus.read, ram_wait_states)
        self.state: CoreState = initial_state()
        self.cycles = 0
        self.last_outputs: Optional[CoreOutputs] = None

    @property
    def registers(self) -> RegisterFile:
        return self.state.registers

    @property
    def flags(self) -> Flags:
        return self.state.flags

    @property
    def halted(self) -> bool:
        return self.state.halt

    @property
    def program_counter(self) -> int:
        return self.state.program_counter

    def tick(self, reset: bool = False) -> CoreOutputs:
        """One rising edge."""
        inputs = CoreInputs(
            instruction_word=self._rom_port.data,
            read_data=self._ram_port.data,
            rom_ready=self._rom_port.ready,
            ram_ready=self._ram_port.ready,
            reset=reset,
        )
        was_halted = self.state.halt
        self.state, outputs = step(self.state, inputs)
        self.cycles += 1

        if outputs.stalled:
            logger.debug("Stall at cycle %d, stage %s", self.cycles, outputs.stage.name)
        if outputs.ram_write_enable:
            self.bus.write(outputs.ram_write_address, outputs.ram_write_data)
        self._rom_port.drive(outputs.rom_address)
        self._ram_port.drive(outputs.ram_read_address)

        if self.state.halt and not was_halted:
            logger.debug("Halted at pc=%04x after %d cycles", self.state.program_counter, self.cycles)
        self.last_outputs = outputs
        return outputs

    def reset(self) -> None:
        """Hold reset for one cycle."""
        logger.debug("Reset asserted")
        self.tick(reset=True)

    def step_instruction(self, max_cycles: int = 64) -> Optional[CoreOutputs]:
        """Clock until one instruction retires; None if the core is halted."""
        for _ in range(max_cycles):
            if self.state.halt:
                return None
            outputs = self.tick()
            if outputs.retired is not None:
                return outputs
        raise CycleLimitExceeded(
            f"No instruction retired within {max_cycles} cycles",
            step=self.state.retired_count,
            addr=self.state.program_counter,
        )

    def run(self, max_cycles: int = 1_000_000) -> int:
        """Clock until halt. Returns the number of cycles spent."""
        start = self.cycles
        while not self.state.halt:
            if self.cycles - start >= max_cycles:
                raise CycleLimitExceeded(
                    f"Cycle limit exceeded: {max_cycles}",
                    step=self.state.retired_count,
                    addr=self.state.program_counter,
                )
            self.tick()
        return self.cycles - start

    def get_state(self) -> dict:
        return self.state.get_state()
