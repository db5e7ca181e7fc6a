"""Register file with a hardwired zero register and a program counter."""

from dataclasses import dataclass, field
from enum import IntEnum

WORD_MASK = 0xFFFF
REGISTER_COUNT = 8


class Reg(IntEnum):
    Z = 0
    R1 = 1
    R2 = 2
    R3 = 3
    R4 = 4
    TMP = 5
    SP = 6
    PC = 7

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, name: str) -> "Reg":
        """Look up a register by its assembly name (``r1``, ``sp``, ...)."""
        return cls[name.strip().upper()]


PROGRAM_COUNTER = Reg.PC


@dataclass(frozen=True)
class RegisterFile:
    """Eight 16-bit cells.

    Instances are values: ``clock`` returns the register file as it is after
    the edge and leaves ``self`` untouched, so a write is only visible to
    reads made on the returned object.
    """
    cells: tuple = field(default=(0,) * REGISTER_COUNT)

    def __getitem__(self, index: int) -> int:
        index = int(index) & 0b111
        if index == Reg.Z:
            return 0
        return self.cells[index]

    def read(self, src1: int, src2: int) -> tuple[int, int]:
        """Both read ports."""
        return self[src1], self[src2]

    @property
    def program_counter(self) -> int:
        return self.cells[PROGRAM_COUNTER]

    def clock(
        self,
        write_dest: int = 0,
        write_data: int = 0,
        write_enable: bool = False,
        count_enable: bool = False,
        reset: bool = False,
    ) -> "RegisterFile":
        """Apply one rising edge.

        Reset wins over everything. A write to the program counter wins over
        the increment in the same cycle. Writes to register 0 are stored but
        reads of register 0 still return 0.
        """
        if reset:
            return RegisterFile()

        cells = list(self.cells)
        write_dest = int(write_dest) & 0b111
        if write_enable:
            cells[write_dest] = write_data & WORD_MASK
        if count_enable and not (write_enable and write_dest == PROGRAM_COUNTER):
            cells[PROGRAM_COUNTER] = (cells[PROGRAM_COUNTER] + 1) & WORD_MASK
        return RegisterFile(tuple(cells))

    def get_state(self) -> dict:
        """Architectural register values keyed by assembly name, z excluded."""
        return {str(reg): self[reg] for reg in Reg if reg != Reg.Z}
