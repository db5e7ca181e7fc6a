"""16-bit CPU core simulator and toolchain."""

from .runner import run_program, RunOptions, RunResult
from .system import System
from .isasim import InstructionSimulator
from .assembler import Assembler
from .parser import parse_program, ParsedProgram
from .alu import AluOp, Flags, evaluate
from .register_file import Reg
from .errors import CPU16Error, AssemblyError, ParseError, SimulationError, CycleLimitExceeded

__all__ = [
    "run_program",
    "RunOptions",
    "RunResult",
    "System",
    "InstructionSimulator",
    "Assembler",
    "parse_program",
    "ParsedProgram",
    "AluOp",
    "Flags",
    "evaluate",
    "Reg",
    "CPU16Error",
    "AssemblyError",
    "ParseError",
    "SimulationError",
    "CycleLimitExceeded",
]
