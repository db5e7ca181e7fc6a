"""Custom exceptions for the cpu16 toolchain.

The processor core itself never raises: every instruction word decodes and
every address is mapped. These exceptions belong to the tooling around it
(assembler, parser, image loader, runner).
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ErrorInfo:
    """JSON-ready description of a rejected program or a stopped run.

    ``addr`` is the word address in program ROM the error refers to and
    ``step`` the number of instructions retired before it.
    """
    type: str
    message: str
    step: int
    addr: int
    source_line_no: Optional[int] = None
    source_text: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "message": self.message,
            "step": self.step,
            "addr": self.addr,
            "source_line_no": self.source_line_no,
            "source_text": self.source_text,
        }


class CPU16Error(Exception):
    """Raised by the toolchain around the core.

    Assembly errors carry the ROM address of the offending word; the parser
    and runner fill in the source line once they know it.
    """

    def __init__(
        self,
        message: str,
        step: int = 0,
        addr: int = 0,
        source_line_no: Optional[int] = None,
        source_text: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.addr = addr
        self.source_line_no = source_line_no
        self.source_text = source_text

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(
            type=self.__class__.__name__,
            message=self.message,
            step=self.step,
            addr=self.addr,
            source_line_no=self.source_line_no,
            source_text=self.source_text,
        )


class EncodingError(CPU16Error):
    """Instruction field does not fit its encoding."""
    pass


class AssemblyError(CPU16Error):
    """Error while building a program."""
    pass


class OperandRangeError(AssemblyError):
    """Immediate, offset or register index out of range."""
    pass


class JumpOutOfRange(AssemblyError):
    """Relative jump target too far away."""
    pass


class ParseError(AssemblyError):
    """Error during assembly text parsing."""
    pass


class UnknownMnemonic(ParseError):
    """Unknown instruction mnemonic."""
    pass


class InvalidOperand(ParseError):
    """Invalid operand for instruction."""
    pass


class DuplicateLabel(ParseError):
    """Label defined more than once."""
    pass


class UnresolvedLabel(ParseError):
    """Jump or call to a label that is never defined."""
    pass


class ImageFormatError(CPU16Error):
    """Malformed program image."""
    pass


class SimulationError(CPU16Error):
    """Error raised by the simulation harness."""
    pass


class CycleLimitExceeded(SimulationError):
    """Maximum cycle count exceeded before halt."""
    pass
