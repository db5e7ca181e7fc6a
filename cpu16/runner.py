"""Program runner with tracing."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Union

from .errors import CPU16Error, CycleLimitExceeded, ErrorInfo
from .parser import ParsedProgram, parse_program
from .system import System

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Options for program execution."""
    max_cycles: int = 1_000_000
    ram_wait_states: int = 0
    rom_wait_states: int = 0
    trace: bool = True
    trace_watch: list[int] = field(default_factory=list)
    initial_memory: dict[int, int] = field(default_factory=dict)
    tile_text_length: int = 80


@dataclass
class TraceRow:
    """Architectural state after one retired instruction."""
    step: int
    cycle: int
    r1: int
    r2: int
    r3: int
    r4: int
    tmp: int
    sp: int
    pc: int
    zero: bool
    carry: bool
    halt: bool
    instr_text: str = ""
    mem: dict[str, int] = field(default_factory=dict)

    def to_dict(self, include_mem: bool = True) -> dict:
        result = {
            "step": self.step,
            "cycle": self.cycle,
            "r1": self.r1,
            "r2": self.r2,
            "r3": self.r3,
            "r4": self.r4,
            "tmp": self.tmp,
            "sp": self.sp,
            "pc": self.pc,
            "zero": self.zero,
            "carry": self.carry,
            "halt": self.halt,
            "instr_text": self.instr_text,
        }
        if include_mem:
            result["mem"] = self.mem
        return result


@dataclass
class RunResult:
    """Result of program execution."""
    status: str  # "ok" | "error"
    cycles: int
    instructions_retired: int
    final_state: dict
    trace_watch: list[int]
    trace: list[dict]
    tiles: str = ""
    words: list[int] = field(default_factory=list)
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> dict:
        result = {
            "status": self.status,
            "cycles": self.cycles,
            "instructions_retired": self.instructions_retired,
            "final_state": self.final_state,
            "trace_watch": self.trace_watch,
            "trace": self.trace,
            "tiles": self.tiles,
            "words": self.words,
        }
        if self.error:
            result["error"] = self.error.to_dict()
        return result


def run_program(
    program: Union[str, Sequence[int]],
    options: Optional[RunOptions] = None,
) -> RunResult:
    """Run a program on the cycle-level system.

    Args:
        program: Assembly source text, or a program image as a word sequence
        options: Execution options

    Returns:
        RunResult with execution status, trace and final state
    """
    if options is None:
        options = RunOptions()

    trace_rows: list[dict] = []
    error_info: Optional[ErrorInfo] = None
    parsed: Optional[ParsedProgram] = None

    try:
        if isinstance(program, str):
            parsed = parse_program(program)
            words = parsed.words
        else:
            words = [int(w) for w in program]
        system = System(
            words,
            ram_wait_states=options.ram_wait_states,
            rom_wait_states=options.rom_wait_states,
            initial_memory=options.initial_memory,
        )
    except CPU16Error as e:
        logger.warning("Program rejected: %s", e.message)
        return RunResult(
            status="error",
            cycles=0,
            instructions_retired=0,
            final_state=System().get_state(),
            trace_watch=options.trace_watch,
            trace=[],
            error=e.to_error_info(),
        )

    logger.info("Running %d words, max %d cycles", len(words), options.max_cycles)

    try:
        while not system.halted:
            if system.cycles >= options.max_cycles:
                raise CycleLimitExceeded(
                    f"Cycle limit exceeded: {options.max_cycles}",
                    step=system.state.retired_count,
                    addr=system.program_counter,
                )
            outputs = system.tick()
            if outputs.retired is None or not options.trace:
                continue
            state = system.get_state()
            trace_rows.append(TraceRow(
                step=system.state.retired_count,
                cycle=system.cycles,
                instr_text=str(outputs.retired),
                mem=system.ram.get_watched(options.trace_watch),
                **state,
            ).to_dict(include_mem=bool(options.trace_watch)))
    except CPU16Error as e:
        if parsed is not None:
            src = parsed.source_map.get(e.addr)
            if src is not None:
                e.source_line_no, e.source_text = src.source_line_no, src.source_text
        logger.warning("Run stopped: %s", e.message)
        error_info = e.to_error_info()

    logger.info("Finished after %d cycles, %d instructions", system.cycles, system.state.retired_count)
    return RunResult(
        status="ok" if error_info is None else "error",
        cycles=system.cycles,
        instructions_retired=system.state.retired_count,
        final_state=system.get_state(),
        trace_watch=options.trace_watch,
        trace=trace_rows,
        tiles=system.tiles.text(options.tile_text_length),
        words=words,
        error=error_info,
    )


def write_trace_jsonl(result: RunResult, path: Union[str, Path]) -> None:
    """One JSON object per retired instruction."""
    with open(path, "w", encoding="utf-8") as f:
        for row in result.trace:
            f.write(json.dumps(row))
            f.write("\n")
