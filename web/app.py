"""FastAPI web adapter for the cpu16 simulator."""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from typing import Optional
from pathlib import Path
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cpu16 import run_program, RunOptions, parse_program
from cpu16.errors import CPU16Error


# Constants
MAX_PROGRAM_SIZE = 50 * 1024  # 50KB
MAX_PROGRAM_WORDS = 1 << 16
STATIC_DIR = Path(__file__).parent.parent / "static"


# Request/Response models
class RunOptionsModel(BaseModel):
    max_cycles: int = Field(default=1_000_000, ge=1, le=50_000_000)
    ram_wait_states: int = Field(default=0, ge=0, le=16)
    rom_wait_states: int = Field(default=0, ge=0, le=16)
    trace: bool = True
    trace_watch: list[int] = Field(default_factory=list)
    initial_memory: dict[str, int] = Field(default_factory=dict)
    tile_text_length: int = Field(default=80, ge=0, le=4800)


class RunRequest(BaseModel):
    program: Optional[str] = None
    words: Optional[list[int]] = None
    options: Optional[RunOptionsModel] = None


class AssembleRequest(BaseModel):
    program: str


class RunResponse(BaseModel):
    status: str
    cycles: int
    instructions_retired: int
    final_state: dict
    trace_watch: list[int]
    trace: list[dict]
    tiles: str
    words: list[int]
    error: Optional[dict] = None


class AssembleResponse(BaseModel):
    words: list[int]
    listing: list[str]
    labels: dict[str, int]


# Create FastAPI app
app = FastAPI(
    title="cpu16",
    description="Web API for running programs on the 16-bit CPU core with tracing",
    version="0.1.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _check_program_size(program: str) -> None:
    if len(program) > MAX_PROGRAM_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"Program size exceeds limit of {MAX_PROGRAM_SIZE} bytes",
        )


@app.post("/api/run", response_model=RunResponse)
async def run_code(request: RunRequest):
    """Run a program given as assembly text or as instruction words.

    Args:
        request: Program text or words, and execution options

    Returns:
        Execution result with trace, tiles and final state
    """
    if (request.program is None) == (request.words is None):
        raise HTTPException(
            status_code=400,
            detail="Exactly one of 'program' and 'words' must be given",
        )

    if request.program is not None:
        _check_program_size(request.program)
        program = request.program
    else:
        if len(request.words) > MAX_PROGRAM_WORDS:
            raise HTTPException(
                status_code=400,
                detail=f"Program exceeds {MAX_PROGRAM_WORDS} words",
            )
        bad = [w for w in request.words if not 0 <= w <= 0xFFFF]
        if bad:
            raise HTTPException(
                status_code=400,
                detail=f"Not a 16-bit word: {bad[0]}",
            )
        program = request.words

    opts = request.options or RunOptionsModel()

    # Convert initial_memory keys from string to int
    initial_memory = {}
    for k, v in opts.initial_memory.items():
        try:
            initial_memory[int(k, 0)] = v
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid memory address key: {k}",
            )

    run_opts = RunOptions(
        max_cycles=opts.max_cycles,
        ram_wait_states=opts.ram_wait_states,
        rom_wait_states=opts.rom_wait_states,
        trace=opts.trace,
        trace_watch=opts.trace_watch,
        initial_memory=initial_memory,
        tile_text_length=opts.tile_text_length,
    )

    result = run_program(program, options=run_opts)

    return result.to_dict()


@app.post("/api/assemble", response_model=AssembleResponse)
async def assemble_code(request: AssembleRequest):
    """Assemble program text without running it."""
    _check_program_size(request.program)
    try:
        parsed = parse_program(request.program)
    except CPU16Error as e:
        raise HTTPException(status_code=400, detail=e.to_error_info().to_dict())

    return {
        "words": parsed.words,
        "listing": parsed.listing(),
        "labels": parsed.labels,
    }


# Mount static files AFTER API routes to prevent shadowing
if STATIC_DIR.exists():
    app.mount("/", StaticFiles(directory=str(STATIC_DIR), html=True), name="static")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
