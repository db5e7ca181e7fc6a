"""Text assembly parser.

One statement per line; ``;`` starts a comment. A line may start with a
``name:`` label. Operands are comma separated::

    start:  set r1, 10
    loop:   dec r1
            jmpnz loop
            store r1, sp + 3
            halt

Every mnemonic maps onto an ``Assembler`` method, so the text syntax and
the builder API produce identical words.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from .alu import AluOp, CONDITION_SUFFIXES, Condition
from .assembler import Assembler
from .errors import AssemblyError, InvalidOperand, ParseError, UnknownMnemonic
from .register_file import Reg

_LABEL_RE = re.compile(r"^([A-Za-z_.][A-Za-z0-9_.]*):\s*(.*)$")
_NAME_RE = re.compile(r"^[A-Za-z_.][A-Za-z0-9_.]*$")
_MEMORY_RE = re.compile(r"^([A-Za-z0-9]+)\s*(?:\+\s*(\S+))?$")
_DECIMAL_LITERAL_RE = re.compile(r"^\d+$")
_HEX_LITERAL_RE = re.compile(r"^0[xX][0-9A-Fa-f]+$")
_BINARY_LITERAL_RE = re.compile(r"^0[bB][01]+$")
_CHAR_LITERAL_RE = re.compile(r"^'(.)'$")


@dataclass
class SourceLine:
    """Where an emitted word came from."""
    source_line_no: int
    source_text: str


@dataclass
class ParsedProgram:
    """Result of parsing a program."""
    words: list[int]
    labels: dict[str, int]  # label -> addr
    source_map: dict[int, SourceLine]  # addr -> first source line emitting it

    def listing(self) -> list[str]:
        """``address: word  source`` lines."""
        lines = []
        for addr, word in enumerate(self.words):
            src = self.source_map.get(addr)
            text = src.source_text if src else ""
            lines.append(f"{addr:04x}: {word:04x}  {text}".rstrip())
        return lines


@dataclass
class _Statement:
    mnemonic: str
    operands: list[str]
    line_no: int
    text: str

    def fail(self, message: str, error: type = InvalidOperand) -> ParseError:
        return error(message, source_line_no=self.line_no, source_text=self.text)

    def expect(self, *counts: int) -> None:
        if len(self.operands) not in counts:
            expected = " or ".join(str(c) for c in counts)
            raise self.fail(f"{self.mnemonic} takes {expected} operand(s), got {len(self.operands)}")

    def reg(self, index: int) -> Reg:
        text = self.operands[index]
        try:
            return Reg.parse(text)
        except KeyError:
            raise self.fail(f"Invalid register: {text}") from None

    def number(self, index: int) -> int:
        text = self.operands[index]
        value = parse_numeric_literal(text)
        if value is None:
            raise self.fail(f"Invalid number: {text}")
        return value

    def label(self, index: int) -> str:
        text = self.operands[index]
        if not _NAME_RE.fullmatch(text):
            raise self.fail(f"Invalid label: {text}")
        return text

    def memory(self, index: int) -> tuple[Reg, int]:
        text = self.operands[index]
        match = _MEMORY_RE.fullmatch(text)
        if not match:
            raise self.fail(f"Invalid memory operand: {text}")
        base = match.group(1)
        try:
            reg = Reg.parse(base)
        except KeyError:
            raise self.fail(f"Invalid base register: {base}") from None
        offset = 0
        if match.group(2) is not None:
            offset = parse_numeric_literal(match.group(2))
            if offset is None:
                raise self.fail(f"Invalid offset: {match.group(2)}")
        return reg, offset


Handler = Callable[[Assembler, _Statement], None]


def _no_operands(method: str) -> Handler:
    def handle(asm: Assembler, st: _Statement) -> None:
        st.expect(0)
        getattr(asm, method)()
    return handle


def _alu(op: AluOp) -> Handler:
    def handle(asm: Assembler, st: _Statement) -> None:
        st.expect(3)
        asm.alu(st.reg(0), st.reg(1), st.reg(2), op)
    return handle


def _unary(method: str) -> Handler:
    def handle(asm: Assembler, st: _Statement) -> None:
        st.expect(1, 2)
        src = st.reg(1) if len(st.operands) == 2 else None
        getattr(asm, method)(st.reg(0), src)
    return handle


def _regs(method: str, count: int) -> Handler:
    def handle(asm: Assembler, st: _Statement) -> None:
        st.expect(count)
        getattr(asm, method)(*(st.reg(i) for i in range(count)))
    return handle


def _jump(cond: Condition) -> Handler:
    def handle(asm: Assembler, st: _Statement) -> None:
        st.expect(1)
        asm.jmp_if(st.label(0), cond)
    return handle


def _mov(cond: Condition) -> Handler:
    def handle(asm: Assembler, st: _Statement) -> None:
        st.expect(2)
        asm.mov_if(st.reg(0), st.reg(1), cond)
    return handle


def _set(asm: Assembler, st: _Statement) -> None:
    st.expect(2)
    asm.set(st.reg(0), st.number(1))


def _setw(asm: Assembler, st: _Statement) -> None:
    st.expect(2, 3)
    tmp = st.reg(2) if len(st.operands) == 3 else Reg.TMP
    asm.setw(st.reg(0), st.number(1), tmp)


def _load(asm: Assembler, st: _Statement) -> None:
    st.expect(2)
    asm.load(st.reg(0), *st.memory(1))


def _store(asm: Assembler, st: _Statement) -> None:
    st.expect(2)
    asm.store(st.reg(0), *st.memory(1))


def _muli(asm: Assembler, st: _Statement) -> None:
    st.expect(3)
    asm.muli(st.reg(0), st.reg(1), st.number(2))


def _div(asm: Assembler, st: _Statement) -> None:
    st.expect(3)
    asm.inline_div(st.reg(0), st.reg(1), st.reg(2), f"div_{st.line_no}")


def _call(asm: Assembler, st: _Statement) -> None:
    st.expect(1)
    asm.call(st.label(0))


def _word(asm: Assembler, st: _Statement) -> None:
    if not st.operands:
        raise st.fail(".word needs at least one value")
    for i in range(len(st.operands)):
        asm.word(st.number(i))


def _build_handlers() -> dict[str, Handler]:
    handlers: dict[str, Handler] = {
        "halt": _no_operands("halt"),
        "setz": _no_operands("setz"),
        "clrz": _no_operands("clrz"),
        "setc": _no_operands("setc"),
        "clrc": _no_operands("clrc"),
        "nop": _no_operands("nop"),
        "ret": _no_operands("ret"),
        "init_sp": _no_operands("init_sp"),
        "set": _set,
        "setw": _setw,
        "load": _load,
        "store": _store,
        "inc": _unary("inc"),
        "dec": _unary("dec"),
        "cmp": _regs("cmp", 2),
        "not": _regs("not_", 2),
        "tst": _regs("update_flags", 1),
        "push": _regs("push", 1),
        "pop": _regs("pop", 1),
        "add32": _regs("add32", 4),
        "sub32": _regs("sub32", 4),
        "muli": _muli,
        "div": _div,
        "call": _call,
        ".word": _word,
    }
    for op in AluOp:
        if op not in (AluOp.INC, AluOp.DEC):
            handlers[op.mnemonic] = _alu(op)
    for cond, suffix in CONDITION_SUFFIXES.items():
        handlers["jmp" + suffix] = _jump(cond)
        handlers["mov" + suffix] = _mov(cond)
    return handlers


MNEMONICS: dict[str, Handler] = _build_handlers()


def parse_program(text: str) -> ParsedProgram:
    """Assemble program text into instruction words.

    Args:
        text: Program source code

    Returns:
        ParsedProgram with words, labels and the address -> source line map
    """
    asm = Assembler()
    source_map: dict[int, SourceLine] = {}

    for line_no, line in enumerate(text.split("\n"), 1):
        stripped = _strip_comment(line).strip()
        if not stripped:
            continue
        original_text = line.strip()

        label_match = _LABEL_RE.match(stripped)
        if label_match:
            try:
                asm.label(label_match.group(1))
            except AssemblyError as e:
                e.source_line_no, e.source_text = line_no, original_text
                raise
            stripped = label_match.group(2).strip()
            if not stripped:
                continue

        statement = _parse_statement(stripped, line_no, original_text)
        handler = MNEMONICS.get(statement.mnemonic)
        if handler is None:
            raise statement.fail(f"Unknown mnemonic: {statement.mnemonic}", UnknownMnemonic)

        start = asm.address
        try:
            handler(asm, statement)
        except AssemblyError as e:
            if e.source_line_no is None:
                e.source_line_no, e.source_text = line_no, original_text
            raise
        for addr in range(start, asm.address):
            source_map[addr] = SourceLine(line_no, original_text)

    if not asm.output:
        raise ParseError("Program contains no instructions")

    try:
        words = asm.assemble()
    except AssemblyError as e:
        src = source_map.get(e.addr)
        if src is not None:
            e.source_line_no, e.source_text = src.source_line_no, src.source_text
        raise

    return ParsedProgram(words=words, labels=dict(asm.labels), source_map=source_map)


def _strip_comment(line: str) -> str:
    """Remove comment from line, leaving ';' inside character literals alone."""
    in_char = False
    for idx, ch in enumerate(line):
        if ch == "'":
            in_char = not in_char
        elif ch == ";" and not in_char:
            return line[:idx]
    return line


def _split_operands(text: str) -> list[str]:
    """Split on commas outside character literals."""
    operands = []
    start = 0
    in_char = False
    for idx, ch in enumerate(text):
        if ch == "'":
            in_char = not in_char
        elif ch == "," and not in_char:
            operands.append(text[start:idx])
            start = idx + 1
    operands.append(text[start:])
    return operands


def _parse_statement(text: str, line_no: int, original_text: str) -> _Statement:
    parts = text.split(None, 1)
    mnemonic = parts[0].lower()
    operands: list[str] = []
    if len(parts) > 1:
        operands = [op.strip() for op in _split_operands(parts[1])]
        if any(not op for op in operands):
            raise InvalidOperand(
                "Empty operand",
                source_line_no=line_no,
                source_text=original_text,
            )
    return _Statement(mnemonic, operands, line_no, original_text)


def parse_numeric_literal(text: str) -> Optional[int]:
    """Parse decimal, 0x hex, 0b binary or 'c' literals; None if not numeric."""
    literal = text.strip()
    if _DECIMAL_LITERAL_RE.fullmatch(literal):
        return int(literal, 10)
    if _HEX_LITERAL_RE.fullmatch(literal):
        return int(literal[2:], 16)
    if _BINARY_LITERAL_RE.fullmatch(literal):
        return int(literal[2:], 2)
    match = _CHAR_LITERAL_RE.fullmatch(literal)
    if match:
        return ord(match.group(1))
    return None
