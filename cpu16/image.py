"""Program image formats.

``.bin``: raw little-endian 16-bit words, the layout the serial loader
streams into program memory. ``.hex``: one hexadecimal word per line.
"""

import struct
from pathlib import Path
from typing import Iterable, Union

from .errors import ImageFormatError

MAX_WORDS = 1 << 16


def words_to_bytes(words: Iterable[int]) -> bytes:
    words = list(words)
    for addr, word in enumerate(words):
        if not 0 <= word <= 0xFFFF:
            raise ImageFormatError(f"Word at {addr:04x} is not 16-bit: {word}", addr=addr)
    return struct.pack(f"<{len(words)}H", *words)


def words_from_bytes(data: bytes) -> list[int]:
    if len(data) % 2:
        raise ImageFormatError(f"Image length {len(data)} is not a whole number of words")
    count = len(data) // 2
    if count > MAX_WORDS:
        raise ImageFormatError(f"Image too large: {count} words")
    return list(struct.unpack(f"<{count}H", data))


def parse_hex(text: str) -> list[int]:
    """One hex word per line; blank lines and ``//`` or ``#`` comments ignored."""
    words = []
    for line_no, line in enumerate(text.splitlines(), 1):
        stripped = line.split("//", 1)[0].split("#", 1)[0].strip()
        if not stripped:
            continue
        try:
            word = int(stripped, 16)
        except ValueError:
            raise ImageFormatError(
                f"Invalid hex word: {stripped}",
                addr=len(words),
                source_line_no=line_no,
                source_text=line.strip(),
            ) from None
        if not 0 <= word <= 0xFFFF:
            raise ImageFormatError(
                f"Hex word out of range: {stripped}",
                addr=len(words),
                source_line_no=line_no,
                source_text=line.strip(),
            )
        words.append(word)
    return words


def format_hex(words: Iterable[int]) -> str:
    return "".join(f"{word:04x}\n" for word in words)


def load_image(path: Union[str, Path]) -> list[int]:
    path = Path(path)
    if path.suffix == ".hex":
        return parse_hex(path.read_text(encoding="utf-8"))
    return words_from_bytes(path.read_bytes())


def save_image(path: Union[str, Path], words: Iterable[int]) -> None:
    path = Path(path)
    if path.suffix == ".hex":
        path.write_text(format_hex(words), encoding="utf-8")
    else:
        path.write_bytes(words_to_bytes(words))


def rom_module(words: Iterable[int], name: str = "ROM") -> str:
    """Combinational ROM as a SystemVerilog case statement."""
    lines = [
        f"module {name} (",
        "    input  logic [15:0] i_addr,",
        "    output logic [15:0] o_data",
        ");",
        "    always_comb begin",
        "        case (i_addr)",
    ]
    for addr, word in enumerate(words):
        lines.append(f"            16'd{addr}: o_data = 16'h{word:04X};")
    lines += [
        "            default: o_data = 16'h0000;",
        "        endcase",
        "    end",
        "endmodule",
    ]
    return "\n".join(lines) + "\n"
