"""Memory-mapped collaborators of the core: ROM, RAM and the tile display port."""

import logging
from typing import Iterable, Optional

from .errors import ImageFormatError

logger = logging.getLogger(__name__)

WORD_MASK = 0xFFFF
ADDRESS_SPACE = 1 << 16

DISPLAY_ADDRESS = 0xFFFF
DISPLAY_SELECT_BIT = 0x8000
DISPLAY_INDEX_MASK = 0x1FFF

TILE_COLUMNS = 640 >> 3
TILE_ROWS = 480 >> 3


class Rom:
    """Program memory. Addresses outside the image read as 0 (HALT)."""

    def __init__(self, words: Iterable[int] = ()):
        self._data: list[int] = [w & WORD_MASK for w in words]
        if len(self._data) > ADDRESS_SPACE:
            raise ImageFormatError(f"Program image too large: {len(self._data)} words")

    def __len__(self) -> int:
        return len(self._data)

    def read(self, addr: int) -> int:
        addr &= WORD_MASK
        if addr < len(self._data):
            return self._data[addr]
        return 0

    def snapshot(self) -> list[int]:
        return self._data.copy()


class Ram:
    """Linear word-addressed memory covering the 16-bit address space."""

    def __init__(
        self,
        size: int = ADDRESS_SPACE,
        initial_values: Optional[dict[int, int]] = None,
    ):
        self.size = size
        self._data: list[int] = [0] * size

        if initial_values:
            for addr, val in initial_values.items():
                self.write(addr, val)

    def read(self, addr: int) -> int:
        return self._data[(addr & WORD_MASK) % self.size]

    def write(self, addr: int, value: int) -> None:
        self._data[(addr & WORD_MASK) % self.size] = value & WORD_MASK

    def get_watched(self, addresses: list[int]) -> dict[str, int]:
        """Get values at watched addresses as string-keyed dict."""
        return {str(addr): self.read(addr) for addr in addresses}

    def snapshot(self) -> list[int]:
        """Return a copy of the entire memory."""
        return self._data.copy()


class TileTable:
    """Name table of the display, written through the select/store protocol."""

    def __init__(self, columns: int = TILE_COLUMNS, rows: int = TILE_ROWS):
        self.columns = columns
        self.rows = rows
        self._data: list[int] = [0] * (columns * rows)
        self.index = 0

    def __len__(self) -> int:
        return len(self._data)

    def __getitem__(self, index: int) -> int:
        return self._data[index]

    def select(self, index: int) -> None:
        self.index = index & DISPLAY_INDEX_MASK

    def store(self, value: int) -> None:
        """Write at the selected index, then move to the next one."""
        if self.index < len(self._data):
            self._data[self.index] = value & WORD_MASK
        else:
            logger.debug("Tile write past end of table dropped: index %d", self.index)
        self.index = (self.index + 1) & DISPLAY_INDEX_MASK

    def text(self, length: Optional[int] = None) -> str:
        """Render entries as characters, stopping at the first zero entry."""
        chars = []
        for value in self._data[:length]:
            if value == 0:
                break
            chars.append(chr(value & 0xFF))
        return "".join(chars)

    def rows_text(self) -> list[str]:
        """Whole screen, one string per tile row, blanks for empty tiles."""
        return [
            "".join(chr(v & 0xFF) if v else " " for v in self._data[r * self.columns:(r + 1) * self.columns])
            for r in range(self.rows)
        ]

    def snapshot(self) -> list[int]:
        return self._data.copy()


class DataBus:
    """Routes data-memory traffic: the display address goes to the tile table."""

    def __init__(self, ram: Optional[Ram] = None, tiles: Optional[TileTable] = None):
        self.ram = ram if ram is not None else Ram()
        self.tiles = tiles if tiles is not None else TileTable()

    def read(self, addr: int) -> int:
        addr &= WORD_MASK
        if addr == DISPLAY_ADDRESS:
            return 0
        return self.ram.read(addr)

    def write(self, addr: int, value: int) -> None:
        addr &= WORD_MASK
        value &= WORD_MASK
        if addr != DISPLAY_ADDRESS:
            self.ram.write(addr, value)
            return
        logger.debug("Display write %04x", value)
        if value & DISPLAY_SELECT_BIT:
            self.tiles.select(value & DISPLAY_INDEX_MASK)
        else:
            self.tiles.store(value)
