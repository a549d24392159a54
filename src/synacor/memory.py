"""Synacor Virtual Machine Memory

Handles the 15-bit word-addressed memory, register address classification,
and loading program images.
"""

from typing import BinaryIO, Dict, Iterable, List, Optional, Union
from pathlib import Path
import logging
import struct

from .errors import LoadError, MemoryAccessError

logger = logging.getLogger(__name__)

# Address space
MEMORY_SIZE = 1 << 15
WORD_MASK = 0xFFFF
VALUE_MASK = 0x7FFF
MODULUS = 32768

# Registers occupy the eight words above the address space
NUM_REGISTERS = 8
REGISTER_BASE = MEMORY_SIZE
REGISTER_MASK = 0b111
REGISTER_INDICATOR = 0b1000000000000

_WORD = struct.Struct('<H')
_CHUNK_WORDS = 4096


def classify(word: int) -> Optional[int]:
    """Classify a word as a register reference.

    Args:
        word: Raw 16-bit operand word

    Returns:
        Register index 0-7 if the word names a register, otherwise None
    """
    if (word >> 3) == REGISTER_INDICATOR:
        return word & REGISTER_MASK
    return None


def is_register(word: int) -> bool:
    return classify(word) is not None


def register_address(index: int) -> int:
    """Operand word that names register ``index``."""
    if not 0 <= index < NUM_REGISTERS:
        raise ValueError(f"Invalid register: {index}")
    return REGISTER_BASE + index


class Memory:
    """Synacor Virtual Machine memory unit."""

    def __init__(self, size: int = MEMORY_SIZE):
        self.size = size
        self.words: List[int] = [0] * size
        self.loaded_words = 0

    def read(self, address: int) -> int:
        """Read a word from memory.

        Args:
            address: Memory address to read from

        Returns:
            Word stored at the address
        """
        if not 0 <= address < self.size:
            raise MemoryAccessError(f"Invalid read address: {address}")
        return self.words[address]

    def write(self, address: int, value: int) -> None:
        """Write a word to memory.

        Args:
            address: Memory address to write to
            value: 16-bit value to store
        """
        if not 0 <= address < self.size:
            raise MemoryAccessError(f"Invalid write address: {address}")
        self.words[address] = value & WORD_MASK

    def fetch_operands(self, pc: int, count: int = 3) -> List[int]:
        """Fetch the raw words following the opcode at ``pc``.

        Words past the end of memory read as zero.
        """
        operands = self.words[pc + 1:pc + 1 + count]
        operands.extend([0] * (count - len(operands)))
        return operands

    def load_words(self, words: Iterable[int]) -> int:
        """Write words sequentially from address 0 into cleared memory.

        Returns:
            Number of words loaded
        """
        self.clear()
        count = 0
        for count, word in enumerate(words, 1):
            if count > self.size:
                raise LoadError(f"Program too large: more than {self.size} words")
            self.words[count - 1] = word & WORD_MASK
        self.loaded_words = count
        return count

    def load_image(self, source: Union[bytes, bytearray, BinaryIO]) -> int:
        """Load a program image of little-endian 16-bit words.

        End of stream before memory is full is expected. A dangling odd byte,
        an image larger than memory, or a failing read raises LoadError.

        Args:
            source: Raw image bytes or a binary stream

        Returns:
            Number of words loaded
        """
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
            if len(data) % 2:
                raise LoadError(f"Program image has a dangling byte at offset {len(data) - 1}")
            return self.load_words(w for (w,) in _WORD.iter_unpack(data))

        return self.load_words(self._iter_stream(source))

    def load_file(self, path: Union[str, Path]) -> int:
        """Load a program image from a file."""
        try:
            with open(path, 'rb') as f:
                count = self.load_image(f)
        except OSError as e:
            raise LoadError(f"Failed to read program '{path}': {e}") from e

        logger.info("Loaded %d words from %s", count, path)
        return count

    def _iter_stream(self, stream: BinaryIO):
        offset = 0
        while True:
            try:
                chunk = stream.read(_CHUNK_WORDS * _WORD.size)
            except OSError as e:
                raise LoadError(f"Failed to read program image: {e}") from e

            if not chunk:
                return

            # read() may return short; keep the odd byte for the next chunk
            while len(chunk) % 2:
                try:
                    more = stream.read(1)
                except OSError as e:
                    raise LoadError(f"Failed to read program image: {e}") from e
                if not more:
                    raise LoadError(f"Program image has a dangling byte at offset {offset + len(chunk) - 1}")
                chunk += more

            offset += len(chunk)
            for (word,) in _WORD.iter_unpack(chunk):
                yield word

    def dump(self, start: int = 0, count: int = 16) -> Dict[int, int]:
        """Dump memory contents for debugging.

        Args:
            start: Starting address
            count: Number of words to dump

        Returns:
            Dictionary mapping addresses to values
        """
        return {
            addr: self.words[addr]
            for addr in range(max(0, start), min(start + count, self.size))
        }

    def get_memory_map(self) -> Dict[str, int]:
        return {
            'size': self.size,
            'loaded_words': self.loaded_words,
        }

    def clear(self) -> None:
        """Clear all memory contents."""
        self.words = [0] * self.size
        self.loaded_words = 0
