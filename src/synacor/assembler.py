"""Synacor Assembler

Assembles mnemonic source into program words.

Syntax:
    label:  ADD r0, r1, 4      ; comment
            OUT 'A'            // comment
            DATA 1, 0x10, 'c', "text", label
"""

from typing import Dict, List, Tuple, Union
from pathlib import Path
import re
import struct

from .memory import MODULUS, NUM_REGISTERS, REGISTER_BASE
from .opcodes import OPERAND_COUNTS, Opcode

_LABEL = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*):(.*)$')
_TOKEN = re.compile(r"'(?:\\.|[^'\\])'|\"(?:\\.|[^\"\\])*\"|[^,\s]+")
_REGISTER = re.compile(r'^[rR]([0-9]+)$')
_IDENT = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

_CHAR_ESCAPES = {
    'n': '\n',
    't': '\t',
    'r': '\r',
    '0': '\0',
    '\\': '\\',
    "'": "'",
    '"': '"',
}

DATA_DIRECTIVES = ('DATA', '.WORD')


class AssemblerError(Exception):
    """Exception raised for assembly errors."""
    pass


def _unescape(body: str) -> str:
    result = []
    chars = iter(body)
    for ch in chars:
        if ch == '\\':
            esc = next(chars, None)
            if esc not in _CHAR_ESCAPES:
                raise AssemblerError(f"Invalid escape: \\{esc}")
            result.append(_CHAR_ESCAPES[esc])
        else:
            result.append(ch)
    return ''.join(result)


class Assembler:
    """Two-pass assembler producing a list of words."""

    def __init__(self):
        self.labels: Dict[str, int] = {}
        self.words: List[int] = []

    def assemble_file(self, filename: Union[str, Path]) -> List[int]:
        with open(filename, 'r', encoding='utf-8') as f:
            content = f.read()

        return self.assemble(content)

    def assemble(self, source: str) -> List[int]:
        """Assemble source text.

        Args:
            source: Assembly code as string

        Returns:
            Program words, ready to load at address 0
        """
        self.labels.clear()
        self.words.clear()

        statements: List[Tuple[int, str, List[str]]] = []

        # First pass: collect labels and instruction sizes
        address = 0
        for line_num, line in enumerate(source.split('\n'), 1):
            try:
                text = self._preprocess_line(line)
                match = _LABEL.match(text)
                while match:
                    name = match.group(1)
                    if name in self.labels:
                        raise AssemblerError(f"Duplicate label: {name}")
                    self.labels[name] = address
                    text = match.group(2).strip()
                    match = _LABEL.match(text)

                if not text:
                    continue

                tokens = _TOKEN.findall(text)
                mnemonic, operands = tokens[0].upper(), tokens[1:]
                statements.append((line_num, mnemonic, operands))
                address += self._size(mnemonic, operands)
            except AssemblerError as e:
                raise AssemblerError(f"Error on line {line_num}: {e}") from None

        # Second pass: emit words
        for line_num, mnemonic, operands in statements:
            try:
                self.words.extend(self._emit(mnemonic, operands))
            except AssemblerError as e:
                raise AssemblerError(f"Error on line {line_num}: {e}") from None

        if len(self.words) > MODULUS:
            raise AssemblerError(f"Program too large: {len(self.words)} words")

        return self.words.copy()

    def _preprocess_line(self, line: str) -> str:
        """Remove comments and surrounding whitespace."""
        quote = None
        i = 0
        while i < len(line):
            ch = line[i]
            if quote:
                if ch == '\\':
                    i += 1
                elif ch == quote:
                    quote = None
            elif ch in '\'"':
                quote = ch
            elif ch == ';' or line.startswith('//', i):
                return line[:i].strip()
            i += 1
        return line.strip()

    def _size(self, mnemonic: str, operands: List[str]) -> int:
        if mnemonic in DATA_DIRECTIVES:
            return sum(len(_unescape(op[1:-1])) if op.startswith('"') else 1 for op in operands)

        try:
            opcode = Opcode[mnemonic]
        except KeyError:
            raise AssemblerError(f"Unknown instruction: {mnemonic}") from None

        expected = OPERAND_COUNTS[opcode]
        if len(operands) != expected:
            raise AssemblerError(f"{mnemonic} requires {expected} operand(s), got {len(operands)}")
        return 1 + expected

    def _emit(self, mnemonic: str, operands: List[str]) -> List[int]:
        if mnemonic in DATA_DIRECTIVES:
            words = []
            for op in operands:
                if op.startswith('"'):
                    words.extend(ord(ch) for ch in _unescape(op[1:-1]))
                else:
                    words.append(self._parse_operand(op, limit=0x10000))
            return words

        return [Opcode[mnemonic].value] + [self._parse_operand(op) for op in operands]

    def _parse_operand(self, operand: str, limit: int = MODULUS) -> int:
        """Parse a single operand.

        Rules:
        - r0..r7 = register
        - 123, 0x7B = literal
        - 'c' = character code
        - label = label address
        """
        reg = _REGISTER.match(operand)
        if reg:
            index = int(reg.group(1))
            if index >= NUM_REGISTERS:
                raise AssemblerError(f"Invalid register: {operand}")
            return REGISTER_BASE + index

        if operand.startswith("'"):
            text = _unescape(operand[1:-1])
            if len(text) != 1:
                raise AssemblerError(f"Invalid character literal: {operand}")
            return ord(text)

        try:
            value = int(operand, 0)
        except ValueError:
            value = None

        if value is not None:
            if not 0 <= value < limit:
                raise AssemblerError(f"Literal out of range: {operand}")
            return value

        if _IDENT.match(operand):
            if operand not in self.labels:
                raise AssemblerError(f"Undefined label: {operand}")
            return self.labels[operand]

        raise AssemblerError(f"Invalid operand: {operand}")


def assemble(source: str) -> List[int]:
    """Convenience function to assemble a string."""
    return Assembler().assemble(source)


def assemble_file(filename: Union[str, Path]) -> List[int]:
    return Assembler().assemble_file(filename)


def to_image(words: List[int]) -> bytes:
    """Pack words as a little-endian program image."""
    return struct.pack(f'<{len(words)}H', *words)
