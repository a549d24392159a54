"""Synacor Instruction Set

Opcode numbering and operand counts for the 22 instructions.
"""

from enum import IntEnum
from typing import Dict

from .errors import InvalidOpcodeError


class Opcode(IntEnum):
    """Instruction opcodes, numbered as they appear in memory."""
    HALT = 0
    SET = 1
    PUSH = 2
    POP = 3
    EQ = 4
    GT = 5
    JMP = 6
    JT = 7
    JF = 8
    ADD = 9
    MULT = 10
    MOD = 11
    AND = 12
    OR = 13
    NOT = 14
    RMEM = 15
    WMEM = 16
    CALL = 17
    RET = 18
    OUT = 19
    IN = 20
    NOOP = 21


OPERAND_COUNTS: Dict[Opcode, int] = {
    Opcode.HALT: 0,
    Opcode.SET: 2,
    Opcode.PUSH: 1,
    Opcode.POP: 1,
    Opcode.EQ: 3,
    Opcode.GT: 3,
    Opcode.JMP: 1,
    Opcode.JT: 2,
    Opcode.JF: 2,
    Opcode.ADD: 3,
    Opcode.MULT: 3,
    Opcode.MOD: 3,
    Opcode.AND: 3,
    Opcode.OR: 3,
    Opcode.NOT: 2,
    Opcode.RMEM: 2,
    Opcode.WMEM: 2,
    Opcode.CALL: 1,
    Opcode.RET: 0,
    Opcode.OUT: 1,
    Opcode.IN: 1,
    Opcode.NOOP: 0,
}


def decode(word: int, address: int = None) -> Opcode:
    """Convert a memory word to an Opcode.

    Raises:
        InvalidOpcodeError: If the word is not one of the 22 opcodes
    """
    try:
        return Opcode(word)
    except ValueError:
        raise InvalidOpcodeError(word, address) from None


def operand_count(opcode: int) -> int:
    """Number of operand words that follow the given opcode."""
    return OPERAND_COUNTS[decode(opcode)]


def width(opcode: int) -> int:
    """Instruction size in words, opcode included."""
    return 1 + operand_count(opcode)


def lookup_mnemonic(name: str) -> Opcode:
    """Resolve a mnemonic (case-insensitive) to its Opcode."""
    try:
        return Opcode[name.upper()]
    except KeyError:
        raise ValueError(f"Unknown mnemonic: {name}") from None
