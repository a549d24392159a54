"""Synacor VM instruction trace and disassembly

The trace is an observability side channel: one line per executed
instruction, written before the instruction takes effect.
"""

from typing import List, Sequence, TextIO, Tuple

from .errors import InvalidOpcodeError
from .memory import classify
from .opcodes import OPERAND_COUNTS, Opcode, decode

_ESCAPES = {
    ord('\n'): '\\n',
    ord('\t'): '\\t',
    ord('\r'): '\\r',
    ord('\\'): '\\\\',
    ord("'"): "\\'",
}


def printable(code: int) -> str:
    """Render a character code on a single line."""
    if code in _ESCAPES:
        return _ESCAPES[code]
    if 32 <= code < 127:
        return chr(code)
    return f'\\x{code:02x}'


def trace_operand(word: int) -> str:
    """Operand column for the trace: register name or right-aligned literal."""
    reg = classify(word)
    if reg is not None:
        return f'   r{reg}'
    return f'{word:5d}'


def trace_char_operand(word: int, registers: Sequence[int]) -> str:
    reg = classify(word)
    if reg is not None:
        return f'r{reg}->{printable(registers[reg])}'
    return printable(word)


def format_stack(top_first: Sequence[int]) -> str:
    return '[' + ' '.join(str(v) for v in top_first) + ']'


def format_trace_line(pc: int, registers: Sequence[int], opcode: Opcode,
                      operands: Sequence[int], stack_top_first: Sequence[int]) -> str:
    """Build one trace line (without newline)."""
    regs = ' '.join(f'r{i}:{value:5d}' for i, value in enumerate(registers))
    args = operands[:OPERAND_COUNTS[opcode]]
    if opcode == Opcode.OUT:
        rendered = [trace_char_operand(args[0], registers)]
    else:
        rendered = [trace_operand(w) for w in args]
    return f'pc:{pc:5d} {regs} {opcode.name:<4} {" ".join(rendered)} {format_stack(stack_top_first)}'


class TraceWriter:
    """Appends trace lines to a text stream."""

    def __init__(self, stream: TextIO):
        self.stream = stream
        self.lines_written = 0

    def record(self, cpu, opcode: Opcode, operands: Sequence[int]) -> None:
        line = format_trace_line(cpu.pc, cpu.registers, opcode, operands, cpu.stack.top_first())
        self.stream.write(line + '\n')
        self.lines_written += 1

    def flush(self) -> None:
        self.stream.flush()


def format_operand(word: int, as_char: bool = False) -> str:
    """Assembler-syntax operand: ``rN``, a char literal, or a number."""
    reg = classify(word)
    if reg is not None:
        return f'r{reg}'
    if as_char and (32 <= word < 127 or word in _ESCAPES):
        return f"'{printable(word)}'"
    return str(word)


def disassemble(words: Sequence[int], address: int) -> Tuple[str, int]:
    """Disassemble the instruction at ``address``.

    Returns:
        Tuple of (text, width in words). Words that are not opcodes render
        as ``DATA`` with width 1.
    """
    try:
        opcode = decode(words[address], address)
    except InvalidOpcodeError:
        return f'DATA {words[address]}', 1

    count = OPERAND_COUNTS[opcode]
    operands = list(words[address + 1:address + 1 + count])
    operands.extend([0] * (count - len(operands)))
    if not operands:
        return opcode.name, 1

    rendered = [format_operand(w, as_char=(opcode == Opcode.OUT)) for w in operands]
    return f'{opcode.name} {", ".join(rendered)}', 1 + count


def disassemble_range(words: Sequence[int], start: int, count: int) -> List[Tuple[int, str]]:
    """Disassemble ``count`` consecutive instructions from ``start``."""
    result = []
    address = start
    while len(result) < count and address < len(words):
        text, size = disassemble(words, address)
        result.append((address, text))
        address += size
    return result
