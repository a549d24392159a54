"""Synacor Virtual Machine CPU

Registers, program counter, stack and the instruction dispatch loop.
"""

from typing import Any, Callable, Dict, Optional
from enum import Enum
import logging

from .errors import InvalidOperandError, ModuloByZeroError, VMFault
from .io_gateway import IOGateway
from .memory import MODULUS, NUM_REGISTERS, VALUE_MASK, Memory, classify
from .opcodes import OPERAND_COUNTS, Opcode, decode
from .stack import Stack

logger = logging.getLogger(__name__)


class CPUState(Enum):
    """CPU execution states."""
    READY = "ready"
    RUNNING = "running"
    HALTED = "halted"
    CANCELLED = "cancelled"
    ERROR = "error"
    BREAKPOINT = "breakpoint"


TERMINAL_STATES = (CPUState.HALTED, CPUState.CANCELLED, CPUState.ERROR)


# Handler per opcode. Each takes the three raw words after the opcode and
# returns the pc advance, or 0 when it set pc itself.
MICROCODE: Dict[Opcode, str] = {
    Opcode.HALT: '_exec_halt',
    Opcode.SET: '_exec_set',
    Opcode.PUSH: '_exec_push',
    Opcode.POP: '_exec_pop',
    Opcode.EQ: '_exec_eq',
    Opcode.GT: '_exec_gt',
    Opcode.JMP: '_exec_jmp',
    Opcode.JT: '_exec_jt',
    Opcode.JF: '_exec_jf',
    Opcode.ADD: '_exec_add',
    Opcode.MULT: '_exec_mult',
    Opcode.MOD: '_exec_mod',
    Opcode.AND: '_exec_and',
    Opcode.OR: '_exec_or',
    Opcode.NOT: '_exec_not',
    Opcode.RMEM: '_exec_rmem',
    Opcode.WMEM: '_exec_wmem',
    Opcode.CALL: '_exec_call',
    Opcode.RET: '_exec_ret',
    Opcode.OUT: '_exec_out',
    Opcode.IN: '_exec_in',
    Opcode.NOOP: '_exec_noop',
}

_missing = set(Opcode) - set(MICROCODE)
if _missing:
    raise RuntimeError(f"Opcodes without microcode: {sorted(op.name for op in _missing)}")


def _advance(opcode: Opcode) -> int:
    return 1 + OPERAND_COUNTS[opcode]


class CPU:
    """Synacor Virtual Machine CPU."""

    def __init__(self, memory: Memory, gateway: Optional[IOGateway] = None, trace=None):
        """Initialize CPU with memory and I/O references.

        Args:
            memory: Memory unit
            gateway: Character I/O gateway (a private one is created if omitted)
            trace: Optional TraceWriter recording every executed instruction
        """
        self.memory = memory
        self.gateway = gateway or IOGateway()
        self.trace = trace

        self.registers = [0] * NUM_REGISTERS
        self.stack = Stack()
        self.pc = 0

        self.state = CPUState.READY
        self.halt_reason: Optional[str] = None
        self.instruction_count = 0

        self.instruction_handlers: Dict[Opcode, Callable[[int, int, int], int]] = {
            opcode: getattr(self, name) for opcode, name in MICROCODE.items()
        }

    @property
    def halted(self) -> bool:
        return self.state in TERMINAL_STATES

    def reset(self) -> None:
        """Reset CPU to initial state. Memory is left untouched."""
        self.registers = [0] * NUM_REGISTERS
        self.stack.clear()
        self.pc = 0
        self.state = CPUState.READY
        self.halt_reason = None
        self.instruction_count = 0

    def get_register(self, index: int) -> int:
        if not 0 <= index < NUM_REGISTERS:
            raise InvalidOperandError(f"Invalid register: {index}")
        return self.registers[index]

    def set_register(self, index: int, value: int) -> None:
        if not 0 <= index < NUM_REGISTERS:
            raise InvalidOperandError(f"Invalid register: {index}")
        self.registers[index] = value & 0xFFFF

    # Address resolution

    def resolve_value(self, word: int) -> int:
        """Value of a register operand, or the literal itself."""
        reg = classify(word)
        if reg is not None:
            return self.registers[reg]
        if word >= MODULUS:
            raise InvalidOperandError(f"Invalid operand: {word}")
        return word

    def write_to(self, address: int, value: int) -> None:
        """Store into the register named by ``address``, or into memory."""
        reg = classify(address)
        if reg is not None:
            self.registers[reg] = value
            return
        if address >= MODULUS:
            raise InvalidOperandError(f"Invalid destination: {address}")
        self.memory.write(address, value)

    # Execution

    def shutdown(self, state: CPUState = CPUState.HALTED, reason: str = None) -> None:
        """Stop the CPU, close output and cancel outstanding I/O. Idempotent."""
        if self.halted:
            return

        self.state = state
        self.halt_reason = reason
        self.gateway.close_output()
        self.gateway.token.cancel()
        logger.debug("CPU %s at pc=%d: %s", state.value, self.pc, reason)

    def step(self) -> bool:
        """Execute one instruction.

        Returns:
            True if execution should continue, False if halted
        """
        if self.halted:
            return False

        if self.gateway.token.cancelled:
            self.shutdown(CPUState.CANCELLED, "Cancelled")
            return False

        self.state = CPUState.RUNNING
        pc = self.pc

        try:
            opcode = decode(self.memory.read(pc), pc)
            a, b, c = self.memory.fetch_operands(pc)

            if self.trace is not None:
                self.trace.record(self, opcode, (a, b, c))

            self.pc += self.instruction_handlers[opcode](a, b, c)
            self.instruction_count += 1
        except VMFault as e:
            self.shutdown(CPUState.ERROR, str(e))
            raise

        return not self.halted

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Run until halted, cancelled or max cycles reached."""
        cycles = 0
        while not self.halted:
            if max_cycles and cycles >= max_cycles:
                break

            if not self.step():
                break

            cycles += 1

    # Instruction implementations

    def _exec_halt(self, a: int, b: int, c: int) -> int:
        """HALT - Stop execution and close output"""
        self.shutdown(CPUState.HALTED, "HALT instruction executed")
        return 0

    def _exec_set(self, a: int, b: int, c: int) -> int:
        """SET a, b - Set register <a> to the value of <b>"""
        self.write_to(a, self.resolve_value(b))
        return _advance(Opcode.SET)

    def _exec_push(self, a: int, b: int, c: int) -> int:
        self.stack.push(self.resolve_value(a))
        return _advance(Opcode.PUSH)

    def _exec_pop(self, a: int, b: int, c: int) -> int:
        """POP a - Remove the top of the stack into <a>; empty stack is fatal"""
        self.write_to(a, self.stack.pop())
        return _advance(Opcode.POP)

    def _exec_eq(self, a: int, b: int, c: int) -> int:
        result = 1 if self.resolve_value(b) == self.resolve_value(c) else 0
        self.write_to(a, result)
        return _advance(Opcode.EQ)

    def _exec_gt(self, a: int, b: int, c: int) -> int:
        result = 1 if self.resolve_value(b) > self.resolve_value(c) else 0
        self.write_to(a, result)
        return _advance(Opcode.GT)

    def _exec_jmp(self, a: int, b: int, c: int) -> int:
        self.pc = self.resolve_value(a)
        return 0

    def _exec_jt(self, a: int, b: int, c: int) -> int:
        """JT a, b - Jump to <b> if <a> is nonzero"""
        if self.resolve_value(a) != 0:
            self.pc = self.resolve_value(b)
            return 0
        return _advance(Opcode.JT)

    def _exec_jf(self, a: int, b: int, c: int) -> int:
        """JF a, b - Jump to <b> if <a> is zero"""
        if self.resolve_value(a) == 0:
            self.pc = self.resolve_value(b)
            return 0
        return _advance(Opcode.JF)

    def _exec_add(self, a: int, b: int, c: int) -> int:
        """ADD a, b, c - <a> = (<b> + <c>) mod 32768"""
        self.write_to(a, (self.resolve_value(b) + self.resolve_value(c)) % MODULUS)
        return _advance(Opcode.ADD)

    def _exec_mult(self, a: int, b: int, c: int) -> int:
        """MULT a, b, c - <a> = (<b> * <c>) mod 32768"""
        self.write_to(a, (self.resolve_value(b) * self.resolve_value(c)) % MODULUS)
        return _advance(Opcode.MULT)

    def _exec_mod(self, a: int, b: int, c: int) -> int:
        """MOD a, b, c - <a> = <b> mod <c>; a zero divisor is fatal"""
        divisor = self.resolve_value(c)
        if divisor == 0:
            raise ModuloByZeroError(f"MOD by zero at {self.pc}")
        self.write_to(a, self.resolve_value(b) % divisor)
        return _advance(Opcode.MOD)

    def _exec_and(self, a: int, b: int, c: int) -> int:
        self.write_to(a, self.resolve_value(b) & self.resolve_value(c))
        return _advance(Opcode.AND)

    def _exec_or(self, a: int, b: int, c: int) -> int:
        self.write_to(a, self.resolve_value(b) | self.resolve_value(c))
        return _advance(Opcode.OR)

    def _exec_not(self, a: int, b: int, c: int) -> int:
        """NOT a, b - 15-bit bitwise inverse of <b> into <a>"""
        self.write_to(a, (~self.resolve_value(b)) & VALUE_MASK)
        return _advance(Opcode.NOT)

    def _exec_rmem(self, a: int, b: int, c: int) -> int:
        """RMEM a, b - Read memory at address <b> into <a>

        When <b> is a register its value is the address read from.
        """
        address = self.resolve_value(b)
        self.write_to(a, self.memory.read(address))
        return _advance(Opcode.RMEM)

    def _exec_wmem(self, a: int, b: int, c: int) -> int:
        """WMEM a, b - Write <b> into memory at address <a>

        When <a> is a register its value is the address written; WMEM never
        targets a register.
        """
        self.memory.write(self.resolve_value(a), self.resolve_value(b))
        return _advance(Opcode.WMEM)

    def _exec_call(self, a: int, b: int, c: int) -> int:
        """CALL a - Push the address after this instruction and jump to <a>"""
        target = self.resolve_value(a)
        self.stack.push(self.pc + _advance(Opcode.CALL))
        self.pc = target
        return 0

    def _exec_ret(self, a: int, b: int, c: int) -> int:
        """RET - Pop the stack and jump to it; empty stack halts"""
        if not self.stack:
            self.shutdown(CPUState.HALTED, "RET with empty stack")
            return 0

        self.pc = self.stack.pop()
        return 0

    def _exec_out(self, a: int, b: int, c: int) -> int:
        """OUT a - Send character <a> to the output gateway"""
        if not self.gateway.send(self.resolve_value(a)):
            self.shutdown(CPUState.CANCELLED, "Cancelled during OUT")
            return 0
        return _advance(Opcode.OUT)

    def _exec_in(self, a: int, b: int, c: int) -> int:
        """IN a - Store the next input character in <a>"""
        char_code = self.gateway.receive()
        if char_code is None:
            if self.gateway.input.closed:
                self.shutdown(CPUState.HALTED, "Input closed")
            else:
                self.shutdown(CPUState.CANCELLED, "Cancelled during IN")
            return 0

        self.write_to(a, char_code)
        return _advance(Opcode.IN)

    def _exec_noop(self, a: int, b: int, c: int) -> int:
        return _advance(Opcode.NOOP)

    def get_state(self) -> Dict[str, Any]:
        """Get CPU state for debugging."""
        return {
            'registers': self.registers.copy(),
            'pc': self.pc,
            'stack': self.stack.top_first(),
            'state': self.state.value,
            'halt_reason': self.halt_reason,
            'instruction_count': self.instruction_count,
        }
