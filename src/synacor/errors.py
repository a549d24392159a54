"""Synacor VM Faults

Fatal conditions raised by the virtual machine. None of these are retried;
callers log them and exit.
"""


class VMFault(Exception):
    """Base exception for fatal virtual machine errors."""
    pass


class LoadError(VMFault):
    """Exception for program images that cannot be read into memory."""
    pass


class StackUnderflowError(VMFault):
    """Exception for POP on an empty stack."""
    pass


class InvalidOpcodeError(VMFault):
    """Exception for an opcode outside the instruction set."""

    def __init__(self, opcode: int, address: int = None):
        self.opcode = opcode
        self.address = address
        where = f" at {address}" if address is not None else ""
        super().__init__(f"Unknown opcode {opcode}{where}")


class IOWatchdogTimeout(VMFault):
    """Exception for a character rendezvous that never found a counterpart."""

    def __init__(self, direction: str, timeout: float):
        self.direction = direction
        self.timeout = timeout
        super().__init__(f"Blocked on {direction} after {timeout:g}s")


class ModuloByZeroError(VMFault):
    """Exception for MOD with a zero divisor."""
    pass


class InvalidOperandError(VMFault):
    """Exception for operand words above the register range."""
    pass


class MemoryAccessError(VMFault):
    """Exception for indirect memory access outside the address space."""
    pass
