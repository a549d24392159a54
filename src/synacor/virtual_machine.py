"""Synacor Virtual Machine

Main virtual machine that coordinates CPU, memory, and the I/O gateway.
"""

from typing import Any, BinaryIO, Dict, List, Optional, TextIO, Union
from pathlib import Path
import argparse
import logging
import os
import re
import signal
import sys

from rich.console import Console
from rich.logging import RichHandler

from .assembler import assemble
from .console import ConsoleBridge
from .cpu import CPU, CPUState
from .errors import LoadError, VMFault
from .io_gateway import CancellationToken, IOGateway
from .memory import Memory
from .trace import TraceWriter, disassemble_range

logger = logging.getLogger(__name__)

DEFAULT_WATCHDOG = 5.0
CLI_WATCHDOG = '5m'

_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(h|ms|us|µs|ns|m|s)')
_DURATION_UNITS = {
    'h': 3600.0,
    'm': 60.0,
    's': 1.0,
    'ms': 1e-3,
    'us': 1e-6,
    'µs': 1e-6,
    'ns': 1e-9,
}


def parse_duration(text: str) -> float:
    """Parse ``5m``, ``1m30s``, ``250ms`` or bare seconds into seconds."""
    text = text.strip()
    try:
        value = float(text)
    except ValueError:
        value = None

    if value is None:
        pos = 0
        value = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            value += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text) or not text:
            raise ValueError(f"Invalid duration: {text!r}")

    if value <= 0:
        raise ValueError(f"Duration must be positive: {text!r}")
    return value


class VirtualMachine:
    """Synacor Virtual Machine - coordinates all components."""

    def __init__(self,
                 io_watchdog: Optional[float] = DEFAULT_WATCHDOG,
                 trace: Optional[TextIO] = None,
                 cancel_token: Optional[CancellationToken] = None):
        """Initialize virtual machine.

        Args:
            io_watchdog: Seconds an IN/OUT may wait for its counterpart
            trace: Optional text stream receiving one line per instruction
            cancel_token: Optional external token; cancelling it halts the VM
        """
        self.io_watchdog = io_watchdog
        self.parent_token = cancel_token
        self.trace = TraceWriter(trace) if trace is not None else None

        self.memory = Memory()
        self.gateway = self._new_gateway()
        self.cpu = CPU(self.memory, self.gateway, self.trace)

        # Debugging
        self.breakpoints: set[int] = set()
        self.program_source: Optional[str] = None

    def _new_gateway(self) -> IOGateway:
        token = self.parent_token.child() if self.parent_token else CancellationToken()
        return IOGateway(token, self.io_watchdog)

    @property
    def token(self) -> CancellationToken:
        return self.gateway.token

    @property
    def output(self):
        """Output channel; iterate it to receive characters until halt."""
        return self.gateway.output

    @property
    def input(self):
        return self.gateway.input

    def load_program(self, filename: Union[str, Path]) -> int:
        """Load a program image file.

        Raises:
            LoadError: If the image cannot be read
        """
        count = self.memory.load_file(filename)
        self.program_source = str(filename)
        self.cpu.pc = 0
        return count

    def load_image(self, source: Union[bytes, bytearray, BinaryIO]) -> int:
        count = self.memory.load_image(source)
        self.cpu.pc = 0
        return count

    def load_assembly(self, assembly_code: str) -> int:
        """Assemble source text and load it at address 0."""
        words = assemble(assembly_code)
        count = self.memory.load_words(words)
        self.cpu.pc = 0
        return count

    def reset(self) -> None:
        """Reset CPU state and I/O channels. Memory keeps the loaded program."""
        self.cancel()
        self.gateway.token.detach()
        self.gateway = self._new_gateway()
        self.cpu.gateway = self.gateway
        self.cpu.reset()

    def cancel(self) -> None:
        """Cancel outstanding I/O; the VM halts at its next step."""
        self.gateway.token.cancel()

    def step(self) -> bool:
        """Execute one instruction.

        Returns:
            True if instruction was executed, False if VM is halted
        """
        return self.cpu.step()

    def run(self, max_cycles: Optional[int] = None) -> CPUState:
        """Run until halted, cancelled, a breakpoint, or max cycles.

        Faults propagate to the caller after the VM has shut down.
        """
        logger.info("Starting execution at pc=%d", self.cpu.pc)
        cycles = 0
        first = True

        try:
            while not self.cpu.halted:
                if max_cycles and cycles >= max_cycles:
                    break

                # Resume past a breakpoint we are already sitting on
                if not first and self.cpu.pc in self.breakpoints:
                    self.cpu.state = CPUState.BREAKPOINT
                    break
                first = False

                if not self.cpu.step():
                    break
                cycles += 1
        except VMFault as e:
            logger.error("VM fault at pc=%d: %s", self.cpu.pc, e)
            raise
        finally:
            if self.trace:
                self.trace.flush()

        if self.cpu.halted:
            logger.info("VM %s: %s", self.cpu.state.value, self.cpu.halt_reason)
        return self.cpu.state

    def set_breakpoint(self, address: int) -> None:
        self.breakpoints.add(address)

    def clear_breakpoint(self, address: int) -> None:
        self.breakpoints.discard(address)

    def clear_all_breakpoints(self) -> None:
        self.breakpoints.clear()

    def get_state(self) -> Dict[str, Any]:
        """Get complete VM state for debugging."""
        return {
            'vm': {
                'program': self.program_source,
                'io_watchdog': self.io_watchdog,
                'breakpoints': sorted(self.breakpoints),
                'cancelled': self.token.cancelled,
            },
            'cpu': self.cpu.get_state(),
            'memory': self.memory.get_memory_map(),
        }

    def get_register(self, reg_id: int) -> int:
        return self.cpu.get_register(reg_id)

    def set_register(self, reg_id: int, value: int) -> None:
        self.cpu.set_register(reg_id, value)

    def read_memory(self, address: int) -> int:
        return self.memory.read(address)

    def write_memory(self, address: int, value: int) -> None:
        self.memory.write(address, value)

    def get_memory_dump(self, start: int = 0, count: int = 16) -> Dict[int, int]:
        return self.memory.dump(start, count)

    def get_program_dump(self, start: int = 0, count: int = 10) -> List[tuple]:
        """Disassembled (address, text) pairs for debugging."""
        return disassemble_range(self.memory.words, start, count)

    def shutdown(self) -> None:
        """Shutdown the virtual machine."""
        self.cancel()
        self.gateway.close_output()
        self.gateway.token.detach()
        if self.trace:
            self.trace.flush()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()


def create_vm(config: Optional[Dict[str, Any]] = None) -> VirtualMachine:
    """Create a virtual machine with optional configuration.

    Args:
        config: Optional configuration dictionary

    Returns:
        Configured VirtualMachine instance
    """
    if config is None:
        config = {}

    return VirtualMachine(
        io_watchdog=config.get('io_watchdog', DEFAULT_WATCHDOG),
        trace=config.get('trace'),
        cancel_token=config.get('cancel_token'),
    )


def configure_logging(level: str) -> None:
    """Send log records to stderr; stdout carries program output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Synacor Challenge Virtual Machine')
    parser.add_argument('--challenge-file', '-c', type=Path, default=Path('challenge.bin'),
                        help='Program image to execute')
    parser.add_argument('--debug-log', '-d', type=Path,
                        help='Record every executed instruction to this file')
    parser.add_argument('--io-watchdog', type=parse_duration, default=parse_duration(CLI_WATCHDOG),
                        help='Timeout for I/O operations, e.g. 30s or 5m (default: %s)' % CLI_WATCHDOG)
    parser.add_argument('--log-level', default=os.environ.get('SYNACOR_LOG', 'WARNING'),
                        help='Logging level (default WARNING)')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for VM when run as script."""
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.log_level)

    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    debug_log = None

    try:
        if args.debug_log:
            debug_log = open(args.debug_log, 'w', encoding='utf-8')

        vm = create_vm({
            'io_watchdog': args.io_watchdog,
            'trace': debug_log,
            'cancel_token': token,
        })
        vm.load_program(args.challenge_file)

        bridge = ConsoleBridge(vm.gateway)
        bridge.start()

        try:
            vm.run()
        finally:
            vm.shutdown()
            bridge.join(timeout=1.0)

    except LoadError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("Cannot open debug log: %s", e)
        return 1
    except VMFault as e:
        logger.error("Fatal: %s", e)
        return 2
    finally:
        signal.signal(signal.SIGINT, previous)
        if debug_log:
            debug_log.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
