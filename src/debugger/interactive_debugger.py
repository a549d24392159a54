"""Synacor Interactive Debugger

Command-line front end for stepping through Synacor programs. Program output
is written to the console as it is produced; IN prompts for a line when no
input is queued.
"""

import cmd
import functools
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..synacor.console import InputFeeder, OutputPump
from ..synacor.cpu import CPUState
from ..synacor.errors import VMFault
from ..synacor.memory import NUM_REGISTERS
from ..synacor.opcodes import Opcode, decode
from ..synacor.trace import format_trace_line, printable
from ..synacor.virtual_machine import DEFAULT_WATCHDOG, VirtualMachine, create_vm

ASSEMBLY_SUFFIXES = ('.asm', '.s')

HELP_SECTIONS = [
    ("Program", [
        ("load <file>", "Load an image (.bin) or assembly source (.asm)"),
        ("reload", "Load the current file again, keeping breakpoints"),
        ("reset", "Restart from address 0 with memory as it is now"),
    ]),
    ("Execution", [
        ("run [n]", "Run until halt, breakpoint or n instructions"),
        ("continue", "Resume after a breakpoint"),
        ("step [n]", "Execute n instructions (default 1)"),
        ("input <text>", "Queue a line for IN"),
        ("trace [on|off]", "Print each instruction as it executes"),
    ]),
    ("Breakpoints", [
        ("break [addr]", "Set a breakpoint, or list them"),
        ("delete <addr>", "Remove a breakpoint"),
        ("clear", "Remove all breakpoints"),
    ]),
    ("Inspection", [
        ("status", "CPU state, pc and halt reason"),
        ("where", "Instruction at pc"),
        ("registers", "r0-r7"),
        ("stack", "Stack, top first"),
        ("memory [addr] [n]", "Dump n words"),
        ("program [addr] [n]", "Disassemble n instructions"),
        ("set reg <r> <v>", "Write a register"),
        ("set mem <a> <v>", "Write a memory word"),
    ]),
]


def requires_vm(method):
    """Skip the command with a message when nothing is loaded."""
    @functools.wraps(method)
    def wrapper(self, arg):
        if self.vm is None:
            self.console.print("[red]No program loaded[/red]")
            return None
        return method(self, arg)
    return wrapper


def parse_number(text: str) -> int:
    """Decimal or 0x-prefixed hexadecimal."""
    return int(text, 0) if text.lower().startswith('0x') else int(text)


def parse_numbers(arg: str, defaults: Sequence[int]) -> List[int]:
    """Fill positional numeric arguments over ``defaults``.

    Raises:
        ValueError: If an argument is not a number
    """
    values = list(defaults)
    for i, part in enumerate(arg.split()[:len(values)]):
        values[i] = parse_number(part)
    return values


class SynacorDebugger(cmd.Cmd):
    """Interactive debugger for Synacor programs."""

    intro = "Synacor Interactive Debugger. Type 'help' for commands."
    prompt = "(synacor) "

    def __init__(self, console: Optional[Console] = None, io_watchdog: float = DEFAULT_WATCHDOG):
        super().__init__()
        self.console = console or Console()
        self.io_watchdog = io_watchdog
        self.vm: Optional[VirtualMachine] = None
        self.program_file: Optional[str] = None
        self.pump: Optional[OutputPump] = None
        self.feeder: Optional[InputFeeder] = None
        self.tracing = False
        self.dump_window = [0, 16]

    def emptyline(self):
        return False

    def postloop(self):
        self._detach()

    # Program

    def do_load(self, arg: str) -> None:
        """load <file>: load a program image or assembly source"""
        path = arg.strip()
        if not path:
            self.console.print("[red]Usage: load <file>[/red]")
            return

        self._detach()
        vm = create_vm({'io_watchdog': self.io_watchdog})
        try:
            if Path(path).suffix.lower() in ASSEMBLY_SUFFIXES:
                count = vm.load_assembly(Path(path).read_text(encoding='utf-8'))
            else:
                count = vm.load_program(path)
        except Exception as e:
            self.vm = None
            self.console.print(f"[red]Error loading program: {e}[/red]")
            return

        self.vm = vm
        self.program_file = path
        self._attach()
        self.console.print(f"[green]Program loaded: {escape(path)} ({count} words)[/green]")
        self._show_status()

    def do_reload(self, arg: str) -> None:
        """reload: load the current file again, keeping breakpoints"""
        if not self.program_file:
            self.console.print("[red]No program loaded[/red]")
            return

        kept = set(self.vm.breakpoints) if self.vm else set()
        self.do_load(self.program_file)
        if self.vm:
            self.vm.breakpoints |= kept

    @requires_vm
    def do_reset(self, arg: str) -> None:
        """reset: restart at address 0; memory is not reloaded"""
        self._detach()
        self.vm.reset()
        self._attach()
        self.console.print("[green]CPU and I/O reset[/green]")
        self._show_status()

    # Execution

    @requires_vm
    def do_run(self, arg: str) -> None:
        """run [n]: run until halt, a breakpoint, or n instructions"""
        try:
            limit = parse_number(arg) if arg.strip() else None
        except ValueError:
            self.console.print("[red]Invalid instruction count[/red]")
            return

        self._execute(limit, honour_breakpoints=True)
        self._show_status()

    def do_continue(self, arg: str) -> None:
        """continue: resume after a breakpoint"""
        self.do_run("")

    do_c = do_continue

    @requires_vm
    def do_step(self, arg: str) -> None:
        """step [n]: execute n instructions, ignoring breakpoints"""
        try:
            (count,) = parse_numbers(arg, [1])
        except ValueError:
            self.console.print("[red]Invalid step count[/red]")
            return

        self._execute(count, honour_breakpoints=False)
        self._show_where()

    do_s = do_step

    @requires_vm
    def do_input(self, arg: str) -> None:
        """input <text>: queue a line for IN"""
        self.feeder.feed(arg + "\n")
        self.console.print(f"[green]{self.feeder.pending} character(s) queued[/green]")

    def do_trace(self, arg: str) -> None:
        """trace [on|off]: print each instruction before it executes"""
        choice = arg.strip().lower()
        if choice in ('on', 'off'):
            self.tracing = choice == 'on'
        elif choice:
            self.console.print("[red]Usage: trace on|off[/red]")
            return
        self.console.print(f"Tracing is {'on' if self.tracing else 'off'}")

    # Breakpoints

    @requires_vm
    def do_break(self, arg: str) -> None:
        """break [addr]: set a breakpoint, or list breakpoints"""
        if not arg.strip():
            self._show_breakpoints()
            return
        try:
            address = parse_number(arg.strip())
        except ValueError:
            self.console.print("[red]Invalid address[/red]")
            return

        self.vm.set_breakpoint(address)
        self.console.print(f"[green]Breakpoint at {address}[/green]")

    @requires_vm
    def do_delete(self, arg: str) -> None:
        """delete <addr>: remove a breakpoint"""
        try:
            address = parse_number(arg.strip())
        except ValueError:
            self.console.print("[red]Invalid address[/red]")
            return

        self.vm.clear_breakpoint(address)
        self.console.print(f"[yellow]Breakpoint at {address} removed[/yellow]")

    @requires_vm
    def do_clear(self, arg: str) -> None:
        """clear: remove all breakpoints"""
        self.vm.clear_all_breakpoints()
        self.console.print("[yellow]Breakpoints cleared[/yellow]")

    # Inspection

    @requires_vm
    def do_status(self, arg: str) -> None:
        """status: CPU state, pc and halt reason"""
        self._show_status()

    @requires_vm
    def do_where(self, arg: str) -> None:
        """where: show the instruction at pc"""
        self._show_where()

    @requires_vm
    def do_registers(self, arg: str) -> None:
        """registers: show r0-r7"""
        table = Table(title="Registers")
        for column, style in (("Reg", "cyan"), ("Value", "yellow"), ("Hex", "green"), ("Char", "blue")):
            table.add_column(column, style=style)

        for index in range(NUM_REGISTERS):
            value = self.vm.get_register(index)
            table.add_row(f"r{index}", str(value), f"0x{value:04X}", printable(value) if value < 128 else "")
        self.console.print(table)

    do_regs = do_registers

    @requires_vm
    def do_stack(self, arg: str) -> None:
        """stack: show the stack, top first"""
        table = Table(title=f"Stack ({len(self.vm.cpu.stack)})")
        table.add_column("Depth", style="cyan")
        table.add_column("Value", style="yellow")
        for depth, value in enumerate(self.vm.cpu.stack.top_first()):
            table.add_row(str(depth), str(value))
        self.console.print(table)

    @requires_vm
    def do_memory(self, arg: str) -> None:
        """memory [addr] [n]: dump n words (repeats the last window)"""
        try:
            self.dump_window = parse_numbers(arg, self.dump_window)
        except ValueError:
            self.console.print("[red]Invalid address or count[/red]")
            return

        start, count = self.dump_window
        table = Table(title=f"Memory {start}..{start + count - 1}")
        for column, style in (("Address", "cyan"), ("Value", "yellow"), ("Hex", "green"), ("Char", "blue")):
            table.add_column(column, style=style)

        for address, value in self.vm.get_memory_dump(start, count).items():
            char = chr(value) if 32 <= value < 127 else '.'
            table.add_row(str(address), str(value), f"0x{value:04X}", char)
        self.console.print(table)

    do_x = do_memory

    @requires_vm
    def do_program(self, arg: str) -> None:
        """program [addr] [n]: disassemble n instructions (default at pc)"""
        try:
            start, count = parse_numbers(arg, [self.vm.cpu.pc, 10])
        except ValueError:
            self.console.print("[red]Invalid address or count[/red]")
            return

        table = Table(title="Disassembly")
        table.add_column("", style="red")
        table.add_column("Address", style="cyan", justify="right")
        table.add_column("Instruction", style="green")
        for address, text in self.vm.get_program_dump(start, count):
            marker = ("=>" if address == self.vm.cpu.pc else "") + ("*" if address in self.vm.breakpoints else "")
            table.add_row(marker, str(address), text)
        self.console.print(table)

    @requires_vm
    def do_set(self, arg: str) -> None:
        """set reg <r> <value> | set mem <addr> <value>"""
        parts = arg.split()
        if len(parts) != 3 or parts[0] not in ('reg', 'mem'):
            self.console.print("[red]Usage: set reg <r> <value> | set mem <addr> <value>[/red]")
            return

        kind, target, value = parts
        try:
            if kind == 'reg':
                index = int(target.lstrip('rR'))
                self.vm.set_register(index, parse_number(value))
                self.console.print(f"[green]r{index} = {self.vm.get_register(index)}[/green]")
            else:
                address = parse_number(target)
                self.vm.write_memory(address, parse_number(value))
                self.console.print(f"[green][{address}] = {self.vm.read_memory(address)}[/green]")
        except (ValueError, VMFault) as e:
            self.console.print(f"[red]Error: {e}[/red]")

    # Session

    def do_quit(self, arg: str) -> bool:
        """quit: leave the debugger"""
        return True

    do_exit = do_quit

    def do_help(self, arg: str) -> None:
        """help [command]"""
        if arg:
            super().do_help(arg)
            return

        lines = ["[bold]Synacor Debugger Commands[/bold]"]
        for section, commands in HELP_SECTIONS:
            lines.append(f"\n[green]{section}[/green]")
            lines.extend(f"  {escape(usage):<20} {text}" for usage, text in commands)
        self.console.print(Panel("\n".join(lines), title="Help", border_style="blue"))

    # Helpers

    def _attach(self) -> None:
        """Connect output and queued input to the VM's current gateway."""
        self.pump = OutputPump(self.vm.output, self.console.file)
        self.feeder = InputFeeder(self.vm.input, self.vm.token)
        self.pump.start()
        self.feeder.start()

    def _detach(self) -> None:
        if self.vm is not None:
            self.vm.shutdown()
        if self.pump is not None:
            self.pump.join(timeout=1.0)
        self.pump = None
        self.feeder = None

    def _execute(self, limit: Optional[int], honour_breakpoints: bool) -> None:
        cpu = self.vm.cpu
        executed = 0

        try:
            while not cpu.halted and (limit is None or executed < limit):
                if honour_breakpoints and executed and cpu.pc in self.vm.breakpoints:
                    cpu.state = CPUState.BREAKPOINT
                    self.console.print(f"[yellow]Breakpoint hit at {cpu.pc}[/yellow]")
                    break

                self._before_instruction()
                self.vm.step()
                executed += 1
        except VMFault as e:
            self.console.print(f"[red]Execution error: {e}[/red]")
        except KeyboardInterrupt:
            self.console.print("[yellow]Interrupted[/yellow]")

        if cpu.halted and self.pump is not None:
            self.pump.join(timeout=1.0)
        self.console.file.flush()

    def _next_opcode(self) -> Optional[Opcode]:
        pc = self.vm.cpu.pc
        if pc >= self.vm.memory.size:
            return None
        try:
            return decode(self.vm.memory.words[pc])
        except VMFault:
            return None

    def _before_instruction(self) -> None:
        """Trace the next instruction and prompt for input ahead of IN."""
        opcode = self._next_opcode()
        if opcode is None:
            return

        cpu = self.vm.cpu
        if self.tracing:
            line = format_trace_line(cpu.pc, cpu.registers, opcode,
                                     self.vm.memory.fetch_operands(cpu.pc), cpu.stack.top_first())
            self.console.print(line, markup=False, highlight=False)

        if opcode == Opcode.IN and not self.feeder.pending:
            self.feeder.feed(self.console.input("[bold]input>[/bold] ") + "\n")

    def _show_status(self) -> None:
        cpu = self.vm.get_state()['cpu']
        lines = [
            f"[bold]State:[/bold] {cpu['state']}",
            f"[bold]PC:[/bold] {cpu['pc']}",
            f"[bold]Executed:[/bold] {cpu['instruction_count']}",
            f"[bold]Stack depth:[/bold] {len(cpu['stack'])}",
        ]
        if cpu['halt_reason']:
            lines.append(f"[bold]Reason:[/bold] {cpu['halt_reason']}")
        self.console.print(Panel("\n".join(lines), title="VM Status", border_style="green"))

    def _show_where(self) -> None:
        cpu = self.vm.cpu
        if cpu.halted:
            self.console.print(f"[yellow]{cpu.state.value} at {cpu.pc}: {cpu.halt_reason}[/yellow]")
            return
        for address, text in self.vm.get_program_dump(cpu.pc, 1):
            self.console.print(f"{address:5d}  {text}", markup=False, highlight=False)

    def _show_breakpoints(self) -> None:
        if not self.vm.breakpoints:
            self.console.print("[yellow]No breakpoints set[/yellow]")
            return
        listing = ", ".join(str(address) for address in sorted(self.vm.breakpoints))
        self.console.print(f"Breakpoints: {listing}")


def start_interactive_debugger(program_file: Optional[str] = None,
                               io_watchdog: float = DEFAULT_WATCHDOG) -> None:
    """Run a debugger session, optionally loading ``program_file`` first."""
    debugger = SynacorDebugger(io_watchdog=io_watchdog)
    if program_file:
        debugger.onecmd(f"load {program_file}")

    try:
        debugger.cmdloop()
    except KeyboardInterrupt:
        debugger.console.print()
    finally:
        debugger.postloop()
