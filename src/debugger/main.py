"""Synacor Debugger Main Entry Point

Command-line interface for the Synacor debugger.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from ..synacor.virtual_machine import CLI_WATCHDOG, configure_logging, parse_duration
from .interactive_debugger import start_interactive_debugger

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Step through Synacor programs interactively",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  synacor-debug challenge.bin             # Debug a program image
  synacor-debug program.asm               # Assemble and debug a source file
"""
    )
    parser.add_argument("program", nargs="?", type=Path,
                        help="Program image, or assembly source ending in .asm")
    parser.add_argument("--io-watchdog", type=parse_duration, default=parse_duration(CLI_WATCHDOG),
                        help=f"How long IN/OUT may block (default: {CLI_WATCHDOG})")
    parser.add_argument("--log-level", default=os.environ.get("SYNACOR_LOG", "WARNING"),
                        help="Logging level (default WARNING)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the debugger."""
    args = build_arg_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        start_interactive_debugger(str(args.program) if args.program else None, args.io_watchdog)
    except Exception as e:
        logger.error("Debugger failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
