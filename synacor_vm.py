#!/usr/bin/env python3
"""Synacor Virtual Machine Runner Script

This script properly sets up the Python path and runs the virtual machine.

Usage:
    python synacor_vm.py [--challenge-file challenge.bin] [--debug-log trace.log] [--io-watchdog 5m]

Flags:
    --challenge-file, -c  Program image to execute (default: challenge.bin)
    --debug-log, -d       Record every executed instruction to a file
    --io-watchdog         Timeout for I/O operations (default: 5m)
    --log-level           Logging level (default: WARNING)
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from src.synacor.virtual_machine import main

if __name__ == '__main__':
    sys.exit(main())
