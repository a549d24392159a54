#!/usr/bin/env python3
"""Synacor Debugger Runner Script

Usage:
    python synacor_debug.py [program.bin | program.asm] [--io-watchdog 5m]
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from src.debugger.main import main

if __name__ == '__main__':
    sys.exit(main())
