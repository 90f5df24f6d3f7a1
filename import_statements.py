#!/usr/bin/env python3
"""Bank statement import tool for hledger journals.

This is the main entry point script for the ledger importer.
It wraps the package CLI for convenient execution.

Usage:
    python import_statements.py pipeline --provider ubs --currency chf

For full documentation and options:
    python import_statements.py --help
"""

import sys
from pathlib import Path

# Add src to path for development installs
src_path = Path(__file__).parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from ledger_importer.cli import main

if __name__ == "__main__":
    sys.exit(main())
