"""Main entry point for running numby_pkg as a module.

This allows running Numby with:
    python -m numby_pkg
    python -m numby_pkg --health-check
    python -m numby_pkg -e "3 km to miles"
"""

from __future__ import annotations

import sys

from .cli import main_entry

if __name__ == "__main__":
    sys.exit(main_entry())
