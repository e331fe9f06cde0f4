"""
Entry point for running buyback_engine as a module.

Usage:
    python -m buyback_engine scenarios
    python -m buyback_engine simulate --hours 24
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
