"""
livelog/__main__.py — Enables `python -m livelog` invocation.
"""

import sys
from livelog.cli import main

if __name__ == "__main__":
    sys.exit(main())
