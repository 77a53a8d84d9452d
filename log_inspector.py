#!/usr/bin/env python3
"""CLI log inspector: list the runs recorded in a runlog file."""

import sys

from runlog.cli import inspect_main

if __name__ == "__main__":
    sys.exit(inspect_main())
