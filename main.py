#!/usr/bin/env python3
"""runlog: run a command and record its output in a size-bounded log."""

import sys

from runlog.cli import main

if __name__ == "__main__":
    sys.exit(main())
