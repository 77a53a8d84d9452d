"""runlog: run a command and keep its output in a size-bounded log."""

__version__ = "0.1.0"
