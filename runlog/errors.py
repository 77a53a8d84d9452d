"""Exception types raised by runlog."""


class RunlogError(Exception):
    """Base class for runlog failures."""


class ConfigError(RunlogError):
    """Invalid command, size or log path. Raised before anything runs."""


class RotationError(RunlogError):
    """The log file could not be rewritten during rotation."""


class SinkWriteError(RunlogError):
    """A single append to the log file failed."""
