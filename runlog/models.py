"""Per-invocation run context."""

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from runlog.sink import LogSink


def _local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class RunContext:
    """Everything a run needs, built once and passed explicitly.

    ``pid`` is the wrapper's own process id: it is known before the child is
    launched, so the start marker and a launch failure carry the same id.
    """
    sink: LogSink
    command: tuple[str, ...]
    pid: int = field(default_factory=os.getpid)
    clock: Callable[[], datetime] = _local_now
