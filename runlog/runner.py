"""Runs one command under the log: rotate, start marker, record, end marker."""

import logging
import signal
import subprocess
import threading
from contextlib import contextmanager

from runlog.config import Config
from runlog.errors import SinkWriteError
from runlog.models import RunContext
from runlog.records import STREAM_ERR, format_output_line, output_prefix
from runlog.recorder import StreamRecorder, write_end_marker, write_start_marker
from runlog.rotator import rotate
from runlog.sink import LogSink

logger = logging.getLogger(__name__)

EXIT_FATAL = 125
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127

FORWARDED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP")
    if hasattr(signal, name)
)


def normalize_exit_code(returncode: int) -> int:
    """Map a Popen return code to a shell-style exit status (signal N -> 128+N)."""
    if returncode < 0:
        return 128 - returncode
    return returncode


@contextmanager
def forward_signals(child):
    """Relay termination signals received by this process to ``child``."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _forward(sig, _frame):
        logger.info("Forwarding signal %d to child %d", sig, child.pid)
        try:
            child.send_signal(sig)
        except ProcessLookupError:
            pass

    previous = {}
    for sig in FORWARDED_SIGNALS:
        previous[sig] = signal.signal(sig, _forward)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def launch(command) -> subprocess.Popen:
    return subprocess.Popen(
        list(command),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def _record_launch_failure(context: RunContext, error: OSError) -> int:
    exit_code = EXIT_NOT_FOUND if isinstance(error, FileNotFoundError) else EXIT_NOT_EXECUTABLE
    logger.error("Cannot run %s: %s", context.command[0], error)
    message = f"runlog: cannot run {context.command[0]}: {error.strerror or error}"
    try:
        context.sink.write(
            format_output_line(output_prefix(context.pid, STREAM_ERR), message.encode("utf-8"))
        )
    except SinkWriteError as e:
        logger.warning("Could not record launch failure: %s", e)
    return exit_code


def run(context: RunContext, launcher=launch) -> int:
    """Write the start marker, run the command, record it, write the end marker."""
    write_start_marker(context)

    try:
        child = launcher(context.command)
    except OSError as e:
        exit_code = _record_launch_failure(context, e)
    else:
        with forward_signals(child):
            exit_code = normalize_exit_code(StreamRecorder(context).record(child))

    write_end_marker(context, exit_code)
    return exit_code


def execute(config: Config, launcher=launch) -> int:
    """Rotate the log, then run ``config.command`` under it.

    Rotation and sink errors propagate to the caller; they happen before the
    child is started.
    """
    rotate(config.max_log_size, config.log_file)

    with LogSink(config.log_file) as sink:
        context = RunContext(sink=sink, command=tuple(config.command))
        exit_code = run(context, launcher=launcher)
        if sink.failed_writes:
            logger.warning(
                "%d record(s) could not be written to %s", sink.failed_writes, sink.path
            )
    return exit_code
