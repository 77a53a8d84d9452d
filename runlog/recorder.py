"""StreamRecorder: drains a child's stdout and stderr into one prefixed log stream."""

import logging
from threading import Thread

from runlog.errors import SinkWriteError
from runlog.models import RunContext
from runlog.records import (
    STREAM_ERR,
    STREAM_OUT,
    format_end_marker,
    format_output_line,
    format_start_marker,
    output_prefix,
)

logger = logging.getLogger(__name__)

# Longer lines are recorded as several OutputLines of at most this many bytes.
MAX_LINE_BYTES = 1024 * 1024


class StreamReader(Thread):
    """Reads one child stream line by line and appends each line to the sink."""

    def __init__(self, context: RunContext, stream, tag: str, max_line: int = MAX_LINE_BYTES):
        super().__init__(name=f"runlog-{tag}", daemon=True)
        self._context = context
        self._stream = stream
        self._tag = tag
        self._max_line = max_line
        self._prefix = output_prefix(context.pid, tag)
        self._lines = 0
        self._dropped = 0

    @property
    def lines(self) -> int:
        return self._lines

    @property
    def dropped(self) -> int:
        return self._dropped

    def run(self):
        sink = self._context.sink
        try:
            for line in iter(lambda: self._stream.readline(self._max_line), b""):
                self._lines += 1
                try:
                    sink.write(format_output_line(self._prefix, line))
                except SinkWriteError as e:
                    self._dropped += 1
                    if self._dropped == 1:
                        logger.warning("Dropping %s output: %s", self._tag, e)
                    else:
                        logger.debug("Dropped %s line: %s", self._tag, e)
        finally:
            self._stream.close()


class StreamRecorder:
    """Owns the recording of one child execution.

    ``child`` needs binary ``stdout``/``stderr`` streams and a blocking
    ``wait()`` returning the exit status; ``subprocess.Popen`` fits.
    """

    def __init__(self, context: RunContext, max_line: int = MAX_LINE_BYTES):
        self._context = context
        self._max_line = max_line
        self._readers: list[StreamReader] = []

    @property
    def dropped_lines(self) -> int:
        return sum(r.dropped for r in self._readers)

    def record(self, child) -> int:
        """Drain both streams, then return the exit status.

        The status is returned only after both readers have hit end of stream,
        so every output line is in the log before the caller writes the end
        marker.
        """
        self._readers = [
            StreamReader(self._context, child.stdout, STREAM_OUT, self._max_line),
            StreamReader(self._context, child.stderr, STREAM_ERR, self._max_line),
        ]
        for reader in self._readers:
            reader.start()
        for reader in self._readers:
            reader.join()

        exit_code = child.wait()
        logger.debug(
            "Child exited with %d (%d out, %d err lines, %d dropped)",
            exit_code, self._readers[0].lines, self._readers[1].lines,
            self.dropped_lines,
        )
        return exit_code


def write_start_marker(context: RunContext) -> bool:
    """Append the start marker. Returns False if the write failed."""
    record = format_start_marker(context.clock(), context.pid, context.command)
    return _write_marker(context, record)


def write_end_marker(context: RunContext, exit_code: int) -> bool:
    """Append the end marker. Returns False if the write failed."""
    record = format_end_marker(context.clock(), context.pid, exit_code)
    return _write_marker(context, record)


def _write_marker(context: RunContext, record: bytes) -> bool:
    try:
        context.sink.write(record)
    except SinkWriteError as e:
        logger.warning("Could not write marker: %s", e)
        return False
    return True


def record(context: RunContext, child) -> int:
    """Record ``child`` into ``context.sink`` and return its exit status."""
    return StreamRecorder(context).record(child)
