"""Thread-safe append handle on the log file."""

import logging
import os
import threading

from runlog.errors import SinkWriteError

logger = logging.getLogger(__name__)


class LogSink:
    """Append-only byte writer shared by every producer of a run.

    Each ``write`` call is one whole record and is serialized by a lock, so
    records from concurrent readers never interleave mid-line.
    """

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()
        self._file = open(path, "ab", buffering=0)
        self._failed_writes = 0

    @property
    def path(self) -> str:
        return self._path

    @property
    def failed_writes(self) -> int:
        return self._failed_writes

    def write(self, data: bytes) -> None:
        """Append ``data``. Raises SinkWriteError if the write fails; the record is lost."""
        with self._lock:
            if self._file is None:
                self._failed_writes += 1
                raise SinkWriteError(f"Log sink {self._path} is closed")
            try:
                view = memoryview(data)
                while view:
                    written = self._file.write(view)
                    view = view[written:]
            except OSError as e:
                self._failed_writes += 1
                raise SinkWriteError(f"Write to {self._path} failed: {e}") from e

    def close(self):
        """Close the file handle. Safe to call more than once."""
        with self._lock:
            if self._file is not None:
                try:
                    os.fsync(self._file.fileno())
                except OSError as e:
                    logger.debug("fsync of %s failed: %s", self._path, e)
                try:
                    self._file.close()
                except OSError as e:
                    logger.warning("Closing %s failed: %s", self._path, e)
                self._file = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
