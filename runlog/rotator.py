"""Size-triggered rotation that trims the oldest runs without splitting one.

The log is shrunk in place before a new run starts: the newest ~70% of the
threshold is kept, the head is cut back to the first start marker in that
window, and the result replaces the original through an atomic rename.
"""

import logging
import os
import shutil
import tempfile

from runlog.errors import RotationError
from runlog.records import is_start_marker

logger = logging.getLogger(__name__)

TARGET_NUMERATOR = 7
TARGET_DENOMINATOR = 10


def target_size(max_size: int) -> int:
    return max_size * TARGET_NUMERATOR // TARGET_DENOMINATOR


def trim_window(window: bytes) -> bytes:
    """Cut ``window`` back to its first complete run.

    The bytes before the first newline are a truncated line and are dropped,
    then every line up to the first start marker. When the window holds no
    start marker it is returned unchanged.
    """
    newline = window.find(b"\n")
    if newline == -1:
        return window

    pos = newline + 1
    while pos < len(window):
        end = window.find(b"\n", pos)
        line_end = len(window) if end == -1 else end + 1
        if is_start_marker(window[pos:line_end]):
            return window[pos:]
        pos = line_end

    return window


def _read_window(path: str, offset: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read()


def _replace(path: str, data: bytes) -> None:
    """Write ``data`` next to ``path`` and rename it over the original."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(
        dir=directory, prefix="." + os.path.basename(path) + ".", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except Exception:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def rotate(max_size: int, path: str) -> bool:
    """Shrink ``path`` if it is larger than ``max_size`` bytes.

    Returns True if the file was rewritten. Raises PermissionError when the
    log exists but is not writable, and RotationError when reading or
    replacing it fails; in both cases the original file is left untouched.
    """
    if not os.path.exists(path):
        return False

    if not os.access(path, os.W_OK):
        raise PermissionError(f"Log file is not writable: {path}")

    try:
        size = os.path.getsize(path)
    except OSError as e:
        raise RotationError(f"Cannot stat {path}: {e}") from e

    if size <= max_size:
        return False

    keep = target_size(max_size)
    skip = size - keep

    try:
        window = _read_window(path, skip)
    except OSError as e:
        raise RotationError(f"Cannot read {path}: {e}") from e

    trimmed = trim_window(window)
    if len(trimmed) == len(window):
        logger.warning(
            "No run boundary found in the last %d bytes of %s, keeping them as-is",
            len(window), path,
        )

    try:
        _replace(path, trimmed)
    except OSError as e:
        raise RotationError(f"Cannot rewrite {path}: {e}") from e

    logger.info("Rotated %s: %d -> %d bytes", path, size, len(trimmed))
    return True
