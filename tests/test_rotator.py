"""Tests for the rotator module."""

import os
import shutil
import stat
import tempfile
import unittest
from datetime import datetime, timezone
from unittest import mock

from runlog.errors import RotationError
from runlog.inspector import iter_runs
from runlog.records import (
    format_end_marker,
    format_output_line,
    format_start_marker,
    is_start_marker,
    output_prefix,
)
from runlog.rotator import rotate, target_size, trim_window

CLOCK = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
LOG_FILENAME = "run.log"


def run_block(pid: int, lines: int = 8, width: int = 40, exit_code: int = 0) -> bytes:
    prefix = output_prefix(pid, "out")
    body = b"".join(
        format_output_line(prefix, f"line {i:03d} ".encode() + b"x" * width + b"\n")
        for i in range(lines)
    )
    return (
        format_start_marker(CLOCK, pid, ["job", str(pid)])
        + body
        + format_end_marker(CLOCK, pid, exit_code)
    )


def _skip_if_root():
    return unittest.skipIf(
        hasattr(os, "geteuid") and os.geteuid() == 0,
        "root ignores file permission bits",
    )


class TestTrimWindow(unittest.TestCase):
    def test_drops_partial_head_and_lines_before_first_start(self):
        window = b"ial line\n7 out: old\n7 err: older\n" + run_block(8) + run_block(9)
        self.assertEqual(trim_window(window), run_block(8) + run_block(9))

    def test_first_line_is_always_dropped(self):
        # The window may begin exactly on a marker; the first line is still treated as partial.
        window = run_block(1) + run_block(2)
        self.assertEqual(trim_window(window), run_block(2))

    def test_no_newline_returns_window(self):
        self.assertEqual(trim_window(b"no newline at all"), b"no newline at all")

    def test_no_start_marker_returns_window(self):
        window = b"ut: a\n5 out: b\n5 err: c\n"
        self.assertEqual(trim_window(window), window)

    def test_start_marker_as_last_unterminated_line(self):
        tail = b"[2025-01-15 12:00:00 UTC] 3 start: sleep 10"
        window = b"x\n3 out: y\n" + tail
        self.assertEqual(trim_window(window), tail)

    def test_empty(self):
        self.assertEqual(trim_window(b""), b"")


class TestTargetSize(unittest.TestCase):
    def test_seventy_percent_integer(self):
        self.assertEqual(target_size(10240), 7168)
        self.assertEqual(target_size(1000), 700)
        self.assertEqual(target_size(513), 359)


class TestRotate(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, LOG_FILENAME)

    def tearDown(self):
        os.chmod(self.tmpdir, 0o755)
        shutil.rmtree(self.tmpdir)

    def _write(self, data: bytes):
        with open(self.path, "wb") as f:
            f.write(data)

    def _read(self) -> bytes:
        with open(self.path, "rb") as f:
            return f.read()

    def test_missing_file_is_noop(self):
        self.assertFalse(rotate(1024, self.path))
        self.assertFalse(os.path.exists(self.path))

    def test_under_threshold_unchanged(self):
        data = run_block(1) + run_block(2)
        self._write(data)
        self.assertFalse(rotate(len(data) + 1, self.path))
        self.assertEqual(self._read(), data)

    def test_exactly_at_threshold_unchanged(self):
        data = run_block(1) + run_block(2)
        self._write(data)
        self.assertFalse(rotate(len(data), self.path))
        self.assertEqual(self._read(), data)

    def test_rotated_file_starts_with_start_marker(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)

        self.assertTrue(rotate(2048, self.path))

        result = self._read()
        first_line = result.split(b"\n", 1)[0] + b"\n"
        self.assertTrue(is_start_marker(first_line))

    def test_rotation_size_target(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)

        rotate(2048, self.path)

        size = os.path.getsize(self.path)
        self.assertLess(size, len(data))
        self.assertLessEqual(size, target_size(2048))
        self.assertGreater(size, 0)

    def test_keeps_only_whole_runs_and_newest_run(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)

        rotate(2048, self.path)

        result = self._read()
        self.assertTrue(result.endswith(run_block(129)))
        runs = list(iter_runs(result.decode().splitlines(keepends=True)))
        self.assertGreater(len(runs), 0)
        for run in runs:
            self.assertEqual(run.out_lines, 8)
            self.assertEqual(run.exit_code, 0)
        self.assertEqual([r.pid for r in runs], list(range(runs[0].pid, 130)))

    def test_in_progress_last_run_is_kept(self):
        unfinished = format_start_marker(CLOCK, 200, ["server"]) + b"200 out: listening\n"
        data = b"".join(run_block(pid) for pid in range(100, 120)) + unfinished
        self._write(data)

        rotate(1024, self.path)

        self.assertTrue(self._read().endswith(unfinished))

    def test_no_start_marker_keeps_tail_window(self):
        data = b"".join(b"5 out: " + f"{i:05d}".encode() + b"\n" for i in range(400))
        self._write(data)

        self.assertTrue(rotate(1024, self.path))

        self.assertEqual(self._read(), data[-target_size(1024):])

    def test_rotation_twice_is_stable(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)

        rotate(2048, self.path)
        once = self._read()
        self.assertFalse(rotate(2048, self.path))
        self.assertEqual(self._read(), once)

    def test_preserves_file_mode(self):
        self._write(b"".join(run_block(pid) for pid in range(100, 130)))
        os.chmod(self.path, 0o640)

        rotate(2048, self.path)

        self.assertEqual(stat.S_IMODE(os.stat(self.path).st_mode), 0o640)

    def test_replace_failure_raises_and_leaves_original(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)

        with mock.patch("runlog.rotator.os.replace", side_effect=OSError(28, "No space left on device")):
            with self.assertRaises(RotationError):
                rotate(2048, self.path)

        self.assertEqual(self._read(), data)
        self.assertEqual(os.listdir(self.tmpdir), [LOG_FILENAME])

    @_skip_if_root()
    def test_unwritable_file_raises_permission_error(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)
        os.chmod(self.path, 0o444)

        with self.assertRaises(PermissionError):
            rotate(2048, self.path)
        self.assertEqual(self._read(), data)

    @_skip_if_root()
    def test_unwritable_directory_raises_rotation_error(self):
        data = b"".join(run_block(pid) for pid in range(100, 130))
        self._write(data)
        os.chmod(self.tmpdir, 0o555)

        with self.assertRaises(RotationError):
            rotate(2048, self.path)
        self.assertEqual(self._read(), data)


if __name__ == "__main__":
    unittest.main()
