"""Log record formatting and parsing: start markers, output lines, end markers."""

import re
from dataclasses import dataclass
from datetime import datetime

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

STREAM_OUT = "out"
STREAM_ERR = "err"
STREAM_TAGS = (STREAM_OUT, STREAM_ERR)

# [2025-01-15 12:00:00 UTC] 4242 start: ...
START_MARKER_RE = re.compile(
    rb"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?: [^\]\r\n]*)?\] \d+ start: "
)

_START_RE = re.compile(
    r"^\[(?P<timestamp>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?: [^\]]*)?)\] "
    r"(?P<pid>\d+) start: (?P<command>.*)$"
)
_END_RE = re.compile(
    r"^\[(?P<timestamp>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?: [^\]]*)?)\] "
    r"(?P<pid>\d+) exited with code (?P<code>-?\d+)$"
)
_OUTPUT_RE = re.compile(r"^(?P<pid>\d+) (?P<stream>out|err): (?P<content>.*)$")


@dataclass(frozen=True)
class StartMarker:
    timestamp: str
    pid: int
    command: str


@dataclass(frozen=True)
class OutputLine:
    pid: int
    stream: str      # "out" or "err"
    content: str


@dataclass(frozen=True)
class EndMarker:
    timestamp: str
    pid: int
    exit_code: int


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as ``YYYY-MM-DD HH:MM:SS TZ``.

    Naive datetimes are treated as local time. When the platform has no
    abbreviation for the zone, the numeric UTC offset is used instead.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone()
    zone = moment.strftime("%Z") or moment.strftime("%z")
    return f"{moment.strftime(TIMESTAMP_FORMAT)} {zone}"


def format_start_marker(moment: datetime, pid: int, command) -> bytes:
    argv = " ".join(str(arg) for arg in command)
    line = f"[{format_timestamp(moment)}] {pid} start: {argv}\n"
    return line.encode("utf-8", errors="replace")


def format_end_marker(moment: datetime, pid: int, exit_code: int) -> bytes:
    line = f"[{format_timestamp(moment)}] {pid} exited with code {exit_code}\n"
    return line.encode("utf-8")


def output_prefix(pid: int, stream: str) -> bytes:
    if stream not in STREAM_TAGS:
        raise ValueError(f"Unknown stream tag: {stream!r}")
    return f"{pid} {stream}: ".encode("ascii")


def format_output_line(prefix: bytes, line: bytes) -> bytes:
    """Prefix a raw line read from a child stream.

    The content is kept byte for byte. An unterminated final fragment gets a
    newline so the next record starts on its own line.
    """
    if not line.endswith(b"\n"):
        line += b"\n"
    return prefix + line


def is_start_marker(line: bytes) -> bool:
    return START_MARKER_RE.match(line) is not None


def parse_record(line: str):
    """Parse one log line. Returns a record, or None if the line has no known shape."""
    line = line.rstrip("\r\n")

    match = _START_RE.match(line)
    if match:
        return StartMarker(
            timestamp=match.group("timestamp"),
            pid=int(match.group("pid")),
            command=match.group("command"),
        )

    match = _END_RE.match(line)
    if match:
        return EndMarker(
            timestamp=match.group("timestamp"),
            pid=int(match.group("pid")),
            exit_code=int(match.group("code")),
        )

    match = _OUTPUT_RE.match(line)
    if match:
        return OutputLine(
            pid=int(match.group("pid")),
            stream=match.group("stream"),
            content=match.group("content"),
        )

    return None
