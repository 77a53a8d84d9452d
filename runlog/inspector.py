"""Inspector logic: group a run log into runs and summarize them."""

import os
from dataclasses import asdict, dataclass
from typing import Iterable, Iterator

from runlog.records import EndMarker, OutputLine, StartMarker, parse_record


@dataclass
class Run:
    pid: int
    started_at: str
    command: str
    out_lines: int = 0
    err_lines: int = 0
    ended_at: str | None = None
    exit_code: int | None = None

    @property
    def finished(self) -> bool:
        return self.exit_code is not None

    @property
    def failed(self) -> bool:
        return self.finished and self.exit_code != 0

    def to_dict(self) -> dict:
        return asdict(self)


def iter_runs(lines: Iterable[str]) -> Iterator[Run]:
    """Yield one Run per start marker, in file order.

    Lines before the first start marker, and lines of unknown shape, are
    skipped. Output and end records are attributed to the current run.
    """
    current = None
    for line in lines:
        record = parse_record(line)
        if isinstance(record, StartMarker):
            if current is not None:
                yield current
            current = Run(pid=record.pid, started_at=record.timestamp, command=record.command)
        elif current is None:
            continue
        elif isinstance(record, OutputLine):
            if record.stream == "out":
                current.out_lines += 1
            else:
                current.err_lines += 1
        elif isinstance(record, EndMarker):
            current.ended_at = record.timestamp
            current.exit_code = record.exit_code

    if current is not None:
        yield current


def read_runs(path: str) -> list[Run]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return list(iter_runs(f))


def format_run(run: Run) -> str:
    status = f"exit {run.exit_code}" if run.finished else "unfinished"
    return (
        f"[{run.started_at}] pid={run.pid} {status} "
        f"out={run.out_lines} err={run.err_lines}  {run.command}"
    )
