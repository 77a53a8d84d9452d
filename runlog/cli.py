"""Command line entry points: ``runlog`` wraps a command, ``runlog-inspect`` reads its log."""

import argparse
import json
import logging
import os
import sys

from runlog.config import MIN_LOG_SIZE, load_config, load_yaml_config
from runlog.errors import RunlogError
from runlog.inspector import format_run, read_runs
from runlog.runner import EXIT_FATAL, execute

logger = logging.getLogger(__name__)

LOG_FORMAT_EPILOG = """\
log format:
  [YYYY-MM-DD HH:MM:SS TZ] <pid> start: <command>
  <pid> out: <stdout line>
  <pid> err: <stderr line>
  [YYYY-MM-DD HH:MM:SS TZ] <pid> exited with code <code>

When the log grows past MAX_SIZE it is trimmed to about 70% of MAX_SIZE
before the next run, dropping the oldest complete runs.
"""


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s [runlog] %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runlog",
        description="Run a command and append its tagged stdout/stderr to a size-bounded log.",
        epilog=LOG_FORMAT_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-f", "--log-file",
        help="Log file to append to (env RUNLOG_FILE, default: ./runlog.log)",
    )
    parser.add_argument(
        "-s", "--max-size",
        help=f"Rotate when the log exceeds this many bytes; K/M/G suffixes accepted, "
             f"minimum {MIN_LOG_SIZE} (env RUNLOG_MAX_SIZE, default: 1M)",
    )
    parser.add_argument(
        "-c", "--config", default=os.environ.get("RUNLOG_CONFIG"),
        help="YAML file with log_file / max_log_size settings (env RUNLOG_CONFIG)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Report rotation and run details on stderr",
    )
    parser.add_argument(
        "command", nargs=argparse.REMAINDER,
        help="Command to run, optionally preceded by --",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_cli_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        config = load_config(args, load_yaml_config(args.config))
    except RunlogError as e:
        logger.error("%s", e)
        return EXIT_FATAL

    logger.info(
        "Config: log_file=%s, max_log_size=%d, command=%s",
        config.log_file, config.max_log_size, " ".join(config.command),
    )

    try:
        return execute(config)
    except (RunlogError, OSError) as e:
        logger.error("%s", e)
        return EXIT_FATAL


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_inspect_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runlog-inspect",
        description="List the runs recorded in a runlog file",
    )
    parser.add_argument("log_file", help="Log file written by runlog")
    parser.add_argument("--last", type=_positive_int, metavar="N", help="Show only the newest N runs")
    parser.add_argument("--failed", action="store_true", help="Show only runs with a non-zero exit code")
    parser.add_argument("--json", action="store_true", help="Print one JSON object per run")
    return parser


def inspect_main(argv: list[str] | None = None) -> int:
    args = build_inspect_parser().parse_args(argv)

    try:
        runs = read_runs(args.log_file)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.failed:
        runs = [r for r in runs if r.failed]
    if args.last is not None:
        runs = runs[-args.last:]

    if not runs:
        if not args.json:
            print("No runs found.")
        return 0

    for run in runs:
        if args.json:
            print(json.dumps(run.to_dict(), sort_keys=True))
        else:
            print(format_run(run))
    return 0
