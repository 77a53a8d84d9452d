"""Configuration module: frozen dataclass loaded from YAML, env vars and CLI args."""

import logging
import os
import re
import stat
from dataclasses import dataclass, field

import yaml

from runlog.errors import ConfigError

logger = logging.getLogger(__name__)

MIN_LOG_SIZE = 512

_SIZE_RE = re.compile(r"^\s*(?P<number>\d+)\s*(?P<unit>[kKmMgG])?[bB]?\s*$")
_UNITS = {"": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}


@dataclass(frozen=True)
class Config:
    command: tuple[str, ...] = field(default_factory=tuple)
    log_file: str = "./runlog.log"
    max_log_size: int = 1024 * 1024  # 1 MiB


def parse_size(value) -> int:
    """Parse a byte count such as ``4096``, ``10K`` or ``2M``. Raises ConfigError."""
    if isinstance(value, int) and not isinstance(value, bool):
        size = value
    else:
        match = _SIZE_RE.match(str(value))
        if not match:
            raise ConfigError(f"Invalid size: {value!r}")
        unit = (match.group("unit") or "").lower()
        size = int(match.group("number")) * _UNITS[unit]

    if size < MIN_LOG_SIZE:
        raise ConfigError(f"Log size must be at least {MIN_LOG_SIZE} bytes, got {size}")
    return size


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def validate_log_path(path: str) -> None:
    """Check that ``path`` can be created or appended to. Raises ConfigError."""
    if not path:
        raise ConfigError("Log file path is empty")

    if os.path.exists(path):
        mode = os.stat(path).st_mode
        if not stat.S_ISREG(mode):
            raise ConfigError(f"Log path is not a regular file: {path}")
        if not os.access(path, os.W_OK):
            raise ConfigError(f"Log file is not writable: {path}")

    directory = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(directory):
        raise ConfigError(f"Log directory does not exist: {directory}")
    if not os.access(directory, os.W_OK | os.X_OK):
        raise ConfigError(f"Log directory is not writable: {directory}")


def _yaml_value(yaml_data: dict, key: str, default):
    value = yaml_data.get(key)
    return default if value is None else value


def load_config(cli_args, yaml_data: dict | None = None, env=None) -> Config:
    """Build Config from defaults <- YAML <- env vars <- CLI args (highest priority)."""
    if env is None:
        env = os.environ
    yaml_data = yaml_data or {}

    # An empty YAML key loads as None; treat it as unset.
    log_file = _yaml_value(yaml_data, "log_file", Config.log_file)
    max_size = _yaml_value(yaml_data, "max_log_size", Config.max_log_size)

    log_file = env.get("RUNLOG_FILE", log_file)
    max_size = env.get("RUNLOG_MAX_SIZE", max_size)

    if getattr(cli_args, "log_file", None):
        log_file = cli_args.log_file
    if getattr(cli_args, "max_size", None):
        max_size = cli_args.max_size

    command = list(getattr(cli_args, "command", None) or [])
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise ConfigError("No command given")

    config = Config(
        command=tuple(command),
        log_file=str(log_file),
        max_log_size=parse_size(max_size),
    )
    validate_log_path(config.log_file)
    return config
