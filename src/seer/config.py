"""Configuration parsing from ``.seer.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from seer.runners.go_test import RunnerConfig
from seer.watchers.file_watcher import FileWatchConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = ".seer.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name, {})
    if not isinstance(section, dict):
        return {}
    return section


def _str_list(value: Any, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(item) for item in value]


def _str_value(value: Any, default: str) -> str:
    """Return *value* as a string, treating an empty YAML value as unset."""
    if value is None:
        return default
    return str(value)


def _float_value(
    value: Any, key: str, default: float | None, problems: list[str]
) -> float | None:
    """Convert *value* to a float, or record a problem and return *default*."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        problems.append(f"{key} must be a number (got: {value!r})")
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        problems.append(f"{key} must be a number (got: {value!r})")
        return default


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    """Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""


@dataclass
class SeerConfig:
    """Complete seer configuration."""

    root: str
    """Project root directory (the Go module root)."""

    watcher: FileWatchConfig = field(default_factory=FileWatchConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML, after environment expansion."""

    problems: list[str] = field(default_factory=list)
    """Values that could not be parsed; reported by :func:`validate_config`."""


def _parse_watcher_config(raw: dict[str, Any], problems: list[str]) -> FileWatchConfig:
    """Parse watcher configuration from raw YAML."""
    watcher_raw = _section(raw, "watcher")
    defaults = FileWatchConfig()

    interval = _float_value(
        watcher_raw.get("flush_interval"),
        "watcher.flush_interval",
        defaults.flush_interval,
        problems,
    )

    return FileWatchConfig(
        skip_dirs=_str_list(watcher_raw.get("skip_dirs"), defaults.skip_dirs),
        source_suffixes=tuple(
            _str_list(watcher_raw.get("source_suffixes"), list(defaults.source_suffixes))
        ),
        flush_interval=interval if interval is not None else defaults.flush_interval,
    )


def _parse_runner_config(raw: dict[str, Any], problems: list[str]) -> RunnerConfig:
    """Parse runner configuration from raw YAML."""
    runner_raw = _section(raw, "runner")

    timeout = _float_value(runner_raw.get("timeout"), "runner.timeout", None, problems)
    if timeout == 0:
        timeout = None

    return RunnerConfig(
        binary=_str_value(runner_raw.get("binary"), os.environ.get("SEER_GO_BIN", "go")),
        temp_root=_str_value(runner_raw.get("temp_root"), os.environ.get("SEER_TEMP_DIR", "")),
        timeout=timeout,
    )


def _parse_logging_config(raw: dict[str, Any]) -> LoggingConfig:
    """Parse logging configuration from raw YAML."""
    logging_raw = _section(raw, "logging")

    level = _str_value(logging_raw.get("level"), os.environ.get("SEER_LOG_LEVEL", "INFO"))
    return LoggingConfig(level=level.upper())


def load_config(root: str | Path) -> SeerConfig:
    """Load and parse ``.seer.yml`` from *root*.

    Falls back to defaults and environment variables when the file is
    missing or incomplete.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILE

    raw: dict[str, Any] = {}
    if config_file.is_file():
        parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
        elif parsed is not None:
            logger.warning("Ignoring %s: expected a mapping at the top level", config_file)

    problems: list[str] = []
    return SeerConfig(
        root=str(root_path),
        watcher=_parse_watcher_config(raw, problems),
        runner=_parse_runner_config(raw, problems),
        logging=_parse_logging_config(raw),
        raw=raw,
        problems=problems,
    )


def validate_config(config: SeerConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = list(config.problems)

    if not config.root:
        errors.append("root is required")
    elif not Path(config.root).is_dir():
        errors.append(f"root directory does not exist: {config.root}")

    if config.watcher.flush_interval <= 0:
        errors.append(
            f"watcher.flush_interval must be positive (got: {config.watcher.flush_interval})"
        )

    if not config.watcher.source_suffixes:
        errors.append("watcher.source_suffixes must list at least one suffix")

    if not config.runner.binary:
        errors.append("runner.binary is required")

    if config.runner.timeout is not None and config.runner.timeout < 0:
        errors.append(f"runner.timeout must be non-negative (got: {config.runner.timeout})")

    if config.logging.level not in _LOG_LEVELS:
        errors.append(
            f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))} "
            f"(got: {config.logging.level})"
        )

    return errors
