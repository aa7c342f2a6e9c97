"""
Configuration and logging for the Folio pager.

The pager reads an optional TOML file once at start-up and turns it into an
immutable ``PagerConfig``. Command line flags are layered on top with
``dataclasses.replace`` so every session gets its own value to work with.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
import tempfile
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import toml

logger = logging.getLogger(__name__)

APP_NAME = "folio"
CONFIG_FILENAME = "folio.toml"
LOG_FILENAME = "folio.log"

STYLES = ("auto", "dark", "light", "notty", "ascii")


class ConfigError(Exception):
    """Raised when the configuration file exists but cannot be used."""


@dataclass(frozen=True)
class PagerConfig:
    """Settings shared by the renderer and the pager state machine."""

    render_enabled: bool = True
    style: str = "auto"
    max_width: int = 0
    preserve_new_lines: bool = False
    show_line_numbers: bool = False
    high_performance_pager: bool = True
    status_message_timeout: float = 3.0
    log_level: str = "INFO"
    log_file: str = ""


# TOML keys that differ from the field names they set
_ALIASES = {
    "render": "render_enabled",
    "width": "max_width",
    "line_numbers": "show_line_numbers",
    "high_performance": "high_performance_pager",
}


def config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(Path.home(), ".config")
    return Path(base) / APP_NAME


def default_config_path() -> Path:
    override = os.environ.get("FOLIO_CONFIG")
    if override:
        return Path(os.path.expanduser(override))
    return config_dir() / CONFIG_FILENAME


def config_from_mapping(data: dict[str, Any]) -> PagerConfig:
    """Build a config from a parsed TOML table, ignoring unknown keys."""
    known = {f.name: f for f in fields(PagerConfig)}
    values: dict[str, Any] = {}

    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            logger.warning("ignoring unknown config key %r", key)
            continue

        default = getattr(PagerConfig, name)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false, got {value!r}")
        elif isinstance(default, (int, float)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be a number, got {value!r}")
            if value < 0:
                raise ConfigError(f"{key} must not be negative, got {value!r}")
            value = type(default)(value)
        elif not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        values[name] = value

    style = values.get("style")
    if style is not None and style not in STYLES:
        raise ConfigError(f"unknown style {style!r}")

    return PagerConfig(**values)


def load_config(path: Optional[Path] = None) -> PagerConfig:
    """Load the configuration file, falling back to defaults when absent."""
    path = path or default_config_path()
    if not path.exists():
        logger.debug("no config file at %s, using defaults", path)
        return PagerConfig()

    try:
        data = toml.loads(path.read_text(encoding="utf-8"))
    except (OSError, toml.TomlDecodeError) as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e

    logger.info("loaded config from %s", path)
    return config_from_mapping(data)


def setup_logging(config: PagerConfig) -> Path:
    """
    Send log records to a rotating file.

    The terminal belongs to the pager while it runs, so there is no console
    handler. ``FOLIO_LOG_LEVEL`` wins over the configured level. Returns the
    path actually used, which is a temp file when the config directory
    cannot be created.
    """
    level_name = os.environ.get("FOLIO_LOG_LEVEL", config.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    log_path = Path(config.log_file) if config.log_file else config_dir() / LOG_FILENAME
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Error creating log directory '{log_path.parent}': {e}", file=sys.stderr)
        log_path = Path(tempfile.gettempdir()) / LOG_FILENAME

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(level)

    try:
        handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=1024 * 1024, backupCount=3, encoding="utf-8"
        )
    except OSError as e:
        print(f"Error setting up log file '{log_path}': {e}", file=sys.stderr)
        root_logger.addHandler(logging.NullHandler())
        return log_path

    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)-8s - %(name)-10s - %(message)s"
    ))
    root_logger.addHandler(handler)
    return log_path
