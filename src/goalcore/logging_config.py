# src/goalcore/logging_config.py
"""
Logging configuration for goalcore.

Configuration comes from :class:`~goalcore.config.models.LoggingConfig` and
supports:
- Console logging with display-level gating (see DisplayFilter)
- Optional file logging, either one timestamped file per run or a single
  rotating file
- Per-component log level overrides

Key concepts:

    **Display filter**: When ``console_enabled=False`` (the default), the
    console handler still exists but only passes through log records that
    carry ``extra={"display": True}``.  This lets operational messages
    (e.g. "Proactive sweep runner started") reach the operator even in quiet
    mode, while per-turn chatter stays out of the console.

Usage:
    from goalcore.logging_config import configure_logging, log_display

    configure_logging(app_name="support-bot")

    logger = logging.getLogger("support-bot.startup")
    log_display(logger, logging.INFO, "Ready - sweeping every %ss", 30)
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config.models import LoggingConfig

_configured_handlers: list[logging.Handler] = []
_log_file_path: Optional[Path] = None


class DisplayFilter(logging.Filter):
    """Controls which log records pass through to the console handler.

    When console logging is globally enabled everything passes and the
    handler's own level does the filtering.  Otherwise only records with
    ``record.display = True`` at or above ``display_min_level`` pass.
    """

    def __init__(
        self,
        console_globally_enabled: bool = False,
        display_min_level: int = logging.INFO,
    ) -> None:
        super().__init__()
        self.console_globally_enabled = console_globally_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_globally_enabled:
            return True

        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level

        return False


def _level(name: str, default: int) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


def _create_file_handler(
    config: LoggingConfig, app_name: str
) -> tuple[Optional[logging.Handler], Optional[Path]]:
    """Create the file handler ("per_run" timestamped file or "single" rotating file)."""
    log_dir = Path(config.file_directory)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
        return None, None

    if config.file_mode == "single":
        try:
            filename = config.file_single_name.format(app=app_name)
        except (KeyError, ValueError):
            filename = f"{app_name}.log"
        path = log_dir / filename
        try:
            handler: logging.Handler = RotatingFileHandler(
                path,
                maxBytes=config.rotation_max_bytes,
                backupCount=config.rotation_backup_count,
                encoding="utf-8",
            )
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {path}: {e}\n")
            return None, None
    else:
        timestamp = datetime.now()
        try:
            filename = config.file_name_pattern.format(app=app_name, timestamp=timestamp)
        except (KeyError, ValueError):
            filename = f"{app_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.log"
        path = log_dir / filename
        try:
            handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {path}: {e}\n")
            return None, None

    handler.setLevel(_level(config.file_level, logging.DEBUG))
    handler.setFormatter(logging.Formatter(config.file_format))
    return handler, path


def configure_logging(
    app_name: str = "goalcore",
    config: Optional[LoggingConfig] = None,
    force_reconfigure: bool = False,
) -> Optional[Path]:
    """
    Install goalcore's console and file handlers on the root logger.

    Calling again is a no-op unless ``force_reconfigure`` is set, in which
    case the handlers installed by the previous call are replaced.  Handlers
    installed by the host application are left alone.

    Returns:
        Path of the log file, or None when file logging is disabled.
    """
    global _log_file_path

    if _configured_handlers and not force_reconfigure:
        return _log_file_path

    config = config or LoggingConfig()
    root_logger = logging.getLogger()
    for handler in _configured_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _configured_handlers.clear()
    _log_file_path = None

    root_logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    if config.console_enabled:
        console.setLevel(_level(config.console_level, logging.WARNING))
    else:
        # Filter is the sole gate when the console is "off".
        console.setLevel(logging.DEBUG)
    console.setFormatter(logging.Formatter(config.console_format))
    console.addFilter(
        DisplayFilter(
            console_globally_enabled=config.console_enabled,
            display_min_level=_level(config.display_min_level, logging.INFO),
        )
    )
    root_logger.addHandler(console)
    _configured_handlers.append(console)

    if config.file_enabled:
        file_handler, _log_file_path = _create_file_handler(config, app_name)
        if file_handler is not None:
            root_logger.addHandler(file_handler)
            _configured_handlers.append(file_handler)

    for component_name, level_str in config.components.items():
        level = logging.getLevelName(level_str.upper())
        if isinstance(level, int):
            logging.getLogger(component_name).setLevel(level)

    if _log_file_path:
        logging.getLogger(__name__).debug("Logging configured. Log file: %s", _log_file_path)
    return _log_file_path


def log_display(logger: logging.Logger, level: int, msg: str, *args, **kwargs) -> None:
    """Log a message that reaches the console even in quiet mode."""
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    logger.log(level, msg, *args, extra=extra, **kwargs)


def get_log_file_path() -> Optional[Path]:
    """Path of the current log file, if file logging is active."""
    return _log_file_path

