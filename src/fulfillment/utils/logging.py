"""Loguru setup: custom levels per engine component, console and rotating file sinks."""

import logging
import os
import sys
from datetime import datetime, timedelta

from loguru import logger

from fulfillment.settings.manager import settings_manager
from fulfillment.utils import data_dir_path

logs_dir_path = data_dir_path / "logs"

# name: (severity, colour, icon)
COMPONENT_LEVELS = {
    "ENGINE": (20, "cc6600", "🤖"),
    "DATABASE": (5, "d834eb", "🛢️"),
    "DISPATCH": (20, "cc3333", "📤"),
    "SEARCH": (20, "3D5A80", "🔍"),
    "AVAILABILITY": (20, "92a1cf", "🗃️ "),
    "FULFILLMENT": (20, "FFFFFF", "🟢"),
    "LIBRARY": (20, "DAD3BE", "📽️ "),
    "ARR": (10, "006989", "👾"),
    "CALENDAR": (20, "e56c49", "📅"),
}

BUILTIN_LEVELS = {
    "TRACE": ("27F5E7", "✏️ "),
    "DEBUG": ("98C1D9", "🐞"),
    "INFO": ("818589", "📰"),
    "SUCCESS": ("00ff00", "✔️ "),
    "WARNING": ("ffcc00", "⚠️ "),
    "CRITICAL": ("ff0000", ""),
}

LOG_FORMAT = (
    "<fg #818589>{time:YY-MM-DD} {time:HH:mm:ss}</fg #818589> | "
    "<level>{level.icon}</level> <level>{level: <12}</level> | "
    "<fg #e7e7e7>{module}</fg #e7e7e7>.<fg #e7e7e7>{function}</fg #e7e7e7> - <level>{message}</level>"
)

_last_cleaned: datetime | None = None


def _style(name: str, color: str, icon: str) -> tuple[str, str]:
    """Colour and icon for a level, overridable with FULFILLMENT_LOGGER_<NAME>_FG / _ICON."""

    color = os.getenv(f"FULFILLMENT_LOGGER_{name}_FG", color)
    icon = os.getenv(f"FULFILLMENT_LOGGER_{name}_ICON", icon)
    return f"<fg #{color}>", icon


def setup_logger(level: str):
    """Register the component levels and (re)configure every sink at `level`."""

    for name, (severity, color, icon) in COMPONENT_LEVELS.items():
        color, icon = _style(name, color, icon)
        try:
            logger.level(name)
        except ValueError:
            logger.level(name, no=severity, color=color, icon=icon)
        else:
            # Severity of an existing level is fixed, only its style can change
            logger.level(name, color=color, icon=icon)

    for name, (color, icon) in BUILTIN_LEVELS.items():
        color, icon = _style(name, color, icon)
        logger.level(name, color=color, icon=icon)

    level = (level or "INFO").upper()
    options = settings_manager.settings.logging

    handlers = [
        {
            "sink": sys.stderr,
            "level": level,
            "format": LOG_FORMAT,
            "backtrace": False,
            "diagnose": False,
            "enqueue": True,
        }
    ]

    if options.enabled:
        logs_dir_path.mkdir(parents=True, exist_ok=True)
        handlers.append(
            {
                "sink": logs_dir_path / f"fulfillment-{datetime.now():%Y%m%d-%H%M}.log",
                "level": level,
                "format": LOG_FORMAT,
                "rotation": f"{options.rotation_mb} MB" if options.rotation_mb > 0 else None,
                "retention": f"{options.retention_hours} hours",
                "compression": None if options.compression == "disabled" else options.compression,
                "backtrace": False,
                "diagnose": True,
                "enqueue": True,
            }
        )

    logger.configure(handlers=handlers)


class LoguruHandler(logging.Handler):
    """Stdlib handler that re-emits records (alembic, sqlalchemy) through loguru."""

    def __init__(self, level_name: str = "DATABASE"):
        super().__init__()
        self.level_name = level_name

    def emit(self, record: logging.LogRecord):
        logger.opt(depth=1, exception=record.exc_info).log(self.level_name, record.getMessage())


def log_cleaner(force: bool = False) -> int:
    """
    Delete log files older than the retention window, always keeping the newest.

    Runs at most once an hour unless `force` is set. Returns how many files were removed.
    """

    global _last_cleaned

    options = settings_manager.settings.logging
    if not options.enabled or not logs_dir_path.exists():
        return 0

    now = datetime.now()
    if not force and _last_cleaned and now - _last_cleaned < timedelta(hours=1):
        return 0

    cutoff = now - timedelta(hours=max(0, options.retention_hours))
    removed = 0
    try:
        files = sorted(logs_dir_path.glob("fulfillment-*.log*"), key=lambda p: p.stat().st_mtime)
        for path in files[:-1]:
            if datetime.fromtimestamp(path.stat().st_mtime) < cutoff:
                path.unlink()
                removed += 1
    except OSError as e:
        logger.error(f"Failed to clean old logs: {e}")
        return removed

    _last_cleaned = now
    if removed:
        logger.debug(f"Removed {removed} log file(s) older than {options.retention_hours} hours")
    return removed


setup_logger(settings_manager.settings.log_level)
