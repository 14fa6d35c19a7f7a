"""
Log setup for the vidscript service.

One stdout handler on the root logger. LOG_LEVEL sets the baseline;
LOG_LEVEL_GEMINI, LOG_LEVEL_POOLS, LOG_LEVEL_PIPELINE and LOG_LEVEL_RETRY
raise or lower a single subsystem (e.g. LOG_LEVEL_POOLS=DEBUG to watch key
rotation). LOG_FORMAT=simple switches off the column layout.
"""

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vidscript.config import Settings


# Settings suffix -> logger that the override applies to
SUBSYSTEM_LOGGERS = {
    "gemini": "vidscript.services.ai_clients",
    "pools": "vidscript.services.pools",
    "pipeline": "vidscript.services.pipeline",
    "retry": "vidscript.services.retry_policy",
}

# Longest prefix first
_NAME_PREFIXES = (
    ("vidscript.services.", ""),
    ("vidscript.api.", "api."),
    ("vidscript.", ""),
)

_THIRD_PARTY = ("httpx", "httpcore", "uvicorn.access")


def short_name(name: str) -> str:
    """Logger name without the package prefix: pools.base, api.routes."""
    for prefix, replacement in _NAME_PREFIXES:
        if name.startswith(prefix):
            return replacement + name[len(prefix):]
    return name


class StructuredFormatter(logging.Formatter):
    """
    Column layout: timestamp | level | logger | message

    Tracebacks follow on the next lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = " | ".join((
            self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            f"{record.levelname:8}",
            f"{short_name(record.name):24}",
            record.getMessage(),
        ))
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(settings: "Settings") -> None:
    """
    Install the stdout handler and apply subsystem levels.

    Args:
        settings: Application settings with log_level, log_format and
            the log_level_<subsystem> overrides
    """
    baseline = _level(settings.log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(baseline)

    # The handler must pass the most verbose override through
    handler.setLevel(min([baseline, *_apply_overrides(settings, baseline)]))

    for name in _THIRD_PARTY:
        logging.getLogger(name).setLevel(logging.WARNING)


def _apply_overrides(settings: "Settings", baseline: int) -> list[int]:
    applied = []
    for suffix, logger_name in SUBSYSTEM_LOGGERS.items():
        value = getattr(settings, f"log_level_{suffix}", None)
        if value:
            level = _level(value, baseline)
            logging.getLogger(logger_name).setLevel(level)
            applied.append(level)
    return applied


def _level(name: str, default: int) -> int:
    return getattr(logging, name.upper(), default)
