import logging
import os
import sys
from typing import ClassVar, Optional

_DEFAULT_FORMAT = os.getenv(
    "SCRIPTPOOL_LOG_FORMAT",
    "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
_DEFAULT_DATEFMT = os.getenv("SCRIPTPOOL_LOG_DATEFMT", "%Y-%m-%d %H:%M:%S")
_configured = False


def _supports_color() -> bool:
    try:
        return sys.stdout.isatty() and os.getenv("NO_COLOR") is None
    except Exception:
        return False


class _LevelColorFormatter(logging.Formatter):
    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\x1b[37m",  # light gray
        "INFO": "\x1b[32m",  # green
        "WARNING": "\x1b[33m",  # yellow
        "ERROR": "\x1b[31m",  # red
        "CRITICAL": "\x1b[41m",  # red background
    }

    RESET: ClassVar[str] = "\x1b[0m"

    def __init__(self, fmt: str, datefmt: str, use_color: bool) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname, "") if self.use_color else ""
        record.levelname_color = f"{color}{levelname}{self.RESET}" if color else levelname
        return super().format(record)


def configure_logging(
    level: Optional[str | int] = None,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    propagate_root: bool = False,
) -> str | int:
    """Configure root logging once with a consistent format.

    Environment overrides:
    - `SCRIPTPOOL_LOG_LEVEL`
    - `SCRIPTPOOL_LOG_FORMAT`
    - `SCRIPTPOOL_LOG_DATEFMT`
    """
    from scriptpool.config.environment import Environment

    global _configured

    if isinstance(level, str):
        level = level.upper()

    if level is None:
        level = Environment.get_log_level()

    if _configured and _configured == level:
        return level
    _configured = level

    use_color = _supports_color()
    if fmt is None:
        if os.getenv("SCRIPTPOOL_LOG_FORMAT") is None and use_color:
            # name in cyan, ts in gray
            fmt = "\x1b[90m%(asctime)s\x1b[0m | %(levelname_color)s | \x1b[36m%(name)s\x1b[0m | %(message)s"
        else:
            fmt = _DEFAULT_FORMAT
    datefmt = datefmt if datefmt is not None else _DEFAULT_DATEFMT

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=fmt, datefmt=datefmt)

    # Align level/formatter for existing stream handlers (e.g. in tests)
    root.setLevel(level)
    for h in root.handlers:
        if isinstance(h, logging.StreamHandler):
            h.setLevel(level)
            h.setFormatter(_LevelColorFormatter(fmt=fmt, datefmt=datefmt, use_color=use_color))
    root.propagate = propagate_root
    return level


def get_logger(name: str) -> logging.Logger:
    """Return a module-scoped logger."""
    level = configure_logging()
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger
