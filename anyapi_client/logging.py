"""
Logging for the AnyAPI client core.

Every component logs through an area logger (``anyapi.<area>``):
- console output on stderr, coloured and prefixed per area
- optional file output with full timestamps once setup_logging() runs
- bearer tokens are masked before any handler sees the message

Security Note:
    Never log passwords, ciphertext, encryption keys or session tokens.
    Only log endpoints, attempt numbers, status codes and state transitions.
"""

import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"


# area -> (color, prefix)
AREA_CONFIG = {
    "main": (Colors.BRIGHT_CYAN, "ANYAPI.main"),
    "transport": (Colors.BRIGHT_BLUE, "ANYAPI.transport"),
    "session": (Colors.BRIGHT_GREEN, "ANYAPI.session"),
    "vault": (Colors.BRIGHT_MAGENTA, "ANYAPI.vault"),
    "unlock": (Colors.GREEN, "ANYAPI.unlock"),
    "monitor": (Colors.BRIGHT_YELLOW, "ANYAPI.monitor"),
    "events": (Colors.CYAN, "ANYAPI.events"),
}
DEFAULT_AREA_CONFIG = (Colors.WHITE, "ANYAPI")

LEVEL_COLORS = {
    logging.DEBUG: Colors.DIM,
    logging.INFO: Colors.RESET,
    logging.WARNING: Colors.YELLOW,
    logging.ERROR: Colors.RED,
    logging.CRITICAL: Colors.BRIGHT_RED + Colors.BOLD,
}

_BEARER = re.compile(r"(Bearer\s+)[^\s'\",}]+")


class RedactingFilter(logging.Filter):
    """Masks bearer tokens that slip into a message (e.g. via a logged header dict)."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = _BEARER.sub(r"\1***", message)
        if masked != message:
            record.msg, record.args = masked, None
        return True


class AreaFormatter(logging.Formatter):
    """
    Console:  [ANYAPI.vault] 14:32:15 INFO     Vault state changed: checking -> locked
    File:     2026-01-01 14:32:15.123 [ANYAPI.vault] INFO: ... endpoint=/api/secrets/info
    """

    def __init__(self, area: str = "main", colored: bool = True):
        super().__init__()
        self.area_color, self.area_prefix = AREA_CONFIG.get(area, DEFAULT_AREA_CONFIG)
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created)
        message = record.getMessage()

        if not self.colored:
            extra = "".join(
                f" {name}={getattr(record, name)}"
                for name in ("session_id", "endpoint")
                if hasattr(record, name)
            )
            timestamp = created.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
            return f"{timestamp} [{self.area_prefix}] {record.levelname}: {message}{extra}"

        level_color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
        return (
            f"{self.area_color}[{self.area_prefix}]{Colors.RESET} "
            f"{Colors.DIM}{created:%H:%M:%S}{Colors.RESET} "
            f"{level_color}{record.levelname:<8}{Colors.RESET} {message}"
        )


_log_file: Optional[Path] = None
_file_level: int = logging.DEBUG
_console_level: int = logging.INFO
_area_loggers: dict[str, logging.Logger] = {}
_redactor = RedactingFilter()


def _attach_handlers(logger: logging.Logger, area: str) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(_console_level)
    console.setFormatter(AreaFormatter(area, colored=sys.stderr.isatty()))
    console.addFilter(_redactor)
    logger.addHandler(console)

    if _log_file is not None:
        file_handler = logging.FileHandler(_log_file, encoding="utf-8")
        file_handler.setLevel(_file_level)
        file_handler.setFormatter(AreaFormatter(area, colored=False))
        file_handler.addFilter(_redactor)
        logger.addHandler(file_handler)

    logger.setLevel(logging.DEBUG)
    logger.propagate = False


def setup_logging(
    log_dir: Optional[str] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Start writing logs to a timestamped file and apply the levels.

    Area loggers created before this call (at import time) are re-wired.

    Args:
        log_dir: Directory for log files. Defaults to ~/.anyapi/logs
        console_level: Minimum level for console output
        file_level: Minimum level for file output

    Returns:
        Path to the log file
    """
    global _log_file, _file_level, _console_level

    directory = Path(log_dir) if log_dir else Path.home() / ".anyapi" / "logs"
    directory.mkdir(parents=True, exist_ok=True)

    filename = datetime.now().strftime("anyapi_%Y%m%d_%H%M%S.log")
    _log_file = directory / filename
    _file_level = file_level
    _console_level = console_level

    latest = directory / "latest.log"
    try:
        if latest.is_symlink() or latest.exists():
            latest.unlink()
        latest.symlink_to(filename)
    except OSError:
        pass  # no symlink support (e.g. Windows without privileges)

    for area, logger in _area_loggers.items():
        _attach_handlers(logger, area)

    get_logger("main").info(f"Logging to {_log_file}")
    return _log_file


def get_logger(area: str = "main") -> logging.Logger:
    """
    Get the logger for a client area ("transport", "session", "vault", ...).

    Example:
        logger = get_logger("vault")
        logger.info("Vault status refreshed")
    """
    logger = _area_loggers.get(area)
    if logger is None:
        logger = logging.getLogger(f"anyapi.{area}")
        _attach_handlers(logger, area)
        _area_loggers[area] = logger
    return logger


def set_console_level(level: int) -> None:
    """Change the console threshold for every area logger."""
    global _console_level
    _console_level = level
    for logger in _area_loggers.values():
        for handler in logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)
