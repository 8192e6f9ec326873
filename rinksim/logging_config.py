"""
Logging configuration for rinksim.

Library modules only ever call `logging.getLogger(__name__)`; handlers are
installed by the application (the CLI, a notebook, a service) through
`setup_logging`.

Usage Example:
    from rinksim.logging_config import setup_logging, get_logger

    setup_logging(level="INFO", log_dir="logs", enable_console=True, enable_file=False)
    logger = get_logger(__name__)
    logger.info("Batch started")

Log Files Created (when enable_file=True):
- logs/rinksim.log: Main log (INFO+)
- logs/rinksim_debug.log: Debug log (DEBUG+), includes period transitions
- logs/rinksim_error.log: Error log (ERROR+)

Each file rotates at 10MB with 5 backup files.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional


DETAILED_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"
)

SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

CONSOLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILES = {
    logging.INFO: "rinksim.log",
    logging.DEBUG: "rinksim_debug.log",
    logging.ERROR: "rinksim_error.log",
}


class ColoredFormatter(logging.Formatter):
    """Adds ANSI colour codes to the level name on console output."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m'
    }

    def format(self, record):
        # Format a copy so file handlers sharing the record keep the plain level name.
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def _level(level: str) -> int:
    value = getattr(logging, str(level).upper(), None)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: str = "INFO",
    log_dir: str = "logs",
    enable_console: bool = True,
    enable_file: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    format_style: str = "detailed",
    use_colors: Optional[bool] = None,
) -> None:
    """
    Configure the root logger. Call once at application startup.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for rotating log files
        enable_console: Whether to log to stderr
        enable_file: Whether to write rotating log files
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of rotated files to keep
        format_style: "detailed" or "simple" for the file logs
        use_colors: Colour console output; defaults to True when stderr is a TTY
    """
    root_level = _level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    root_logger.handlers.clear()

    log_format = DETAILED_FORMAT if format_style == "detailed" else SIMPLE_FORMAT

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(root_level)
        if use_colors is None:
            use_colors = hasattr(console_handler.stream, "isatty") and console_handler.stream.isatty()
        formatter_cls = ColoredFormatter if use_colors else logging.Formatter
        console_handler.setFormatter(formatter_cls(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(console_handler)

    if enable_file:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        for handler_level, filename in LOG_FILES.items():
            handler = logging.handlers.RotatingFileHandler(
                filename=os.path.join(log_dir, filename),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            handler.setLevel(handler_level)
            fmt = log_format if handler_level == logging.INFO else DETAILED_FORMAT
            handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
            root_logger.addHandler(handler)

    root_logger.debug(f"Logging initialized - Level: {level}, Console: {enable_console}, File: {enable_file}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_exception(logger: logging.Logger, exception: Exception, context: Optional[dict] = None,
                  level: str = "ERROR") -> None:
    """Log an exception with its traceback and a `key=value` context suffix."""
    context_str = ""
    if context:
        context_str = f" [{', '.join(f'{k}={v}' for k, v in context.items())}]"
    logger.log(
        _level(level),
        f"Exception occurred{context_str}: {type(exception).__name__}: {exception}",
        exc_info=True
    )


def configure_module_logger(module_name: str, level: Optional[str] = None, propagate: bool = True) -> logging.Logger:
    """
    Set a level for one part of the package, e.g.
    `configure_module_logger("rinksim.simulation_engine", "DEBUG")` to see
    period transitions without debug output from everything else.
    """
    logger = logging.getLogger(module_name)
    if level:
        logger.setLevel(_level(level))
    logger.propagate = propagate
    return logger
