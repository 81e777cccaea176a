"""
Console and file logging for the renewal run.

Operators read the run as it happens, so progress lines go to stdout
with colored level names when stdout is a terminal.
"""

import logging
import sys
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors the level name, and the whole message for
    warnings and errors.

    Colors are only applied when stdout is a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt or DEFAULT_FORMAT)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        levelname, msg = record.levelname, record.msg
        color = self.COLORS.get(levelname, "")
        record.levelname = f"{color}{levelname}{self.RESET}"
        if levelname in ("WARNING", "ERROR", "CRITICAL"):
            record.msg = f"{color}{msg}{self.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname, record.msg = levelname, msg


class StructuredLogger(logging.Logger):
    """
    Logger with helpers for the section banners and OK/FAIL lines
    printed during a renewal run.
    """

    def section(self, title: str) -> None:
        """Log a banner line block around ``title``."""
        self.info("=" * 60)
        self.info(title)
        self.info("=" * 60)

    def subsection(self, title: str) -> None:
        self.info(f"--- {title} ---")

    def success(self, message: str) -> None:
        self.info(f"[OK] {message}")

    def failure(self, message: str) -> None:
        self.error(f"[FAIL] {message}")

    def output(self, label: str, text: str) -> None:
        """
        Log multi-line command output at DEBUG level, one record per line.

        Args:
            label: Short prefix identifying the command
            text: Raw command output
        """
        for line in text.splitlines():
            self.debug(f"{label}| {line}")


_logger: Optional[StructuredLogger] = None


def setup_logger(
    name: str = "RenewSSL",
    verbose: bool = False,
    use_colors: bool = True,
    log_file: Optional[str] = None,
) -> StructuredLogger:
    """
    Configure the global logger.

    Args:
        name: Logger name
        verbose: Enable debug-level logging
        use_colors: Enable colored console output
        log_file: Optional file that receives an uncolored copy of the log

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger, creating a default one on first use.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger
