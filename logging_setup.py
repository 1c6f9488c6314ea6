# logging_setup.py
"""Console logging with colored level names.

Colors are only emitted when stderr is a terminal, so log files and CI output
stay plain.
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[1;31m', # Bold Red
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = LOG_FORMAT, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not (self.use_colors and record.levelname in self.COLORS):
            return super().format(record)
        # levelname is shared with other handlers: restore it after formatting
        orig_levelname = record.levelname
        record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname


def setup_colored_logging(level: int = logging.INFO, fmt: str = LOG_FORMAT, datefmt: Optional[str] = DATE_FORMAT) -> None:
    """Replace the root logger's handlers with one colored stderr handler."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter(fmt=fmt, datefmt=datefmt))

    root.setLevel(level)
    root.addHandler(console_handler)


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logging.getLogger().handlers:
        setup_colored_logging(level=level)
    return logger
