# tradetracker/logging_config.py
"""
Logging configuration.

Console output is concise; during a tax run a verbose DEBUG log is also
written next to the generated CSV files so the run can be audited later.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


class ConciseFormatter(logging.Formatter):
    """Single-line console format."""

    FORMATS = {
        logging.DEBUG: "[D] %(name)s: %(message)s",
        logging.INFO: "[I] %(message)s",
        logging.WARNING: "[W] %(message)s",
        logging.ERROR: "[E] %(name)s: %(message)s",
        logging.CRITICAL: "[!] %(name)s: %(message)s",
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.INFO])
        return logging.Formatter(log_fmt).format(record)


class VerboseFormatter(logging.Formatter):
    """Detailed format for the debug log file."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging(verbose: bool = False, debug_log_path: Optional[Path] = None) -> None:
    """
    Configure the root logger. Call once at startup.

    Args:
        verbose: Emit DEBUG records on the console
        debug_log_path: If given, also write every DEBUG record to this file
    """
    for noisy in ("urllib3", "requests", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(ConciseFormatter())
    root.addHandler(console)

    if debug_log_path is not None:
        file_handler = logging.FileHandler(debug_log_path, mode="x", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(VerboseFormatter())
        root.addHandler(file_handler)
