"""Console and log-file setup for the command line tools."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class MultiLineFormatter(logging.Formatter):
    """Prefix every line of a multi-line message, so tracebacks stay greppable."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if "\n" not in message:
            return message
        first, *rest = message.split("\n")
        prefix = first[: len(first) - len(record.getMessage().split("\n")[0])]
        return "\n".join([first] + [prefix + line for line in rest])


def setup_logging(level: int = logging.INFO, log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``obsidian_blog`` logger for console and optional file output.

    The log file is opened in append mode. If it cannot be opened the problem
    is reported on the console and logging continues there only.
    """
    formatter = MultiLineFormatter(LOG_FORMAT, DATE_FORMAT)
    logger = logging.getLogger("obsidian_blog")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file is not None:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot open log file %s: %s", log_file, exc)
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
