"""
Logging configuration for the meshless transport package.

Every module logs through ``logging.getLogger(__name__)``, so all records
flow into the ``meshless`` package logger configured here.

Usage:
    from meshless.logging_config import setup_logging
    setup_logging(level=logging.DEBUG, log_file='transport.log')
"""

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "meshless"


def setup_logging(level: int = logging.INFO,
                  log_file: Optional[str] = None) -> logging.Logger:
    """Configure the package logger with console and optional file output.

    Existing handlers are removed first so that repeated calls (e.g. from
    several CLI invocations in one interpreter) do not duplicate records.

    Parameters
    ----------
    level : int
        Logging level for both handlers (e.g. ``logging.DEBUG``).
    log_file : str or None
        If given, records are also written to this file.

    Returns
    -------
    logger : logging.Logger
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """Return a logger in the package namespace."""
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
