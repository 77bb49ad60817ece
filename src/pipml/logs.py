"""Run logging setup: console plus a per-run log file."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%H:%M:%S"

_HANDLER_MARK = "_pipml_run_handler"


def configure_run_logging(log_path: Path, quiet: bool = False) -> logging.Logger:
    """
    Route the ``pipml`` logger to stderr and to ``log_path``.

    The console shows INFO (WARNING when ``quiet``); the file keeps DEBUG.
    Handlers installed by an earlier run in the same process are replaced.

    Parameters
    ----------
    log_path : Path
        Run log file, created or appended to
    quiet : bool
        Only show warnings and errors on the console

    Returns
    -------
    logging.Logger
        The configured package logger
    """
    logger = logging.getLogger("pipml")
    close_run_logging()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.WARNING if quiet else logging.INFO)
    console.setFormatter(formatter)
    setattr(console, _HANDLER_MARK, True)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_MARK, True)

    logger.addHandler(console)
    logger.addHandler(file_handler)
    return logger


def close_run_logging() -> None:
    """Detach and close handlers installed by :func:`configure_run_logging`."""
    logger = logging.getLogger("pipml")
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
