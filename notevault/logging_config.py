"""
Logging configuration for notevault.

Logs go to stderr or a file, never stdout: in MCP mode stdout carries
the protocol stream.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "notevault-ops.log"

_LIBRARY_LOGGERS = ("mcp", "httpx", "anyio")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to show only warnings and errors.

    Args:
        quiet: If True, suppress informational output. If False, leave
            logging as it is.
    """
    if not quiet:
        return
    warnings.filterwarnings("ignore", category=DeprecationWarning)
    logging.getLogger("notevault").setLevel(logging.WARNING)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("notevault").setLevel(logging.DEBUG)
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """Configure a persistent operations log next to the note index.

    Writes to {store_path}/notevault-ops.log using a rotating file handler
    (1MB max, 3 backups). Active regardless of --verbose.
    Returns the handler so the caller can remove it on close.
    """
    store_path = Path(store_path)
    store_path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(store_path / OPS_LOG_FILENAME),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    nv_logger = logging.getLogger("notevault")
    nv_logger.addHandler(handler)
    # Let INFO through to the file even in quiet mode
    if nv_logger.level == logging.NOTSET or nv_logger.level > logging.INFO:
        nv_logger.setLevel(logging.INFO)

    return handler


def remove_ops_log(handler: RotatingFileHandler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    logging.getLogger("notevault").removeHandler(handler)
    handler.close()
