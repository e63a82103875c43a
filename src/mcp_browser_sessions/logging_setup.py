"""
Logging setup for the MCP server process.

stdout carries the MCP stdio transport, so console output goes to stderr.
A size-rotated file under ``log_dir`` keeps a longer history.
"""

import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .constants import LOG_FILE_NAME, MAX_LOG_FILE_BYTES, MAX_LOG_FILES

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = "logs") -> None:
    """Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the rotating log file; None disables file logging
    """
    handlers = [logging.StreamHandler(sys.stderr)]

    if log_dir:
        try:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    path / LOG_FILE_NAME,
                    maxBytes=MAX_LOG_FILE_BYTES,
                    backupCount=MAX_LOG_FILES,
                    encoding="utf-8",
                )
            )
        except OSError as e:
            print(f"[logging] file logging disabled: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("selenium").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


__all__ = ["setup_logging", "LOG_FORMAT"]
