"""
Logging helpers for nlsh.

The terminal belongs to the confirmation UI, so log records go to a file
in the config directory rather than to stderr.
"""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "warning", log_file: Optional[Path] = None) -> None:
    """
    Configure the root logger.

    ``level`` is a logging level name (debug, info, warning, error). When
    ``log_file`` cannot be opened, logging falls back to stderr at the same
    level.
    """
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.WARNING

    handler: logging.Handler
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            handler = logging.StreamHandler()
    else:
        handler = logging.StreamHandler()

    logging.basicConfig(level=numeric, format=LOG_FORMAT, handlers=[handler])
