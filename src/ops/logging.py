"""
Logging setup for the CLI and tools.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("onnxruntime", "PIL", "matplotlib")


def setup_logging(log_path: Optional[str], log_level: str = "INFO") -> None:
    """
    Configure the root logger with a console handler and, when log_path is
    given, a file handler. Replaces any handlers from an earlier call.

    Raises:
        ValueError: If log_level is not a logging level name.
    """
    level = logging.getLevelName(str(log_level).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
