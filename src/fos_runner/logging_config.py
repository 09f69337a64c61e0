from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    verbose: bool = False,
    logger_name: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure process-wide logging and return a scoped logger.

    Window transitions, retries, and dedup passes go to stdout so they
    interleave with the pipeline subprocess output. With *log_file* the same
    records are also appended to that file, which keeps a history across
    resumed invocations next to the state file.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    logger = logging.getLogger(logger_name or "fos_runner")
    logger.debug("Logging configured with level %s", logging.getLevelName(level))
    if log_file is not None:
        logger.debug("Appending log records to %s", log_file)
    return logger
