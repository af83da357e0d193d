from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Union

LOGGER_NAME = "crewid"
LOG_FILE = "crewid.log"


def setup_logging(
    log_dir: str = "logs",
    *,
    level: Union[int, str] = "INFO",
    max_bytes: int = 1_000_000,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the `crewid` logger: one rotating file under `log_dir` and a
    plain stream handler.

    Safe to call repeatedly. A call with a different `log_dir` moves the file
    handler there, so stores rooted in different directories keep separate logs.
    """
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False

    path = os.path.abspath(os.path.join(log_dir, LOG_FILE))
    for h in [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]:
        if h.baseFilename != path:
            logger.removeHandler(h)
            h.close()

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        h = RotatingFileHandler(path, maxBytes=int(max_bytes), backupCount=int(backup_count), encoding="utf-8")
        h.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        logger.addHandler(h)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler) for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger.addHandler(sh)

    return logger
