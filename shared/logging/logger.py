import logging
import os
from datetime import datetime
from pathlib import Path

_LOGGERS = {}

FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir() -> Path:
    return Path(os.getenv("DAU_SYNC_LOG_DIR", "logs"))


def _file_logging_enabled() -> bool:
    return os.getenv("DAU_SYNC_LOG_TO_FILE", "1").strip().lower() not in {
        "0",
        "false",
        "no",
        "off",
    }


def get_logger(
    name: str,
    *,
    runtime: str = "dau-sync",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. core.app, messaging.gate)
    - runtime: log file prefix (one file per runtime per process)

    File output goes to DAU_SYNC_LOG_DIR (default ./logs) unless
    DAU_SYNC_LOG_TO_FILE is set to a false value.
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(FORMAT)

    # ------------------------------
    # Console handler
    # ------------------------------
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(logging.INFO)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    if _file_logging_enabled():
        log_dir = _log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        logfile = log_dir / f"{runtime}-{timestamp}.log"

        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger
