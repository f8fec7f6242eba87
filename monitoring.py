"""
monitoring.py — Logging setup and run summaries for the job sync pipelines.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from models import SyncResult

ROOT_LOGGER = "jobsync"


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Set up structured logging to stdout and, optionally, a file.
    Returns the root logger for the application.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    # Prevent duplicate handlers on re-init
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger for a specific module."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def log_pipeline_step(logger: logging.Logger, step: str, count: int):
    """Log a pipeline step with its item count."""
    logger.info(f"[{step}] {count} items")


def log_sync_summary(logger: logging.Logger, result: SyncResult, duration: float):
    """Log a complete sync run summary."""
    logger.info("=" * 60)
    logger.info(f"SYNC SUMMARY ({result.trigger})")
    logger.info(f"  State:             {result.state}")
    logger.info(f"  Fetched listings:  {result.fetched}")
    logger.info(f"  Processed:         {result.processed}")
    logger.info(f"  Saved:             {result.saved}")
    logger.info(f"  Degraded (stub):   {result.degraded}")
    logger.info(f"  Errors:            {result.errors}")
    logger.info(f"  Stopped early:     {result.stopped_early}")
    logger.info(f"  Duration:          {duration:.1f}s")

    if result.error_messages:
        logger.warning("ERRORS:")
        for err in result.error_messages[:20]:
            logger.warning(f"  - {err}")
        if len(result.error_messages) > 20:
            logger.warning(f"  ... and {len(result.error_messages) - 20} more")

    logger.info("=" * 60)
