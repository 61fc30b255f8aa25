"""Logging configuration for the partitioning service."""
from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional, Union

__all__ = ["setup_logger", "NOISY_LOGGERS"]

# Client libraries that log every request at INFO/DEBUG.
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer", "kafka")

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
        log_dir: Optional[Union[str, Path]] = None,
        *,
        level: int = logging.INFO,
        filename_prefix: str = "rangekit",
        console: bool = False,
        rotate: bool = False,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 3,
        force: bool = False,
        quiet: Iterable[str] = NOISY_LOGGERS,
) -> Optional[Path]:
    """
    Configure root logging.

    With a log directory, writes a timestamped log file there (optionally
    rotating). Without one, logs to the console only.

    Args:
        log_dir: Directory for the log file (None for console-only logging)
        level: Logging level (default: INFO)
        filename_prefix: Prefix for log filename
        console: If True, also log to console (always on when log_dir is None)
        rotate: If True, use RotatingFileHandler instead of FileHandler
        max_bytes: Maximum log file size before rotation (if rotate=True)
        backup_count: Number of backup files to keep (if rotate=True)
        force: If True, remove existing handlers before adding new ones
        quiet: Logger names capped at WARNING

    Returns:
        Path to the created log file, or None for console-only logging

    Examples:
        >>> log_path = setup_logger("/var/log/rangekit")
        >>> log_path
        PosixPath('/var/log/rangekit/rangekit_20251101_193245.log')
    """
    root = logging.getLogger()

    # Remove existing handlers if force=True
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_path: Optional[Path] = None
    if log_dir is not None:
        directory = Path(log_dir).expanduser().resolve()
        directory.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = directory / f"{filename_prefix}_{timestamp}.log"

        if rotate:
            file_handler: logging.Handler = RotatingFileHandler(
                log_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        else:
            file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")

        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if console or log_path is None:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    root.info("Logging initialized: %s", log_path or "console")
    return log_path
