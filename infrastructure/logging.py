"""Logging initialization utilities using loguru."""

from __future__ import annotations

from pathlib import Path
import sys

from loguru import logger

LOG_FILE_PATTERN = "journal_*.log"


def get_log_directory(data_dir: str | Path | None = None) -> str:
    """Default log directory: ``<data_dir>/logs`` or ``~/.photo_journal/logs``."""
    base = Path(data_dir).expanduser() if data_dir else Path.home() / ".photo_journal"
    return str(base / "logs")


def init_logging(
    log_dir: str | None = None, level: str = "INFO", console_level: str | None = None
) -> None:
    """Send log records to a rotating daily file under ``log_dir``.

    Args:
        log_dir: Target directory, created if missing.
        level: Minimum level written to the file.
        console_level: When set, also echo records at this level to stderr.
    """
    log_path = Path(log_dir or get_log_directory()).expanduser()
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        str(log_path / "journal_{time:YYYYMMDD}.log"),
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )
    if console_level:
        logger.add(sys.stderr, level=console_level)
    logger.debug("Logging to {} at {}", log_path, level)


def find_latest_log_file(log_dir: str | None = None) -> Path | None:
    """Most recently modified journal log in ``log_dir``, or None."""
    log_path = Path(log_dir or get_log_directory())
    try:
        candidates = sorted(log_path.glob(LOG_FILE_PATTERN), key=lambda p: p.stat().st_mtime)
    except OSError:
        return None
    return candidates[-1] if candidates else None
