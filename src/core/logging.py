"""
Structured logging configuration using structlog.

Provides consistent, structured logging across the application with:
- JSON output in production
- Pretty console output in development
- Context binding so every event of an interview carries its session_id
- File output to logs/ directory (one file per process run)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.typing import Processor

from src.core.config import settings

LOG_FILE_PREFIX = "interview_"


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old log files, keeping only the N most recent."""
    log_files = sorted(
        logs_dir.glob(f"{LOG_FILE_PREFIX}*.log"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for old_file in log_files[keep:]:
        old_file.unlink(missing_ok=True)


def configure_logging(
    log_runs_to_keep: int = 5,
    logs_dir: Optional[Path] = None,
    level: int = logging.INFO,
) -> Path:
    """Configure structlog for the application.

    Call this once at startup, before any logging. Each run gets its own
    timestamped log file; older files beyond ``log_runs_to_keep`` are removed.

    Args:
        log_runs_to_keep: Number of recent run logs to retain
        logs_dir: Directory for log files (default: ./logs)
        level: Minimum stdlib level for emitted events

    Returns:
        Path of the log file opened for this run
    """
    logs_dir = logs_dir or Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    # keep-1 to make room for the file created below
    _cull_old_logs(logs_dir, keep=max(log_runs_to_keep - 1, 0))

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"{LOG_FILE_PREFIX}{timestamp}.log"

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    # Reconfiguration must not stack handlers (tests, reloads)
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="w")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from src.core.logging import get_logger

        log = get_logger(__name__)
        log.info("turn_submitted", source="voice")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables that will be included in all subsequent logs.

        bind_context(session_id=session_id, request_id=request_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables from the logging context."""
    structlog.contextvars.clear_contextvars()
