import sys
from pathlib import Path
from contextvars import ContextVar
from typing import Optional
from loguru import logger
from datacore.config import settings

# Trace id of the logical operation (one unit of work) running in this context
_current_trace_id: ContextVar[Optional[str]] = ContextVar("current_trace_id", default=None)


class LogConfig:
    """Global logging configuration using Loguru."""

    FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | Trace:{extra[trace_id]} - {message}"

    @classmethod
    def setup_logging(cls, level: Optional[str] = None):
        logger.remove()

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<magenta>Trace:{extra[trace_id]}</magenta> - <level>{message}</level>"
            ),
            level=level or settings.LOG_LEVEL,
        )

        if settings.LOG_TO_FILE:
            log_dir = Path(settings.LOG_DIR)
            log_dir.mkdir(exist_ok=True)

            logger.add(
                log_dir / "app_{time:YYYY-MM-DD}.log",
                rotation="00:00",
                retention="30 days",
                compression="zip",
                enqueue=True,
                format=cls.FILE_FORMAT,
                level="DEBUG",
            )

            logger.add(
                log_dir / "error_{time:YYYY-MM-DD}.log",
                level="ERROR",
                rotation="100 MB",
                enqueue=True,
            )

        logger.configure(extra={"trace_id": "system"})


def bind_trace_id(trace_id: Optional[str]):
    """Set the trace id for the current context; returns a token for reset_trace_id()."""
    return _current_trace_id.set(trace_id)


def reset_trace_id(token) -> None:
    _current_trace_id.reset(token)


def get_logger(name: str = None, trace_id: Optional[str] = None):
    """Get logger instance; optionally pass trace_id, else taken from context."""
    trace_id = trace_id or _current_trace_id.get() or "unknown"

    if name:
        return logger.bind(name=name, trace_id=trace_id)
    else:
        return logger.bind(trace_id=trace_id)
