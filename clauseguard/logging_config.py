"""Loguru setup for the document pipeline.

Console output plus rotating file sinks: a readable main log, a serialized
JSON log, a per-document pipeline log (records carrying a ``document_id``)
and an errors-only log.
"""

import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)
FILE_FORMAT = "{time} | {level} | {name}:{function}:{line} | {message}"

logger.remove()


def _pipeline_format(record) -> str:
    extra = record["extra"]
    return (
        f"{record['time']} | {record['level'].name} | {extra.get('document_id', '-')} | "
        f"{extra.get('agent_name', '-')} | {record['message']}\n"
    )


def setup_logging(
    log_dir: str = "logs",
    level: str = "INFO",
    rotation: str = "100 MB",
    retention: str = "30 days",
    compression: str = "zip"
) -> None:
    """Install console and file sinks.

    Args:
        log_dir: Directory for log files (created if missing)
        level: Minimum level for console and main logs
        rotation: Loguru rotation policy
        retention: Loguru retention policy
        compression: Compression for rotated files
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    file_options = {"rotation": rotation, "retention": retention, "compression": compression}

    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    logger.add(log_path / "clauseguard_{time}.log", format=FILE_FORMAT, level=level, **file_options)
    logger.add(log_path / "clauseguard_json_{time}.log", level=level, serialize=True, **file_options)
    logger.add(
        log_path / "pipeline_{time}.log",
        format=_pipeline_format,
        level="INFO",
        filter=lambda record: "document_id" in record["extra"],
        **file_options
    )
    logger.add(log_path / "errors_{time}.log", format=FILE_FORMAT, level="ERROR", **file_options)

    logger.info("Logging configured", log_dir=log_dir, level=level)


def get_document_logger(document_id: str, agent_name: Optional[str] = None):
    """Logger bound to one document (and optionally the agent working on it)."""
    if agent_name:
        return logger.bind(document_id=document_id, agent_name=agent_name)
    return logger.bind(document_id=document_id)


def log_agent_execution(agent_name: str) -> Callable:
    """Log start, duration and failure of an agent call.

    The wrapped method must receive the document id as the ``document_id``
    keyword argument; calls without it are logged under "unknown".
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            doc_logger = get_document_logger(kwargs.get("document_id", "unknown"), agent_name)
            doc_logger.info(f"{agent_name}.{func.__name__} started")
            started = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                doc_logger.error(
                    f"{agent_name}.{func.__name__} failed",
                    error=str(e),
                    error_type=type(e).__name__
                )
                raise

            doc_logger.info(
                f"{agent_name}.{func.__name__} finished",
                duration_seconds=round(time.perf_counter() - started, 3)
            )
            return result

        return wrapper
    return decorator


def log_tool_execution(tool_name: str) -> Callable:
    """Debug-log a reader or strategy call; failures are logged and re-raised.

    Cascade layers fail routinely, so failures stay at debug level here and
    the cascade decides what is worth a warning.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger.debug(f"Tool {tool_name} started")
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.debug(f"Tool {tool_name} raised {type(e).__name__}: {e}")
                raise
            logger.debug(f"Tool {tool_name} finished", produced=result is not None)
            return result

        return wrapper
    return decorator
