"""Structured logging for the article curator.

Everything logs through structlog on top of the stdlib root logger, so the
chatty HTTP libraries can be quieted with ordinary logger levels.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any

import orjson
import structlog

# Third-party loggers that drown out collection progress at DEBUG
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio", "urllib3")

SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _orjson_dumps(data: Any, **kwargs: Any) -> str:
    return orjson.dumps(data, default=str).decode("utf-8")


def setup_logging(
    log_level: str = "INFO",
    json_logging: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure structlog and the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        json_logging: One JSON object per line instead of console output
        log_file: Also append rendered lines to this file
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(handler)

    if json_logging:
        renderer = structlog.processors.JSONRenderer(serializer=_orjson_dumps)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_processing_stage(
    stage: str,
    input_count: int,
    output_count: int,
    duration: float | None = None,
    **extra: Any
) -> dict[str, Any]:
    """Build the keyword arguments for a pipeline stage log line.

    Usage: ``logger.info(**log_processing_stage("dedupe", 40, 31))``
    """
    entry: dict[str, Any] = dict(
        event="processing_stage",
        stage=stage,
        input_count=input_count,
        output_count=output_count,
    )
    entry.update(extra)
    if duration is not None:
        entry["duration"] = duration
    return entry


def log_error(error: BaseException, context: str | None = None, **extra: Any) -> dict[str, Any]:
    """Build the keyword arguments for an error log line."""
    entry: dict[str, Any] = dict(
        event="error",
        error_type=type(error).__name__,
        error_message=str(error),
    )
    entry.update(extra)
    if context:
        entry["context"] = context
    return entry


class PerformanceLogger:
    """Time a block and log how long it took, or how it failed."""

    def __init__(self, operation: str, logger: structlog.stdlib.BoundLogger):
        self.operation = operation
        self.logger = logger
        self.duration: float | None = None
        self._started: float | None = None

    def __enter__(self) -> "PerformanceLogger":
        self._started = time.monotonic()
        self.logger.debug("operation_started", operation=self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._started is None:
            return
        self.duration = time.monotonic() - self._started
        elapsed = round(self.duration, 3)

        if exc_type is not None:
            self.logger.error(
                "operation_failed",
                operation=self.operation,
                duration=elapsed,
                error_type=exc_type.__name__,
                error_message=str(exc_val) if exc_val else None,
            )
            return

        self.logger.info("operation_completed", operation=self.operation, duration=elapsed)
