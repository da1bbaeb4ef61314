"""Logging setup and per-call telemetry records."""

from __future__ import annotations

import logging
import sys
from dataclasses import asdict, dataclass

import structlog

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True, slots=True)
class ToolCallTelemetry:
    """Outcome of one tool invocation."""

    tool_name: str
    duration_seconds: float
    succeeded: bool
    error_type: str | None = None

    def as_log_fields(self) -> dict[str, object]:
        fields = asdict(self)
        fields["duration_seconds"] = round(self.duration_seconds, 6)
        return fields


def configure_logging(level: str = "INFO", *, json_logs: bool = False) -> None:
    """Configure structlog for CLI runs."""
    normalized_level = level.upper()
    if normalized_level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{level}'. Expected one of {', '.join(LOG_LEVELS)}.")

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        processors.extend(
            [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(normalized_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
