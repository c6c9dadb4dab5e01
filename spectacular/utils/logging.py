"""Structured logging with run and stage context.

Every event carries the ``run_id`` of the CLI invocation, held in a context
variable scoped by ``run_context``. Workflow stages are logged by the
machines themselves through their injected logger.
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

import structlog

run_id_var: ContextVar[str] = ContextVar("run_id", default="")
stage_var: ContextVar[str] = ContextVar("stage", default="")

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_run_id() -> str:
    """Get the current run ID, generating one if not set."""
    run_id = run_id_var.get()
    if not run_id:
        run_id = uuid.uuid4().hex[:8]
        run_id_var.set(run_id)
    return run_id


def set_run_id(run_id: str) -> None:
    run_id_var.set(run_id)


@contextmanager
def run_context(run_id: str | None = None, stage: str = "") -> Iterator[str]:
    """
    Scope a run ID and stage to a block, restoring the previous values after.

    Args:
        run_id: Run ID to use; a fresh one is generated when omitted
        stage: Initial stage for the block

    Yields:
        The run ID in effect inside the block
    """
    run_token = run_id_var.set(run_id or uuid.uuid4().hex[:8])
    stage_token = stage_var.set(stage)
    try:
        yield run_id_var.get()
    finally:
        stage_var.reset(stage_token)
        run_id_var.reset(run_token)


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add run ID and stage to log events; an explicit ``stage`` wins."""
    run_id = run_id_var.get()
    if run_id:
        event_dict["run_id"] = run_id

    stage = stage_var.get()
    if stage:
        event_dict.setdefault("stage", stage)

    return event_dict


def add_timestamp(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _renderer(format_type: str) -> structlog.types.Processor:
    if format_type == "json":
        return structlog.processors.JSONRenderer(default=str)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    level: str = "info",
    format_type: str = "json",
    stream: Any = None,
) -> None:
    """
    Configure structured logging for the application.

    Logs go to stderr by default so stdout stays free for command output
    and streamed model text.

    Args:
        level: Log level (debug, info, warning, error)
        format_type: Output format ('json' or 'console')
        stream: Output stream (default: sys.stderr)
    """
    stream = stream if stream is not None else sys.stderr
    log_level = LEVELS.get(level.lower(), logging.INFO)

    # The SDK and its HTTP client log through the standard library
    logging.basicConfig(format="%(message)s", stream=stream, level=log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            add_timestamp,
            add_context_info,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(format_type),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(stream),
        # Module-level loggers must pick up configuration applied by the CLI
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """
    Get a logger that resolves the current configuration on every call.

    Args:
        name: Logger name, added to each event as ``logger_name``

    Returns:
        Lazy structlog logger proxy
    """
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


def log_outcome(workflow: str, outcome: str, started: float, **details: Any) -> None:
    """Log how a workflow ended and how long it ran, from a ``time.monotonic()`` start."""
    get_logger("outcome").info(
        "workflow_finished",
        workflow=workflow,
        outcome=outcome,
        duration_seconds=round(time.monotonic() - started, 3),
        **details,
    )


configure_logging()
