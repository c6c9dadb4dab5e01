"""Utility modules for spectacular."""

from spectacular.utils.atomic import AtomicWriteError, atomic_write, atomic_write_text
from spectacular.utils.logging import (
    configure_logging,
    get_logger,
    get_run_id,
    log_outcome,
    run_context,
    set_run_id,
)
from spectacular.utils.result import ConfigError, Err, ExitCode, Ok, Result

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "get_run_id",
    "log_outcome",
    "run_context",
    "set_run_id",
    # Files
    "AtomicWriteError",
    "atomic_write",
    "atomic_write_text",
    # Results
    "Ok",
    "Err",
    "Result",
    "ConfigError",
    "ExitCode",
]
