"""Result values for configuration loading, and CLI exit codes.

Configuration loading returns Results instead of raising, so the CLI can
report every problem with a proper exit code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class ResultError(Exception):
    """Raised when a Result is unwrapped on the wrong side."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_err(self) -> NoReturn:
        raise ResultError(f"Expected an error, got {self.value!r}")


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ResultError(f"Expected a value, got error: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class ConfigError:
    """A configuration problem tied to the dotted name of the offending field."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"Config error in '{self.field}': {self.message}"


class ExitCode:
    """Process exit codes for the CLI."""

    SUCCESS = 0
    GENERAL_ERROR = 1

    # Setup (10-19)
    CONFIG_ERROR = 10
    MISSING_API_KEY = 11
    INPUT_NOT_FOUND = 12

    # Code generation outcomes other than success (20-29)
    SCHEMA_FAILED = 21
    API_FAILED = 22
