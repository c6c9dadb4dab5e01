"""Persistence and checking collaborators."""

from spectacular.adapters.checker import (
    CheckerError,
    NoopChecker,
    TypeScriptChecker,
    parse_diagnostics,
)
from spectacular.adapters.store import ArtifactStore, FileStore, MemoryStore, NoopStore

__all__ = [
    "ArtifactStore",
    "NoopStore",
    "MemoryStore",
    "FileStore",
    "CheckerError",
    "NoopChecker",
    "TypeScriptChecker",
    "parse_diagnostics",
]
