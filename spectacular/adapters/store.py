"""Artifact stores used by the save actors."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Protocol, Union

from spectacular.machine import CancelSignal
from spectacular.utils.atomic import atomic_write_text
from spectacular.utils.logging import get_logger

logger = get_logger("adapters.store")


class ArtifactStore(Protocol):
    """Anything that can persist a text artifact at a location."""

    async def save(
        self,
        location: str,
        content: str,
        signal: Optional[CancelSignal] = None,
    ) -> str: ...


class NoopStore:
    """Discards everything; the default for machines that run without a workspace."""

    async def save(
        self,
        location: str,
        content: str,
        signal: Optional[CancelSignal] = None,
    ) -> str:
        logger.debug("save_skipped", location=location, length=len(content))
        return location


class MemoryStore:
    """Keeps artifacts in a dict keyed by location."""

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.history: list[tuple[str, str]] = []

    async def save(
        self,
        location: str,
        content: str,
        signal: Optional[CancelSignal] = None,
    ) -> str:
        if signal is not None:
            signal.raise_if_aborted()
        self.files[location] = content
        self.history.append((location, content))
        return location


class FileStore:
    """
    Writes artifacts to disk atomically.

    Relative locations are resolved against ``root``; absolute locations
    are used as given.
    """

    def __init__(self, root: Union[str, Path] = ".") -> None:
        self.root = Path(root)

    def resolve(self, location: str) -> Path:
        path = Path(location)
        return path if path.is_absolute() else self.root / path

    async def save(
        self,
        location: str,
        content: str,
        signal: Optional[CancelSignal] = None,
    ) -> str:
        if signal is not None:
            signal.raise_if_aborted()

        path = self.resolve(location)
        await asyncio.to_thread(atomic_write_text, path, content)
        logger.info("artifact_saved", path=str(path), length=len(content))
        return str(path)
