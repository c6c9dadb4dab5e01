"""Atomic file writes for generated artifacts.

Artifacts are written to a temporary file in the target directory and
renamed into place, so a crash or cancellation never leaves a half-written
schema or API file behind for the compiler to trip over.
"""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, TextIO

from spectacular.utils.logging import get_logger

logger = get_logger("utils.atomic")


class AtomicWriteError(Exception):
    """Raised when an artifact could not be written in place."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to atomically write {path}: {cause}")


def _discard(temp_path: Path) -> None:
    try:
        temp_path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("atomic_temp_cleanup_failed", path=str(temp_path), error=str(e))


@contextmanager
def atomic_write(path: Path | str, encoding: str = "utf-8") -> Generator[TextIO, None, None]:
    """
    Open a text handle whose content replaces ``path`` only on clean exit.

    Args:
        path: Artifact location; parent directories are created
        encoding: Text encoding

    Yields:
        Handle on a sibling temporary file

    Raises:
        AtomicWriteError: If writing or renaming fails
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    # Same directory as the target, otherwise the rename is not atomic
    fd, temp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            yield handle
        os.replace(temp_path, target)
    except Exception as e:
        _discard(temp_path)
        logger.error("atomic_write_failed", path=str(target), error=str(e))
        raise AtomicWriteError(target, e) from e
    except BaseException:
        _discard(temp_path)
        raise

    logger.debug("atomic_write_success", path=str(target))


def atomic_write_text(path: Path | str, content: str, encoding: str = "utf-8") -> Path:
    """Write ``content`` to ``path`` atomically and return the resolved target."""
    with atomic_write(path, encoding=encoding) as handle:
        handle.write(content)
    return Path(path)
