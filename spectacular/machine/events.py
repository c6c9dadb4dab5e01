"""Events processed by machine instances.

Every event is a frozen dataclass carrying a class-level ``type`` tag.
Handlers in a state's ``on`` table are keyed by that tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union


@dataclass(frozen=True)
class StartEvent:
    """Synthetic event seen by the initial state's entry actions."""

    type: ClassVar[str] = "machine.start"

    input: Any = None


@dataclass(frozen=True)
class UserMessage:
    """The user sent a message."""

    type: ClassVar[str] = "user.message"

    prompt: str


@dataclass(frozen=True)
class Cancel:
    """Abort whatever the machine is currently waiting on."""

    type: ClassVar[str] = "cancel"


@dataclass(frozen=True)
class StreamChunk:
    """One fragment of a progressively produced text result."""

    type: ClassVar[str] = "stream.chunk"

    content: str


@dataclass(frozen=True)
class StreamError:
    """A fragment sequence failed after zero or more chunks were delivered."""

    type: ClassVar[str] = "stream.error"

    error: BaseException = field(compare=False)


@dataclass(frozen=True)
class InvocationDone:
    """An invoked actor settled with a value."""

    type: ClassVar[str] = "invocation.done"

    invoke_id: str
    output: Any = None


@dataclass(frozen=True)
class InvocationError:
    """An invoked actor failed."""

    type: ClassVar[str] = "invocation.error"

    invoke_id: str
    error: Optional[BaseException] = field(default=None, compare=False)


Event = Union[
    StartEvent,
    UserMessage,
    Cancel,
    StreamChunk,
    StreamError,
    InvocationDone,
    InvocationError,
]


def event_type(event: Any) -> str:
    """Return the tag of an event, accepting any object with a ``type``."""
    tag = getattr(event, "type", None)
    if not isinstance(tag, str):
        raise TypeError(f"Not an event: {event!r}")
    return tag
