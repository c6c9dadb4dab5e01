"""Progressively produced text results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Callable, Iterable, Optional


@dataclass(frozen=True)
class Message:
    """A role-tagged conversation message."""

    role: str
    content: str

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role="assistant", content=content)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(role=data["role"], content=data["content"])


class StreamConsumedError(Exception):
    """The fragment sequence of a TextStream can only be iterated once."""

    pass


class StreamIncompleteError(Exception):
    """Aggregated results were requested before the stream was exhausted."""

    pass


def _assistant_reply(text: str) -> list[Message]:
    return [Message.assistant(text)]


class TextStream:
    """
    An already-open sequence of text fragments.

    ``text_stream`` yields each fragment once. After it is exhausted,
    ``response_messages()`` returns the aggregated messages built from the
    concatenated text.

    Args:
        fragments: Async iterable producing text fragments
        build_messages: Turns the full text into response messages
    """

    def __init__(
        self,
        fragments: AsyncIterable[str],
        build_messages: Optional[Callable[[str], list[Message]]] = None,
    ) -> None:
        self._fragments = fragments
        self._build_messages = build_messages or _assistant_reply
        self._parts: list[str] = []
        self._consumed = False
        self._complete = False

    @classmethod
    def from_chunks(cls, chunks: Iterable[str]) -> "TextStream":
        """Build a stream replaying fixed chunks."""
        items = list(chunks)

        async def replay() -> AsyncIterator[str]:
            for item in items:
                yield item

        return cls(replay())

    @property
    def text_stream(self) -> AsyncIterator[str]:
        if self._consumed:
            raise StreamConsumedError("Text stream has already been consumed")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for fragment in self._fragments:
            self._parts.append(fragment)
            yield fragment
        self._complete = True

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._parts)

    def response_messages(self) -> list[Message]:
        if not self._complete:
            raise StreamIncompleteError("Stream has not been fully consumed")
        return self._build_messages(self.text)
