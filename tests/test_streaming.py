"""Tests for text streams and the stream-consuming machine."""

from __future__ import annotations

from typing import AsyncIterator

import pytest

from spectacular.ai.types import GenerationError
from spectacular.machine import (
    CancelSignal,
    InvocationCancelled,
    StreamChunk,
    StreamError,
    start,
)
from spectacular.streaming import (
    Message,
    StreamConsumedError,
    StreamIncompleteError,
    TextStream,
    consume_stream,
    text_stream_machine,
)


class EventSink:
    """Stands in for a parent actor and keeps what it is sent."""

    def __init__(self) -> None:
        self.events: list = []

    def send(self, event) -> None:
        self.events.append(event)


def failing_stream(*parts: str) -> TextStream:
    async def fragments() -> AsyncIterator[str]:
        for part in parts:
            yield part
        raise GenerationError("connection reset")

    return TextStream(fragments())


class TestTextStream:
    @pytest.mark.asyncio
    async def test_fragments_and_aggregate(self):
        stream = TextStream.from_chunks(["Hello", ", ", "world"])

        received = [fragment async for fragment in stream.text_stream]

        assert received == ["Hello", ", ", "world"]
        assert stream.complete
        assert stream.response_messages() == [Message.assistant("Hello, world")]

    def test_fragments_can_only_be_taken_once(self):
        stream = TextStream.from_chunks(["a"])
        stream.text_stream

        with pytest.raises(StreamConsumedError):
            stream.text_stream

    @pytest.mark.asyncio
    async def test_response_messages_require_full_consumption(self):
        stream = TextStream.from_chunks(["a", "b"])
        fragments = stream.text_stream
        await fragments.__anext__()

        with pytest.raises(StreamIncompleteError):
            stream.response_messages()
        assert stream.text == "a"
        await fragments.aclose()

    @pytest.mark.asyncio
    async def test_custom_message_builder(self):
        stream = TextStream(
            TextStream.from_chunks(["sh", "out"]).text_stream,
            build_messages=lambda text: [Message.assistant(text.upper())],
        )

        async for _ in stream.text_stream:
            pass

        assert stream.response_messages() == [Message(role="assistant", content="SHOUT")]


class TestConsumeStream:
    @pytest.mark.asyncio
    async def test_sends_chunks_in_order(self):
        sink = EventSink()
        stream = TextStream.from_chunks(["one ", "two ", "three"])

        output = await consume_stream(stream, CancelSignal(), sink)

        assert sink.events == [
            StreamChunk(content="one "),
            StreamChunk(content="two "),
            StreamChunk(content="three"),
        ]
        assert output.text == "one two three"
        assert output.response_messages == [Message.assistant("one two three")]

    @pytest.mark.asyncio
    async def test_failure_sends_stream_error_then_raises(self):
        sink = EventSink()

        with pytest.raises(GenerationError, match="connection reset"):
            await consume_stream(failing_stream("par", "tial"), CancelSignal(), sink)

        assert [type(event) for event in sink.events] == [StreamChunk, StreamChunk, StreamError]
        assert isinstance(sink.events[-1].error, GenerationError)

    @pytest.mark.asyncio
    async def test_aborted_signal_sends_nothing(self):
        sink = EventSink()
        signal = CancelSignal()
        signal.abort()

        with pytest.raises(InvocationCancelled):
            await consume_stream(TextStream.from_chunks(["a", "b"]), signal, sink)

        assert sink.events == []


class TestTextStreamMachine:
    @pytest.mark.asyncio
    async def test_completes_with_chunks_and_messages(self, recorder):
        actor = start(
            text_stream_machine,
            TextStream.from_chunks(["What ", "are ", "you ", "building?"]),
            observer=recorder,
        )

        output = await actor.done()

        assert actor.get_snapshot().value == "Complete"
        assert output.chunks == ["What ", "are ", "you ", "building?"]
        assert output.text == "What are you building?"
        assert output.response_messages == [Message.assistant("What are you building?")]
        assert not output.failed
        assert recorder.states == ["Processing", "Complete"]

    @pytest.mark.asyncio
    async def test_failure_keeps_partial_chunks(self):
        actor = start(text_stream_machine, failing_stream("Half ", "an "))

        output = await actor.done()

        assert actor.get_snapshot().value == "Failed"
        assert output.failed
        assert isinstance(output.error, GenerationError)
        assert output.chunks == ["Half ", "an "]
        assert output.response_messages == []

    @pytest.mark.asyncio
    async def test_empty_stream_completes(self):
        actor = start(text_stream_machine, TextStream.from_chunks([]))

        output = await actor.done()

        assert actor.get_snapshot().value == "Complete"
        assert output.chunks == []
        assert output.response_messages == [Message.assistant("")]
