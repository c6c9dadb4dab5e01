"""Streaming consumption of progressively produced text."""

from spectacular.streaming.consumer import ConsumeStreamOutput, consume_stream, consume_stream_logic
from spectacular.streaming.machine import TextStreamContext, TextStreamOutput, text_stream_machine
from spectacular.streaming.stream import (
    Message,
    StreamConsumedError,
    StreamIncompleteError,
    TextStream,
)

__all__ = [
    "Message",
    "TextStream",
    "StreamConsumedError",
    "StreamIncompleteError",
    "ConsumeStreamOutput",
    "consume_stream",
    "consume_stream_logic",
    "TextStreamContext",
    "TextStreamOutput",
    "text_stream_machine",
]
