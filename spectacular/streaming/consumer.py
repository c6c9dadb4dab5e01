"""Actor that drains a TextStream into its parent's mailbox."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from spectacular.machine import Actor, CancelSignal, StreamChunk, StreamError, from_async
from spectacular.streaming.stream import Message, TextStream
from spectacular.utils.logging import get_logger

logger = get_logger("streaming.consumer")


@dataclass(frozen=True)
class ConsumeStreamOutput:
    """Aggregated result of a fully consumed stream."""

    response_messages: list[Message] = field(default_factory=list)
    text: str = ""


async def consume_stream(
    stream: TextStream,
    signal: CancelSignal,
    parent: Optional[Actor],
) -> ConsumeStreamOutput:
    """
    Forward every fragment of ``stream`` to ``parent`` as ``stream.chunk``.

    Fragments are sent in emission order as soon as they arrive. If the
    stream fails, ``stream.error`` is sent to the parent before the failure
    is raised. Once ``signal`` aborts, nothing more is sent.

    Args:
        stream: Open text stream to drain
        signal: Cancellation signal of the invocation
        parent: Actor receiving the fragment events

    Returns:
        ConsumeStreamOutput with the response messages and full text
    """
    fragments = stream.text_stream
    count = 0
    try:
        async for fragment in fragments:
            if signal.aborted:
                break
            count += 1
            if parent is not None:
                parent.send(StreamChunk(content=fragment))
    except Exception as e:
        logger.error("stream_failed", chunks=count, error=str(e))
        if parent is not None and not signal.aborted:
            parent.send(StreamError(error=e))
        raise
    finally:
        await fragments.aclose()

    signal.raise_if_aborted()
    logger.debug("stream_consumed", chunks=count)
    return ConsumeStreamOutput(
        response_messages=stream.response_messages(),
        text=stream.text,
    )


consume_stream_logic = from_async(consume_stream, pass_parent=True)
