"""Sub-machine that consumes a text stream on behalf of its parent."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from spectacular.machine import (
    Invoke,
    MachineDefinition,
    StateNode,
    StreamChunk,
    Transition,
    assign,
    send_parent,
)
from spectacular.streaming.consumer import consume_stream_logic
from spectacular.streaming.stream import Message, TextStream


@dataclass(frozen=True)
class TextStreamContext:
    stream: Optional[TextStream]
    chunks: tuple[str, ...] = ()
    response_messages: tuple[Message, ...] = ()
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class TextStreamOutput:
    """
    Result of a text-stream run.

    ``error`` is set when the stream failed; ``chunks`` then holds whatever
    was delivered before the failure.
    """

    chunks: list[str] = field(default_factory=list)
    response_messages: list[Message] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def failed(self) -> bool:
        return self.error is not None


def _context(stream: TextStream) -> TextStreamContext:
    return TextStreamContext(stream=stream)


def _output(context: TextStreamContext) -> TextStreamOutput:
    return TextStreamOutput(
        chunks=list(context.chunks),
        response_messages=list(context.response_messages),
        error=context.error,
    )


text_stream_machine = MachineDefinition(
    id="text-stream",
    description="Consume a text stream, forwarding each chunk to the parent",
    initial="Processing",
    context=_context,
    output=_output,
    states={
        "Processing": StateNode(
            invoke=Invoke(
                src="consume_stream",
                input=lambda ctx: ctx.stream,
                on_done=Transition(
                    target="Complete",
                    actions=assign(
                        response_messages=lambda ctx, ev: tuple(ev.output.response_messages),
                        stream=lambda ctx, ev: None,
                    ),
                ),
                on_error=Transition(
                    target="Failed",
                    actions=assign(error=lambda ctx, ev: ev.error, stream=lambda ctx, ev: None),
                ),
            ),
            on={
                "stream.chunk": Transition(
                    actions=[
                        assign(chunks=lambda ctx, ev: ctx.chunks + (ev.content,)),
                        send_parent(lambda ctx, ev: StreamChunk(content=ev.content)),
                    ],
                ),
                "stream.error": Transition(
                    target="Failed",
                    actions=assign(error=lambda ctx, ev: ev.error, stream=lambda ctx, ev: None),
                ),
            },
        ),
        "Complete": StateNode(final=True),
        "Failed": StateNode(final=True),
    },
    actors={"consume_stream": consume_stream_logic},
)
