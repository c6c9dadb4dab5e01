"""Ideation workflow: a multi-turn conversation that ends in a saved spec.

    AwaitingUserInput -> Routing -> FollowingUp -> ProcessingAiResponse -> AwaitingUserInput
                                 -> GeneratingSpec -> SavingSpec -> Done

Every invoking state accepts ``cancel`` and returns to AwaitingUserInput.
Failures land in Error, which resumes routing on the next user message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from spectacular.ai.types import Message, NextStep, RouterResponse
from spectacular.machine import (
    Invoke,
    MachineDefinition,
    StateNode,
    Transition,
    assign,
    exhaustive,
    noop,
    not_provided,
)
from spectacular.streaming import TextStream, text_stream_machine
from spectacular.workflows.common import SaveRequest, fail_to, log_stage

DEFAULT_SPEC_NAME = "spec.md"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    slug = _NON_SLUG.sub("-", title.lower()).strip("-")
    return slug or "spec"


def spec_path(title: str, cwd: str) -> str:
    """
    Resolve where a spec titled ``title`` is saved.

    A bare title becomes a markdown file name in ``cwd``. A title that is
    already a path (has a directory part) is used as given. The result is
    relative to the process working directory, not to ``cwd``, so it must
    be saved through a store rooted there.
    """
    path = Path(title)
    if path.parent != Path(".") or title.startswith(("./", "../")):
        return title
    name = title if title.endswith(".md") else f"{slugify(title)}.md"
    return str(Path(cwd) / name)


@dataclass(frozen=True)
class IdeationInput:
    cwd: str = "."
    messages: tuple[Message, ...] = ()


@dataclass(frozen=True)
class IdeationContext:
    cwd: str
    messages: tuple[Message, ...] = ()
    route: Optional[RouterResponse] = None
    stream: Optional[TextStream] = None
    streaming_text: str = ""
    spec: Optional[str] = None
    title: str = DEFAULT_SPEC_NAME
    spec_location: Optional[str] = None
    cancelled: bool = False
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class IdeationOutput:
    messages: list[Message] = field(default_factory=list)
    cwd: str = "."
    spec: Optional[str] = None
    title: str = DEFAULT_SPEC_NAME
    spec_location: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "spec_location": self.spec_location,
            "messages": len(self.messages),
        }


def _context(input: Optional[IdeationInput]) -> IdeationContext:
    input = input or IdeationInput()
    return IdeationContext(cwd=input.cwd, messages=tuple(input.messages))


def _output(ctx: IdeationContext) -> IdeationOutput:
    return IdeationOutput(
        messages=list(ctx.messages),
        cwd=ctx.cwd,
        spec=ctx.spec,
        title=ctx.title,
        spec_location=ctx.spec_location,
    )


def _append(messages: Sequence[Message], new: Sequence[Message]) -> tuple[Message, ...]:
    return tuple(messages) + tuple(new)


# Starting a new turn from AwaitingUserInput or Error
_accept_user_message = Transition(
    target="Routing",
    actions=assign(
        messages=lambda ctx, ev: _append(ctx.messages, [Message.user(ev.prompt)]),
        error=lambda ctx, ev: None,
        cancelled=lambda ctx, ev: False,
        streaming_text=lambda ctx, ev: "",
    ),
    description="The user has sent a message",
)

_cancel = Transition(
    target="AwaitingUserInput",
    actions=assign(cancelled=lambda ctx, ev: True, stream=lambda ctx, ev: None),
    description="Abort the pending call and wait for the user",
)


def _stream_failed(ctx: IdeationContext, ev: Any) -> bool:
    return ev.output.failed


ideation_machine = MachineDefinition(
    id="ideation-agent",
    description="A chat agent that ideates on a software project idea to produce a spec",
    initial="AwaitingUserInput",
    context=_context,
    output=_output,
    states={
        "AwaitingUserInput": StateNode(
            on={"user.message": _accept_user_message},
        ),
        "Routing": StateNode(
            entry=log_stage("routing", "Routing request"),
            invoke=Invoke(
                src="route_request",
                input=lambda ctx: ctx.messages,
                on_done=exhaustive(
                    NextStep,
                    key=lambda ctx, ev: ev.output.next_step,
                    targets={
                        NextStep.ASK_FOLLOW_UP_QUESTION: "FollowingUp",
                        NextStep.GENERATE_IMPLEMENTATION_PLAN: "GeneratingSpec",
                    },
                    actions=[assign(route=lambda ctx, ev: ev.output)],
                ),
                on_error=fail_to("Error", "routing"),
            ),
            on={"cancel": _cancel},
        ),
        "FollowingUp": StateNode(
            entry=log_stage("follow-up", "Asking follow-up question"),
            invoke=Invoke(
                src="ask_next_question",
                input=lambda ctx: ctx.messages,
                on_done=Transition(
                    target="ProcessingAiResponse",
                    actions=assign(stream=lambda ctx, ev: ev.output),
                ),
                on_error=fail_to("Error", "follow-up"),
            ),
            on={"cancel": _cancel},
        ),
        "ProcessingAiResponse": StateNode(
            invoke=Invoke(
                src="process_question_stream",
                input=lambda ctx: ctx.stream,
                on_done=[
                    Transition(
                        target="Error",
                        guard=_stream_failed,
                        actions=assign(
                            error=lambda ctx, ev: ev.output.error,
                            stream=lambda ctx, ev: None,
                        ),
                        description="The stream broke off; keep the partial text",
                    ),
                    Transition(
                        target="AwaitingUserInput",
                        actions=assign(
                            messages=lambda ctx, ev: _append(
                                ctx.messages, ev.output.response_messages
                            ),
                            stream=lambda ctx, ev: None,
                        ),
                    ),
                ],
                on_error=fail_to("Error", "follow-up-stream"),
            ),
            on={
                "stream.chunk": Transition(
                    actions=assign(
                        streaming_text=lambda ctx, ev: ctx.streaming_text + ev.content,
                    ),
                ),
                "cancel": _cancel,
            },
        ),
        "GeneratingSpec": StateNode(
            entry=log_stage("spec-generation", "Generating spec"),
            invoke=Invoke(
                src="generate_spec",
                input=lambda ctx: ctx.messages,
                on_done=Transition(
                    target="SavingSpec",
                    actions=assign(
                        spec=lambda ctx, ev: ev.output.plan,
                        title=lambda ctx, ev: ev.output.title,
                        spec_location=lambda ctx, ev: spec_path(ev.output.title, ctx.cwd),
                    ),
                ),
                on_error=fail_to("Error", "spec-generation"),
            ),
            on={"cancel": _cancel},
        ),
        "SavingSpec": StateNode(
            entry=log_stage("save-spec", "Saving spec"),
            invoke=Invoke(
                src="save_spec",
                input=lambda ctx: SaveRequest(location=ctx.spec_location, content=ctx.spec or ""),
                on_done=Transition(
                    target="Done",
                    actions=assign(
                        spec_location=lambda ctx, ev: ev.output
                        if isinstance(ev.output, str)
                        else ctx.spec_location,
                    ),
                ),
                on_error=fail_to("Error", "save-spec"),
            ),
            on={"cancel": _cancel},
        ),
        "Error": StateNode(
            on={"user.message": _accept_user_message},
        ),
        "Done": StateNode(final=True),
    },
    actors={
        "route_request": not_provided("route_request"),
        "ask_next_question": not_provided("ask_next_question"),
        "process_question_stream": text_stream_machine,
        "generate_spec": not_provided("generate_spec"),
        "save_spec": noop,
    },
)
