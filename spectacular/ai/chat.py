"""Model calls behind the ideation conversation."""

from __future__ import annotations

from typing import Optional, Sequence

from spectacular.ai.client import GenerationService
from spectacular.ai.prompts import render
from spectacular.ai.types import GeneratedSpec, Message, NextStep, RouterResponse
from spectacular.machine import CancelSignal
from spectacular.streaming import TextStream
from spectacular.utils.logging import get_logger

logger = get_logger("ai.chat")

GENERATED_SPEC_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "A title for the project."},
        "plan": {
            "type": "string",
            "description": (
                "A detailed implementation plan / handoff document for a developer "
                "to implement the project (in markdown)."
            ),
        },
    },
    "required": ["title", "plan"],
}


async def route_request(
    service: GenerationService,
    messages: Sequence[Message],
    signal: Optional[CancelSignal] = None,
) -> RouterResponse:
    """Decide whether to ask another question or write the spec."""
    verdict, reasoning = await service.classify(
        messages,
        NextStep,
        system=render("router_system"),
        signal=signal,
    )
    return RouterResponse(next_step=NextStep(verdict), reasoning=reasoning)


async def ask_next_question(
    service: GenerationService,
    messages: Sequence[Message],
    signal: Optional[CancelSignal] = None,
    topics: Sequence[str] = (),
) -> TextStream:
    """Start streaming one follow-up question."""
    return service.generate_text(
        messages,
        system=render("ask_next_question_system", topics=list(topics)),
        temperature=0.7,
        signal=signal,
    )


async def generate_spec(
    service: GenerationService,
    messages: Sequence[Message],
    signal: Optional[CancelSignal] = None,
) -> GeneratedSpec:
    """Turn the conversation into a titled implementation plan."""
    data = await service.generate_structured(
        messages,
        GENERATED_SPEC_SCHEMA,
        system=render("generate_spec_system"),
        tool_name="write_spec",
        description="Record the implementation plan.",
        signal=signal,
    )
    spec = GeneratedSpec.from_dict(data)
    logger.info("spec_generated", title=spec.title, length=len(spec.plan))
    return spec
