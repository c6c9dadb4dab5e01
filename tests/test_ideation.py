"""Tests for the ideation conversation machine."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

import pytest

from fakes import calling, raising, returning
from spectacular.adapters import FileStore
from spectacular.ai.types import (
    GeneratedSpec,
    GenerationError,
    GenerationValidationError,
    Message,
    NextStep,
    RouterResponse,
)
from spectacular.machine import Cancel, InvocationDone, UserMessage, from_async, start, wait_for
from spectacular.streaming import TextStream
from spectacular.workflows import IdeationInput, ideation_machine, spec_path
from spectacular.workflows.actors import save_actor
from spectacular.workflows.ideation import slugify

FOLLOW_UP = RouterResponse(next_step=NextStep.ASK_FOLLOW_UP_QUESTION, reasoning="Too vague")
WRITE_SPEC = RouterResponse(next_step=NextStep.GENERATE_IMPLEMENTATION_PLAN, reasoning="Enough detail")


def question(*chunks: str):
    return calling(lambda messages: TextStream.from_chunks(chunks))


def awaiting_input(snapshot) -> bool:
    return snapshot.matches("AwaitingUserInput")


class TestFollowUp:
    @pytest.mark.asyncio
    async def test_follow_up_question_is_streamed_and_recorded(self, recorder):
        definition = ideation_machine.provide(
            {
                "route_request": returning(FOLLOW_UP),
                "ask_next_question": question("Which ", "database ", "do you use?"),
            }
        )
        actor = start(definition, IdeationInput(cwd="/work"), observer=recorder)

        actor.send(UserMessage(prompt="I want a todo API"))
        snapshot = await wait_for(actor, awaiting_input, timeout=1)

        assert snapshot.context.messages == (
            Message.user("I want a todo API"),
            Message.assistant("Which database do you use?"),
        )
        assert snapshot.context.streaming_text == "Which database do you use?"
        assert snapshot.context.stream is None
        assert recorder.states == [
            "AwaitingUserInput",
            "Routing",
            "FollowingUp",
            "ProcessingAiResponse",
            "AwaitingUserInput",
        ]

    @pytest.mark.asyncio
    async def test_history_grows_each_turn(self):
        routed = []
        definition = ideation_machine.provide(
            {
                "route_request": returning(FOLLOW_UP, calls=routed),
                "ask_next_question": question("Tell me more."),
            }
        )
        actor = start(definition, IdeationInput())

        actor.send(UserMessage(prompt="first"))
        await wait_for(actor, awaiting_input, timeout=1)
        actor.send(UserMessage(prompt="second"))
        assert actor.get_snapshot().context.streaming_text == ""
        snapshot = await wait_for(actor, awaiting_input, timeout=1)

        assert len(snapshot.context.messages) == 4
        assert [message.role for message in snapshot.context.messages] == [
            "user",
            "assistant",
            "user",
            "assistant",
        ]
        assert len(routed[1]) == 3

    @pytest.mark.asyncio
    async def test_stream_failure_lands_in_error(self):
        async def fragments() -> AsyncIterator[str]:
            yield "Which "
            raise GenerationError("stream dropped")

        definition = ideation_machine.provide(
            {
                "route_request": returning(FOLLOW_UP),
                "ask_next_question": calling(lambda messages: TextStream(fragments())),
            }
        )
        actor = start(definition, IdeationInput())

        actor.send(UserMessage(prompt="an idea"))
        snapshot = await wait_for(actor, lambda s: s.matches("Error"), timeout=1)

        assert isinstance(snapshot.context.error, GenerationError)
        assert snapshot.context.streaming_text == "Which "
        assert snapshot.context.messages == (Message.user("an idea"),)


class TestSpecGeneration:
    @pytest.mark.asyncio
    async def test_file_store_at_working_directory_saves_under_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        definition = ideation_machine.provide(
            {
                "route_request": returning(WRITE_SPEC),
                "generate_spec": returning(GeneratedSpec(title="Geese API", plan="# Geese")),
                "save_spec": save_actor(FileStore()),
            }
        )
        actor = start(definition, IdeationInput(cwd="proj"))

        actor.send(UserMessage(prompt="an api for geese"))
        output = await asyncio.wait_for(actor.done(), timeout=5)

        assert output.spec_location == "proj/geese-api.md"
        assert (tmp_path / "proj" / "geese-api.md").read_text() == "# Geese"
        assert not (tmp_path / "proj" / "proj").exists()

    @pytest.mark.asyncio
    async def test_spec_is_generated_and_saved(self, store, recorder):
        spec = GeneratedSpec(title="Todo App", plan="# Todo App\n\nA small API.")
        definition = ideation_machine.provide(
            {
                "route_request": returning(WRITE_SPEC),
                "generate_spec": returning(spec),
                "save_spec": save_actor(store),
            }
        )
        actor = start(definition, IdeationInput(cwd="/work"), observer=recorder)

        actor.send(UserMessage(prompt="Here is everything you need"))
        output = await asyncio.wait_for(actor.done(), timeout=1)

        assert output.spec == spec.plan
        assert output.title == "Todo App"
        assert output.spec_location == "/work/todo-app.md"
        assert store.files == {"/work/todo-app.md": spec.plan}
        assert len(output.messages) == 1
        assert recorder.states == [
            "AwaitingUserInput",
            "Routing",
            "GeneratingSpec",
            "SavingSpec",
            "Done",
        ]

    @pytest.mark.asyncio
    async def test_save_failure_lands_in_error(self):
        definition = ideation_machine.provide(
            {
                "route_request": returning(WRITE_SPEC),
                "generate_spec": returning(GeneratedSpec(title="x", plan="y")),
                "save_spec": raising(OSError("disk full")),
            }
        )
        actor = start(definition, IdeationInput())

        actor.send(UserMessage(prompt="go"))
        snapshot = await wait_for(actor, lambda s: s.matches("Error"), timeout=1)

        assert isinstance(snapshot.context.error, OSError)
        assert snapshot.context.spec == "y"


class TestErrors:
    @pytest.mark.asyncio
    async def test_next_message_after_error_routes_again(self):
        calls = []

        async def route(messages, signal):
            calls.append(messages)
            if len(calls) == 1:
                raise GenerationValidationError("Unknown verdict from classifier: 'maybe'")
            return FOLLOW_UP

        definition = ideation_machine.provide(
            {
                "route_request": from_async(route),
                "ask_next_question": question("Go on."),
            }
        )
        actor = start(definition, IdeationInput())

        actor.send(UserMessage(prompt="first try"))
        snapshot = await wait_for(actor, lambda s: s.matches("Error"), timeout=1)
        assert isinstance(snapshot.context.error, GenerationValidationError)

        actor.send(UserMessage(prompt="second try"))
        retrying = actor.get_snapshot()
        assert retrying.value == "Routing"
        assert retrying.context.error is None

        snapshot = await wait_for(actor, awaiting_input, timeout=1)
        assert [message.content for message in snapshot.context.messages] == [
            "first try",
            "second try",
            "Go on.",
        ]

    @pytest.mark.asyncio
    async def test_missing_actor_lands_in_error(self):
        actor = start(ideation_machine, IdeationInput())

        actor.send(UserMessage(prompt="hello"))
        snapshot = await wait_for(actor, lambda s: s.matches("Error"), timeout=1)

        assert "route_request" in str(snapshot.context.error)


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_while_routing(self):
        gate = asyncio.Event()

        async def slow_route(messages, signal):
            await gate.wait()
            return WRITE_SPEC

        definition = ideation_machine.provide({"route_request": from_async(slow_route)})
        actor = start(definition, IdeationInput())

        actor.send(UserMessage(prompt="an idea"))
        actor.send(Cancel())

        snapshot = actor.get_snapshot()
        assert snapshot.value == "AwaitingUserInput"
        assert snapshot.context.cancelled

        actor.send(InvocationDone(invoke_id="ideation-agent.Routing.1", output=WRITE_SPEC))
        assert actor.get_snapshot() is snapshot

        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert actor.get_snapshot() is snapshot

    @pytest.mark.asyncio
    async def test_cancel_while_streaming(self):
        gate = asyncio.Event()

        async def fragments() -> AsyncIterator[str]:
            yield "Thinking"
            await gate.wait()
            yield " about it"

        definition = ideation_machine.provide(
            {
                "route_request": returning(FOLLOW_UP),
                "ask_next_question": calling(lambda messages: TextStream(fragments())),
            }
        )
        actor = start(definition, IdeationInput())

        actor.send(UserMessage(prompt="an idea"))
        await wait_for(actor, lambda s: s.context.streaming_text == "Thinking", timeout=1)
        actor.send(Cancel())

        snapshot = actor.get_snapshot()
        assert snapshot.value == "AwaitingUserInput"
        assert snapshot.context.cancelled
        assert snapshot.context.stream is None
        assert snapshot.context.messages == (Message.user("an idea"),)

        gate.set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert actor.get_snapshot().context.streaming_text == "Thinking"

    @pytest.mark.asyncio
    async def test_cancel_while_awaiting_input_is_ignored(self):
        actor = start(ideation_machine, IdeationInput())
        before = actor.get_snapshot()

        actor.send(Cancel())

        assert actor.get_snapshot() is before


class TestSpecPath:
    def test_title_becomes_slug(self):
        assert slugify("Todo App: v2!") == "todo-app-v2"

    def test_empty_slug_falls_back(self):
        assert slugify("!!!") == "spec"

    def test_bare_title_resolves_in_cwd(self):
        assert spec_path("Todo App", "/work") == "/work/todo-app.md"

    def test_markdown_name_kept(self):
        assert spec_path("notes.md", "/work") == "/work/notes.md"

    def test_path_used_as_given(self):
        assert spec_path("docs/plan.md", "/work") == "docs/plan.md"
