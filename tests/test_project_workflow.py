"""Tests for the schema-then-API project workflow."""

from __future__ import annotations

import asyncio

import pytest

from fakes import raising, returning, schema_error
from spectacular.ai.types import ErrorAnalysis, GeneratedCode, GenerationError, TableAnalysis
from spectacular.machine import start
from spectacular.workflows import (
    ArtifactInvalidError,
    ProjectCodegenInput,
    api_codegen_machine,
    project_codegen_machine,
    schema_codegen_machine,
)
from spectacular.workflows.actors import save_actor

SCHEMA = "export const todos = sqliteTable('todos', {});\n"
API = "export default app;\n"


def project_machine(store, schema_check, api_generate=None):
    api_requests: list = []
    schema = schema_codegen_machine.provide(
        {
            "analyze_tables": returning(TableAnalysis(reasoning="r", schema_specification="todos")),
            "identify_rules": returning([]),
            "generate_schema": returning(GeneratedCode(code=SCHEMA)),
            "save_schema": save_actor(store),
            "check_validity": schema_check,
            "analyze_errors": returning(ErrorAnalysis(text="fix it")),
            "fix_schema": returning(GeneratedCode(code=SCHEMA)),
        }
    )
    api = api_codegen_machine.provide(
        {
            "generate_api": api_generate or returning(GeneratedCode(code=API), calls=api_requests),
            "save_api": save_actor(store),
            "check_validity": returning([]),
        }
    )
    definition = project_codegen_machine.provide({"schema_codegen": schema, "api_codegen": api})
    return definition, api_requests


async def run(definition, recorder=None, **input):
    actor = start(definition, ProjectCodegenInput(spec="# Todos", **input), observer=recorder)
    return await asyncio.wait_for(actor.done(), timeout=1)


class TestProjectWorkflow:
    @pytest.mark.asyncio
    async def test_schema_then_api(self, store, recorder):
        definition, api_requests = project_machine(store, returning([]))

        output = await run(definition, recorder)

        assert recorder.states == ["GeneratingSchema", "GeneratingApi", "Done"]
        assert output.outcome == "success"
        assert output.schema.schema == SCHEMA
        assert output.api.code == API
        assert api_requests[0].schema == SCHEMA
        assert store.files == {"src/db/schema.ts": SCHEMA, "src/index.ts": API}

    @pytest.mark.asyncio
    async def test_schema_failure_skips_api(self, store, recorder):
        definition, api_requests = project_machine(store, raising(RuntimeError("no tsc")))

        output = await run(definition, recorder)

        assert recorder.states == ["GeneratingSchema", "Failed"]
        assert output.outcome == "failed"
        assert output.api is None
        assert api_requests == []
        assert str(output.error) == "no tsc"

    @pytest.mark.asyncio
    async def test_unfixable_schema_reports_invalid_artifact(self, store):
        definition, api_requests = project_machine(store, returning([schema_error()]))

        output = await run(definition, max_fix_attempts=2)

        assert output.outcome == "failed"
        assert output.schema.outcome == "failed_to_fix"
        assert isinstance(output.error, ArtifactInvalidError)
        assert output.error.path == "src/db/schema.ts"
        assert api_requests == []

    @pytest.mark.asyncio
    async def test_api_failure_is_reported(self, store):
        definition, _ = project_machine(
            store,
            returning([]),
            api_generate=raising(GenerationError("quota exceeded")),
        )

        output = await run(definition)

        assert output.outcome == "failed"
        assert output.schema.succeeded
        assert output.api.outcome == "failed"
        assert isinstance(output.error, GenerationError)
        assert output.to_dict()["api"]["outcome"] == "failed"
