"""Tests for the database schema pipeline."""

from __future__ import annotations

import asyncio

import pytest

from fakes import RecordingLogger, calling, raising, returning, schema_error, sequence
from spectacular.ai.types import (
    ErrorAnalysis,
    ErrorInfo,
    GeneratedCode,
    GenerationError,
    SelectedRule,
    TableAnalysis,
)
from spectacular.machine import start
from spectacular.workflows import SchemaCodegenInput, schema_codegen_machine
from spectacular.workflows.actors import save_actor

SPEC = "# Todo API\n\nUsers own lists; lists hold items."
TABLES = TableAnalysis(reasoning="Three entities", schema_specification="users, lists, items")
SCHEMA = "export const users = sqliteTable('users', {});\n"
FIXED = "import { sqliteTable } from 'drizzle-orm/sqlite-core';\n" + SCHEMA


def schema_machine(store, check, **overrides):
    actors = {
        "analyze_tables": returning(TABLES),
        "identify_rules": returning([]),
        "generate_schema": returning(GeneratedCode(code=SCHEMA)),
        "save_schema": save_actor(store),
        "check_validity": check,
        "analyze_errors": returning(ErrorAnalysis(text="Import sqliteTable.")),
        "fix_schema": returning(GeneratedCode(code=FIXED)),
    }
    actors.update(overrides)
    return schema_codegen_machine.provide(actors)


async def run(definition, recorder=None, **input):
    actor = start(definition, SchemaCodegenInput(spec=SPEC, **input), observer=recorder)
    return await asyncio.wait_for(actor.done(), timeout=1)


class TestSchemaPipeline:
    @pytest.mark.asyncio
    async def test_one_error_is_fixed_once(self, store, recorder):
        analyzed = []
        fixes = []
        definition = schema_machine(
            store,
            returning([schema_error()]),
            analyze_errors=returning(ErrorAnalysis(text="Import sqliteTable."), calls=analyzed),
            fix_schema=returning(GeneratedCode(code=FIXED), calls=fixes),
        )

        output = await run(definition, recorder)

        assert recorder.states == [
            "Analyzing",
            "IdentifyingRules",
            "Generating",
            "Saving",
            "CheckingValidity",
            "AnalyzingErrors",
            "FixingErrors",
            "SavingFixed",
            "Success",
        ]
        assert output.outcome == "success"
        assert output.schema == FIXED
        assert output.original_schema == SCHEMA
        assert not output.verified
        assert len(output.fix_attempts) == 1
        assert output.fix_attempts[0].analysis == "Import sqliteTable."
        assert output.fix_attempts[0].fixed_code == FIXED

        assert analyzed[0].schema == SCHEMA
        assert analyzed[0].errors == (schema_error(),)
        assert fixes[0].analysis == "Import sqliteTable."
        assert fixes[0].original == SCHEMA

        assert store.history == [("src/db/schema.ts", SCHEMA), ("src/db/schema.ts", FIXED)]

    @pytest.mark.asyncio
    async def test_clean_schema_goes_straight_to_success(self, store, recorder):
        output = await run(schema_machine(store, returning([])), recorder)

        assert recorder.states[-2:] == ["CheckingValidity", "Success"]
        assert output.outcome == "success"
        assert output.schema == SCHEMA
        assert output.verified
        assert output.fix_attempts == []
        assert store.files == {"src/db/schema.ts": SCHEMA}

    @pytest.mark.asyncio
    async def test_errors_in_other_files_are_ignored(self, store):
        other = [
            ErrorInfo(message="TS2307: Cannot find module", location="src/index.ts:3:10"),
            ErrorInfo(message="TS6133: unused", severity="warning", location="src/index.ts:2:1"),
            ErrorInfo(message="TS5101: deprecated option"),
        ]

        output = await run(schema_machine(store, returning(other)))

        assert output.outcome == "success"
        assert output.verified
        assert output.schema == SCHEMA

    @pytest.mark.asyncio
    async def test_warning_on_schema_triggers_fix(self, store, recorder):
        warning = ErrorInfo(
            message="TS6133: 'users' is declared but its value is never read.",
            severity="warning",
            location="src/db/schema.ts:3:1",
        )
        analyzed = []
        definition = schema_machine(
            store,
            returning([warning]),
            analyze_errors=returning(ErrorAnalysis(text="Export users."), calls=analyzed),
        )

        output = await run(definition, recorder)

        assert "AnalyzingErrors" in recorder.states
        assert output.outcome == "success"
        assert output.schema == FIXED
        assert analyzed[0].errors == (warning,)
        assert output.fix_attempts[0].errors == (warning,)

    @pytest.mark.asyncio
    async def test_custom_schema_path_is_used(self, store):
        error = ErrorInfo(message="TS1005: ';' expected.", location="/proj/db/tables.ts:4:2")

        output = await run(
            schema_machine(store, returning([error])),
            project_dir="/proj",
            schema_path="db/tables.ts",
        )

        assert output.schema == FIXED
        assert list(store.files) == ["db/tables.ts"]

    @pytest.mark.asyncio
    async def test_rules_are_passed_to_generation(self, store):
        rules = [SelectedRule(rule_name="timestamps", reason="Track creation time")]
        requests = []

        await run(
            schema_machine(
                store,
                returning([]),
                identify_rules=returning(rules),
                generate_schema=returning(GeneratedCode(code=SCHEMA), calls=requests),
            )
        )

        assert requests[0].schema_specification == "users, lists, items"
        assert requests[0].relevant_rules == tuple(rules)

    @pytest.mark.asyncio
    async def test_generation_failure_lands_in_failed(self, store, recorder):
        output = await run(
            schema_machine(
                store,
                returning([]),
                generate_schema=raising(GenerationError("rate limited")),
            ),
            recorder,
        )

        assert recorder.states[-1] == "Failed"
        assert output.outcome == "failed"
        assert not output.succeeded
        assert isinstance(output.error, GenerationError)
        assert store.files == {}

    @pytest.mark.asyncio
    async def test_rule_identification_failure_lands_in_failed(self, store):
        output = await run(
            schema_machine(store, returning([]), identify_rules=raising(GenerationError("bad"))),
        )

        assert output.outcome == "failed"
        assert output.schema_specification == "users, lists, items"

    @pytest.mark.asyncio
    async def test_checker_failure_lands_in_failed(self, store):
        output = await run(schema_machine(store, raising(RuntimeError("tsc missing"))))

        assert output.outcome == "failed"
        assert str(output.error) == "tsc missing"
        assert output.schema == SCHEMA

    @pytest.mark.asyncio
    async def test_stages_are_logged_through_machine_logger(self, store):
        logger = RecordingLogger()
        definition = schema_machine(
            store,
            returning([]),
            generate_schema=raising(GenerationError("rate limited")),
        )

        actor = start(definition, SchemaCodegenInput(spec=SPEC), logger=logger)
        await asyncio.wait_for(actor.done(), timeout=1)

        assert [fields["stage"] for fields in logger.events("stage_entered")] == [
            "table-analysis",
            "rule-identification",
            "schema-generation",
        ]
        assert logger.events("stage_entered")[0]["message"] == "Analyzing database tables"
        failures = logger.events("stage_failed")
        assert len(failures) == 1
        assert failures[0]["stage"] == "schema-generation"
        assert failures[0]["error"] == "rate limited"
        assert failures[0]["error_type"] == "GenerationError"
        assert ("error", "stage_failed", failures[0]) in logger.entries


class TestFixBudget:
    @pytest.mark.asyncio
    async def test_fixed_schema_is_rechecked(self, store, recorder):
        checks = []
        definition = schema_machine(store, sequence([schema_error()], [], calls=checks))

        output = await run(definition, recorder, max_fix_attempts=3)

        assert len(checks) == 2
        assert recorder.states[-3:] == ["SavingFixed", "CheckingValidity", "Success"]
        assert output.verified
        assert output.schema == FIXED
        assert len(output.fix_attempts) == 1

    @pytest.mark.asyncio
    async def test_budget_exhausted_ends_in_failed_to_fix(self, store):
        fixes = iter(["fix one\n", "fix two\n"])
        definition = schema_machine(
            store,
            returning([schema_error()]),
            fix_schema=calling(lambda request: GeneratedCode(code=next(fixes))),
        )

        output = await run(definition, max_fix_attempts=2)

        assert output.outcome == "failed_to_fix"
        assert not output.succeeded
        assert len(output.fix_attempts) == 2
        assert output.schema == "fix two\n"
        assert output.errors == [schema_error()]
        assert output.to_dict()["fix_attempts"] == 2

    @pytest.mark.asyncio
    async def test_each_fix_starts_from_previous_fix(self, store):
        fixes = []
        definition = schema_machine(
            store,
            sequence([schema_error()], [schema_error()], []),
            fix_schema=calling(
                lambda request: fixes.append(request) or GeneratedCode(code=f"v{len(fixes)}\n")
            ),
        )

        output = await run(definition, max_fix_attempts=3)

        assert [request.original for request in fixes] == [SCHEMA, "v1\n"]
        assert output.schema == "v2\n"
        assert output.verified
