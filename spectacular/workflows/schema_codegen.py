"""Database schema pipeline: specification to a checked Drizzle schema."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from spectacular.ai.types import ErrorInfo, SelectedRule
from spectacular.machine import Invoke, MachineDefinition, StateNode, Transition, assign, noop, not_provided
from spectacular.workflows.common import SaveRequest, fail_to, log_stage
from spectacular.workflows.fixing import FixAttempt, final_artifact, fix_loop_states

DEFAULT_SCHEMA_PATH = "src/db/schema.ts"


@dataclass(frozen=True)
class SchemaCodegenInput:
    spec: str
    project_dir: str = "."
    schema_path: str = DEFAULT_SCHEMA_PATH
    max_fix_attempts: int = 1


@dataclass(frozen=True)
class GenerateSchemaRequest:
    schema_specification: str
    relevant_rules: tuple[SelectedRule, ...] = ()


@dataclass(frozen=True)
class AnalyzeSchemaErrorsRequest:
    schema_specification: str
    schema: str
    errors: tuple[ErrorInfo, ...]


@dataclass(frozen=True)
class SchemaCodegenContext:
    spec: str
    project_dir: str
    schema_path: str
    max_fix_attempts: int
    schema_specification: str = ""
    relevant_rules: tuple[SelectedRule, ...] = ()
    schema: str = ""
    errors: tuple[ErrorInfo, ...] = ()
    fix_attempts: tuple[FixAttempt, ...] = ()
    verified: bool = False
    outcome: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class SchemaCodegenOutput:
    """
    Result of a schema pipeline run.

    ``schema`` is the final artifact: the last fix if one was produced,
    otherwise the originally generated schema. ``outcome`` is one of
    ``success``, ``failed_to_fix`` or ``failed``.
    """

    outcome: str
    schema: str
    original_schema: str = ""
    schema_specification: str = ""
    verified: bool = False
    errors: list[ErrorInfo] = field(default_factory=list)
    fix_attempts: list[FixAttempt] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "verified": self.verified,
            "schema_length": len(self.schema),
            "fixed": self.schema != self.original_schema,
            "errors": [error.to_dict() for error in self.errors],
            "fix_attempts": len(self.fix_attempts),
            "error": str(self.error) if self.error else None,
        }


def _context(input: SchemaCodegenInput) -> SchemaCodegenContext:
    return SchemaCodegenContext(
        spec=input.spec,
        project_dir=input.project_dir,
        schema_path=input.schema_path,
        max_fix_attempts=input.max_fix_attempts,
    )


def _output(ctx: SchemaCodegenContext) -> SchemaCodegenOutput:
    return SchemaCodegenOutput(
        outcome=ctx.outcome or "failed",
        schema=final_artifact(ctx.schema, ctx.fix_attempts),
        original_schema=ctx.schema,
        schema_specification=ctx.schema_specification,
        verified=ctx.verified,
        errors=list(ctx.errors),
        fix_attempts=list(ctx.fix_attempts),
        error=ctx.error,
    )


schema_codegen_machine = MachineDefinition(
    id="schema-codegen",
    description="Generate, save and check a database schema from a specification",
    initial="Analyzing",
    context=_context,
    output=_output,
    states={
        "Analyzing": StateNode(
            entry=log_stage("table-analysis", "Analyzing database tables"),
            invoke=Invoke(
                src="analyze_tables",
                input=lambda ctx: ctx.spec,
                on_done=Transition(
                    target="IdentifyingRules",
                    actions=assign(schema_specification=lambda ctx, ev: ev.output.schema_specification),
                ),
                on_error=fail_to("Failed", "table-analysis"),
            ),
        ),
        "IdentifyingRules": StateNode(
            entry=log_stage("rule-identification", "Identifying relevant rules"),
            invoke=Invoke(
                src="identify_rules",
                input=lambda ctx: ctx.schema_specification,
                on_done=Transition(
                    target="Generating",
                    actions=assign(relevant_rules=lambda ctx, ev: tuple(ev.output or ())),
                ),
                on_error=fail_to("Failed", "rule-identification"),
            ),
        ),
        "Generating": StateNode(
            entry=log_stage("schema-generation", "Generating database schema"),
            invoke=Invoke(
                src="generate_schema",
                input=lambda ctx: GenerateSchemaRequest(
                    schema_specification=ctx.schema_specification,
                    relevant_rules=ctx.relevant_rules,
                ),
                on_done=Transition(
                    target="Saving",
                    actions=assign(schema=lambda ctx, ev: ev.output.code),
                ),
                on_error=fail_to("Failed", "schema-generation"),
            ),
        ),
        "Saving": StateNode(
            entry=log_stage("save-schema", "Saving schema"),
            invoke=Invoke(
                src="save_schema",
                input=lambda ctx: SaveRequest(location=ctx.schema_path, content=ctx.schema),
                on_done=Transition(target="CheckingValidity"),
                on_error=fail_to("Failed", "save-schema"),
            ),
        ),
        **fix_loop_states(
            label="schema",
            original=lambda ctx: ctx.schema,
            artifact_path=lambda ctx: ctx.schema_path,
            analyze_src="analyze_errors",
            analyze_input=lambda ctx, code: AnalyzeSchemaErrorsRequest(
                schema_specification=ctx.schema_specification,
                schema=code,
                errors=ctx.errors,
            ),
            fix_src="fix_schema",
            save_src="save_schema",
        ),
    },
    actors={
        "analyze_tables": not_provided("analyze_tables"),
        "identify_rules": not_provided("identify_rules"),
        "generate_schema": not_provided("generate_schema"),
        "save_schema": noop,
        "check_validity": not_provided("check_validity"),
        "analyze_errors": not_provided("analyze_errors"),
        "fix_schema": not_provided("fix_schema"),
    },
)
