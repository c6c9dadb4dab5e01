"""Whole-project codegen: the schema pipeline, then the API pipeline.

Both pipelines run as child machines. The API pipeline starts only when the
schema pipeline reaches Success, and receives the schema it produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from spectacular.machine import Invoke, MachineDefinition, StateNode, Transition, assign
from spectacular.workflows.api_codegen import (
    DEFAULT_API_PATH,
    ApiCodegenInput,
    ApiCodegenOutput,
    api_codegen_machine,
)
from spectacular.workflows.common import fail_to, log_stage, mark_outcome
from spectacular.workflows.fixing import ArtifactInvalidError
from spectacular.workflows.schema_codegen import (
    DEFAULT_SCHEMA_PATH,
    SchemaCodegenInput,
    SchemaCodegenOutput,
    schema_codegen_machine,
)


@dataclass(frozen=True)
class ProjectCodegenInput:
    spec: str
    project_dir: str = "."
    schema_path: str = DEFAULT_SCHEMA_PATH
    api_path: str = DEFAULT_API_PATH
    max_fix_attempts: int = 1


@dataclass(frozen=True)
class ProjectCodegenContext:
    spec: str
    project_dir: str
    schema_path: str
    api_path: str
    max_fix_attempts: int
    schema: Optional[SchemaCodegenOutput] = None
    api: Optional[ApiCodegenOutput] = None
    outcome: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ProjectCodegenOutput:
    outcome: str
    schema: Optional[SchemaCodegenOutput] = None
    api: Optional[ApiCodegenOutput] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "schema": self.schema.to_dict() if self.schema else None,
            "api": self.api.to_dict() if self.api else None,
            "error": str(self.error) if self.error else None,
        }


def _child_error(output: Any, path: str) -> BaseException:
    """The error to report for a child pipeline that did not succeed."""
    if output.error is not None:
        return output.error
    return ArtifactInvalidError(path, output.errors)


def _child_succeeded(ctx: ProjectCodegenContext, ev: Any) -> bool:
    return ev.output.succeeded


def _context(input: ProjectCodegenInput) -> ProjectCodegenContext:
    return ProjectCodegenContext(
        spec=input.spec,
        project_dir=input.project_dir,
        schema_path=input.schema_path,
        api_path=input.api_path,
        max_fix_attempts=input.max_fix_attempts,
    )


def _output(ctx: ProjectCodegenContext) -> ProjectCodegenOutput:
    return ProjectCodegenOutput(
        outcome=ctx.outcome or "failed",
        schema=ctx.schema,
        api=ctx.api,
        error=ctx.error,
    )


project_codegen_machine = MachineDefinition(
    id="project-codegen",
    description="Generate the database schema, then the API built on it",
    initial="GeneratingSchema",
    context=_context,
    output=_output,
    states={
        "GeneratingSchema": StateNode(
            entry=log_stage("schema", "Running schema pipeline"),
            invoke=Invoke(
                src="schema_codegen",
                input=lambda ctx: SchemaCodegenInput(
                    spec=ctx.spec,
                    project_dir=ctx.project_dir,
                    schema_path=ctx.schema_path,
                    max_fix_attempts=ctx.max_fix_attempts,
                ),
                on_done=[
                    Transition(
                        target="GeneratingApi",
                        guard=_child_succeeded,
                        actions=assign(schema=lambda ctx, ev: ev.output),
                    ),
                    Transition(
                        target="Failed",
                        actions=assign(
                            schema=lambda ctx, ev: ev.output,
                            error=lambda ctx, ev: _child_error(ev.output, ctx.schema_path),
                        ),
                    ),
                ],
                on_error=fail_to("Failed", "schema"),
            ),
        ),
        "GeneratingApi": StateNode(
            entry=log_stage("api", "Running API pipeline"),
            invoke=Invoke(
                src="api_codegen",
                input=lambda ctx: ApiCodegenInput(
                    spec=ctx.spec,
                    schema=ctx.schema.schema if ctx.schema else "",
                    project_dir=ctx.project_dir,
                    api_path=ctx.api_path,
                    max_fix_attempts=ctx.max_fix_attempts,
                ),
                on_done=[
                    Transition(
                        target="Done",
                        guard=_child_succeeded,
                        actions=assign(api=lambda ctx, ev: ev.output),
                    ),
                    Transition(
                        target="Failed",
                        actions=assign(
                            api=lambda ctx, ev: ev.output,
                            error=lambda ctx, ev: _child_error(ev.output, ctx.api_path),
                        ),
                    ),
                ],
                on_error=fail_to("Failed", "api"),
            ),
        ),
        "Done": StateNode(final=True, entry=mark_outcome("success")),
        "Failed": StateNode(final=True, entry=mark_outcome("failed")),
    },
    actors={
        "schema_codegen": schema_codegen_machine,
        "api_codegen": api_codegen_machine,
    },
)
