"""API pipeline: schema and specification to a checked Hono entry point."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from spectacular.ai.types import ErrorInfo
from spectacular.machine import Invoke, MachineDefinition, StateNode, Transition, assign, noop, not_provided
from spectacular.workflows.common import SaveRequest, fail_to, log_stage
from spectacular.workflows.fixing import FixAttempt, final_artifact, fix_loop_states

DEFAULT_API_PATH = "src/index.ts"


@dataclass(frozen=True)
class ApiCodegenInput:
    spec: str
    schema: str
    project_dir: str = "."
    api_path: str = DEFAULT_API_PATH
    max_fix_attempts: int = 1


@dataclass(frozen=True)
class GenerateApiRequest:
    schema: str
    spec: str


@dataclass(frozen=True)
class AnalyzeApiErrorsRequest:
    code: str
    errors: tuple[ErrorInfo, ...]


@dataclass(frozen=True)
class ApiCodegenContext:
    spec: str
    schema: str
    project_dir: str
    api_path: str
    max_fix_attempts: int
    code: str = ""
    errors: tuple[ErrorInfo, ...] = ()
    fix_attempts: tuple[FixAttempt, ...] = ()
    verified: bool = False
    outcome: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class ApiCodegenOutput:
    """Result of an API pipeline run; ``code`` is the final artifact."""

    outcome: str
    code: str
    original_code: str = ""
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
            "code_length": len(self.code),
            "fixed": self.code != self.original_code,
            "errors": [error.to_dict() for error in self.errors],
            "fix_attempts": len(self.fix_attempts),
            "error": str(self.error) if self.error else None,
        }


def _context(input: ApiCodegenInput) -> ApiCodegenContext:
    return ApiCodegenContext(
        spec=input.spec,
        schema=input.schema,
        project_dir=input.project_dir,
        api_path=input.api_path,
        max_fix_attempts=input.max_fix_attempts,
    )


def _output(ctx: ApiCodegenContext) -> ApiCodegenOutput:
    return ApiCodegenOutput(
        outcome=ctx.outcome or "failed",
        code=final_artifact(ctx.code, ctx.fix_attempts),
        original_code=ctx.code,
        verified=ctx.verified,
        errors=list(ctx.errors),
        fix_attempts=list(ctx.fix_attempts),
        error=ctx.error,
    )


api_codegen_machine = MachineDefinition(
    id="api-codegen",
    description="Generate, save and check API code for a database schema",
    initial="Generating",
    context=_context,
    output=_output,
    states={
        "Generating": StateNode(
            entry=log_stage("api-generation", "Generating API code"),
            invoke=Invoke(
                src="generate_api",
                input=lambda ctx: GenerateApiRequest(schema=ctx.schema, spec=ctx.spec),
                on_done=Transition(
                    target="Saving",
                    actions=assign(code=lambda ctx, ev: ev.output.code),
                ),
                on_error=fail_to("Failed", "api-generation"),
            ),
        ),
        "Saving": StateNode(
            entry=log_stage("save-api", "Saving API code"),
            invoke=Invoke(
                src="save_api",
                input=lambda ctx: SaveRequest(location=ctx.api_path, content=ctx.code),
                on_done=Transition(target="CheckingValidity"),
                on_error=fail_to("Failed", "save-api"),
            ),
        ),
        **fix_loop_states(
            label="api",
            original=lambda ctx: ctx.code,
            artifact_path=lambda ctx: ctx.api_path,
            analyze_src="analyze_errors",
            analyze_input=lambda ctx, code: AnalyzeApiErrorsRequest(code=code, errors=ctx.errors),
            fix_src="fix_api",
            save_src="save_api",
        ),
    },
    actors={
        "generate_api": not_provided("generate_api"),
        "save_api": noop,
        "check_validity": not_provided("check_validity"),
        "analyze_errors": not_provided("analyze_errors"),
        "fix_api": not_provided("fix_api"),
    },
)
