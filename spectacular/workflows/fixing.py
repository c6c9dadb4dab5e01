"""Verify-and-fix tail shared by the schema and API pipelines.

After an artifact is saved, the pipelines run the static checker, keep the
findings that name the artifact, and, when there are any, perform a fix
attempt: diagnose the errors, rewrite the artifact, save it again. Each
attempt is recorded as a ``FixAttempt``; the last attempt that produced code
is the pipeline's final artifact.

With ``max_fix_attempts == 1`` a fixed artifact is not re-checked. Larger
budgets loop back to the checker after every fix and end in ``FailedToFix``
once the budget is spent with errors left.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Callable, Iterable, Optional, Sequence

from spectacular.ai.types import ErrorInfo
from spectacular.machine import Invoke, StateNode, Transition, assign
from spectacular.workflows.common import (
    CheckRequest,
    FixRequest,
    SaveRequest,
    fail_to,
    log_stage,
    mark_outcome,
)

_POSITION = re.compile(r"(:\d+)+$")


@dataclass(frozen=True)
class FixAttempt:
    """One diagnose/rewrite/re-save cycle."""

    errors: tuple[ErrorInfo, ...]
    analysis: Optional[str] = None
    fixed_code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "errors": [error.to_dict() for error in self.errors],
            "analysis": self.analysis,
            "fixed_code": self.fixed_code,
        }


class ArtifactInvalidError(Exception):
    """An artifact still fails static checking after every allowed fix attempt."""

    def __init__(self, path: str, errors: Sequence[ErrorInfo]) -> None:
        self.path = path
        self.errors = list(errors)
        super().__init__(f"{path} still has {len(self.errors)} error(s) after fixing")


def _parts(path: str) -> tuple[str, ...]:
    return PurePosixPath(path.replace("\\", "/")).parts


def names_artifact(location: Optional[str], artifact_path: str) -> bool:
    """
    Check whether a finding's location refers to ``artifact_path``.

    Line and column suffixes are ignored, and either side may be relative
    to the other (``/work/src/db/schema.ts:3:1`` names ``src/db/schema.ts``).
    """
    if not location:
        return False

    found = _parts(_POSITION.sub("", location))
    target = _parts(artifact_path)
    if not found or not target:
        return False

    shorter = min(len(found), len(target))
    return found[-shorter:] == target[-shorter:]


def filter_artifact_errors(errors: Iterable[ErrorInfo], artifact_path: str) -> list[ErrorInfo]:
    """Keep the findings that point at the artifact, whatever their severity, in reported order."""
    return [error for error in errors if names_artifact(error.location, artifact_path)]


def final_artifact(original: str, attempts: Sequence[FixAttempt]) -> str:
    """The last fix that produced code wins; otherwise the original is returned."""
    for attempt in reversed(attempts):
        if attempt.fixed_code is not None:
            return attempt.fixed_code
    return original


def _update_last(attempts: tuple[FixAttempt, ...], **changes: Any) -> tuple[FixAttempt, ...]:
    return attempts[:-1] + (dataclasses.replace(attempts[-1], **changes),)


def fix_loop_states(
    *,
    label: str,
    original: Callable[[Any], str],
    artifact_path: Callable[[Any], str],
    analyze_src: str,
    analyze_input: Callable[[Any, str], Any],
    fix_src: str,
    save_src: str,
    check_src: str = "check_validity",
) -> dict[str, StateNode]:
    """
    Build the verify-and-fix states of a codegen pipeline.

    The pipeline context must carry ``project_dir``, ``errors``,
    ``fix_attempts``, ``max_fix_attempts``, ``verified``, ``error`` and
    ``outcome`` fields.

    Args:
        label: Artifact label used in stage names ("schema", "api")
        original: Reads the originally generated artifact from context
        artifact_path: Reads the artifact's project-relative path from context
        analyze_src: Actor diagnosing checker errors
        analyze_input: Builds the diagnosis input from context and current code
        fix_src: Actor rewriting the artifact
        save_src: Actor persisting the artifact
        check_src: Actor running the static checker

    Returns:
        Mapping of state name to StateNode
    """

    def current(ctx: Any) -> str:
        return final_artifact(original(ctx), ctx.fix_attempts)

    def found(ctx: Any, ev: Any) -> tuple[ErrorInfo, ...]:
        return tuple(filter_artifact_errors(ev.output, artifact_path(ctx)))

    def clean(ctx: Any, ev: Any) -> bool:
        return not found(ctx, ev)

    def budget_left(ctx: Any, ev: Any) -> bool:
        return len(ctx.fix_attempts) < ctx.max_fix_attempts

    def recheck(ctx: Any, ev: Any) -> bool:
        return ctx.max_fix_attempts > 1

    return {
        "CheckingValidity": StateNode(
            entry=log_stage(f"{label}-check", f"Checking {label} validity"),
            invoke=Invoke(
                src=check_src,
                input=lambda ctx: CheckRequest(project_dir=ctx.project_dir),
                on_done=[
                    Transition(
                        target="Success",
                        guard=clean,
                        actions=assign(errors=lambda ctx, ev: (), verified=lambda ctx, ev: True),
                    ),
                    Transition(
                        target="AnalyzingErrors",
                        guard=budget_left,
                        actions=assign(
                            errors=found,
                            verified=lambda ctx, ev: False,
                            fix_attempts=lambda ctx, ev: ctx.fix_attempts
                            + (FixAttempt(errors=found(ctx, ev)),),
                        ),
                    ),
                    Transition(
                        target="FailedToFix",
                        actions=assign(errors=found, verified=lambda ctx, ev: False),
                    ),
                ],
                on_error=fail_to("Failed", f"{label}-check"),
            ),
        ),
        "AnalyzingErrors": StateNode(
            entry=log_stage(f"{label}-error-analysis", f"Analyzing {label} errors"),
            invoke=Invoke(
                src=analyze_src,
                input=lambda ctx: analyze_input(ctx, current(ctx)),
                on_done=Transition(
                    target="FixingErrors",
                    actions=assign(
                        fix_attempts=lambda ctx, ev: _update_last(
                            ctx.fix_attempts, analysis=ev.output.text
                        ),
                    ),
                ),
                on_error=fail_to("Failed", f"{label}-error-analysis"),
            ),
        ),
        "FixingErrors": StateNode(
            entry=log_stage(f"{label}-error-fix", f"Fixing {label} errors"),
            invoke=Invoke(
                src=fix_src,
                input=lambda ctx: FixRequest(
                    analysis=ctx.fix_attempts[-1].analysis or "",
                    original=current(ctx),
                ),
                on_done=Transition(
                    target="SavingFixed",
                    actions=assign(
                        fix_attempts=lambda ctx, ev: _update_last(
                            ctx.fix_attempts, fixed_code=ev.output.code
                        ),
                    ),
                ),
                on_error=fail_to("Failed", f"{label}-error-fix"),
            ),
        ),
        "SavingFixed": StateNode(
            entry=log_stage(f"{label}-save-fixed", f"Saving fixed {label}"),
            invoke=Invoke(
                src=save_src,
                input=lambda ctx: SaveRequest(location=artifact_path(ctx), content=current(ctx)),
                on_done=[
                    Transition(target="CheckingValidity", guard=recheck),
                    Transition(target="Success"),
                ],
                on_error=fail_to("Failed", f"{label}-save-fixed"),
            ),
        ),
        "Success": StateNode(final=True, entry=mark_outcome("success")),
        "FailedToFix": StateNode(final=True, entry=mark_outcome("failed_to_fix")),
        "Failed": StateNode(final=True, entry=mark_outcome("failed")),
    }
