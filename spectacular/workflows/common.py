"""Actions and request types shared by the workflow machines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from spectacular.machine import Log, Transition, assign, log


@dataclass(frozen=True)
class SaveRequest:
    """Input of a save actor."""

    location: str
    content: str


@dataclass(frozen=True)
class CheckRequest:
    """Input of a validity-check actor."""

    project_dir: str


@dataclass(frozen=True)
class FixRequest:
    """Input of a fix actor: remediation advice plus the code it applies to."""

    analysis: str
    original: str


def log_stage(stage: str, message: str) -> Log:
    """Entry action logging the stage through the machine's logger."""
    return log("stage_entered", stage=stage, message=message)


def fail_to(target: str, stage: str) -> Transition:
    """Error transition that stores the triggering error in ``context.error``."""
    log_failure = log(
        "stage_failed",
        level="error",
        fields=lambda ctx, ev: {"error": str(ev.error), "error_type": type(ev.error).__name__},
        stage=stage,
    )

    return Transition(
        target=target,
        actions=[log_failure, assign(error=lambda ctx, ev: ev.error)],
        description=f"{stage} failed",
    )


def mark_outcome(outcome: str) -> Callable[[Any, Any], dict[str, str]]:
    """Entry action for final states recording how the run ended."""

    def action(context: Any, event: Any) -> dict[str, str]:
        return {"outcome": outcome}

    action.__name__ = f"mark_{outcome}"
    return action
