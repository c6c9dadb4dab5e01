"""Data types exchanged with the generation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from spectacular.streaming.stream import Message


class GenerationError(Exception):
    """A model call failed (transport, rate limit, refusal)."""

    pass


class GenerationValidationError(GenerationError):
    """A model call succeeded but returned output of the wrong shape."""

    pass


def _require(data: dict[str, Any], key: str, kind: type = str) -> Any:
    value = data.get(key)
    if not isinstance(value, kind):
        raise GenerationValidationError(
            f"Expected '{key}' of type {kind.__name__} in model output, got {type(value).__name__}"
        )
    return value


class NextStep(str, Enum):
    """Routing verdicts for the ideation conversation."""

    ASK_FOLLOW_UP_QUESTION = "ask_follow_up_question"
    GENERATE_IMPLEMENTATION_PLAN = "generate_implementation_plan"


@dataclass(frozen=True)
class RouterResponse:
    """Classifier verdict with the model's rationale."""

    next_step: NextStep
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"next_step": self.next_step.value, "reasoning": self.reasoning}


@dataclass(frozen=True)
class GeneratedSpec:
    """A titled specification document."""

    title: str
    plan: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeneratedSpec":
        return cls(title=_require(data, "title"), plan=_require(data, "plan"))

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "plan": self.plan}


@dataclass(frozen=True)
class ErrorInfo:
    """One static-checker finding."""

    message: str
    severity: str = "error"
    location: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "severity": self.severity,
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorInfo":
        return cls(
            message=data["message"],
            severity=data.get("severity", "error"),
            location=data.get("location"),
        )


@dataclass(frozen=True)
class TableAnalysis:
    """Tables derived from a project specification."""

    reasoning: str
    schema_specification: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableAnalysis":
        return cls(
            reasoning=_require(data, "reasoning"),
            schema_specification=_require(data, "schema_specification"),
        )


@dataclass(frozen=True)
class SelectedRule:
    """A knowledge-base rule chosen for schema generation."""

    rule_name: str
    reason: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectedRule":
        return cls(rule_name=_require(data, "rule_name"), reason=_require(data, "reason"))

    def to_dict(self) -> dict[str, Any]:
        return {"rule_name": self.rule_name, "reason": self.reason}


@dataclass(frozen=True)
class GeneratedCode:
    """Source code produced by a generation or fix call."""

    code: str
    explanation: str = ""


@dataclass(frozen=True)
class ErrorAnalysis:
    """Free-form remediation advice for a set of checker errors."""

    text: str
    sources: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompletionResult:
    """Text of a free-form completion plus any cited web sources."""

    text: str
    sources: list[str] = field(default_factory=list)


__all__ = [
    "Message",
    "GenerationError",
    "GenerationValidationError",
    "NextStep",
    "RouterResponse",
    "GeneratedSpec",
    "ErrorInfo",
    "TableAnalysis",
    "SelectedRule",
    "GeneratedCode",
    "ErrorAnalysis",
    "CompletionResult",
]
