"""Model calls behind the schema and API pipelines."""

from __future__ import annotations

import json
import re
from typing import Optional, Sequence

from spectacular.ai.client import GenerationService
from spectacular.ai.prompts import render
from spectacular.ai.types import (
    ErrorAnalysis,
    ErrorInfo,
    GeneratedCode,
    GenerationValidationError,
    Message,
    SelectedRule,
    TableAnalysis,
)
from spectacular.machine import CancelSignal
from spectacular.utils.logging import get_logger

logger = get_logger("ai.codegen")

_FENCE = re.compile(r"```(?:typescript|ts|tsx|javascript|js)?[ \t]*\n(.*?)```", re.DOTALL)

TABLE_ANALYSIS_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {
            "type": "string",
            "description": "Your analysis of the specification and why you chose these tables.",
        },
        "schema_specification": {
            "type": "string",
            "description": "The detailed database schema specification as a markdown document.",
        },
    },
    "required": ["reasoning", "schema_specification"],
}

RULES_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string", "description": "Your reasoning for selecting these rules"},
        "selected_rules": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "rule_name": {"type": "string", "description": "Name of the rule to apply"},
                    "reason": {"type": "string", "description": "Why this rule is relevant"},
                },
                "required": ["rule_name", "reason"],
            },
        },
    },
    "required": ["reasoning", "selected_rules"],
}

SCHEMA_CODE_SCHEMA = {
    "type": "object",
    "properties": {
        "explanation": {
            "type": "string",
            "description": "Explanation of your schema design decisions",
        },
        "code": {
            "type": "string",
            "description": "The generated Drizzle typescript schema definition.",
        },
    },
    "required": ["explanation", "code"],
}


def extract_code(text: str) -> str:
    """
    Return the first fenced code block in ``text``.

    Text without a fence is returned unmodified.
    """
    match = _FENCE.search(text)
    if match:
        return match.group(1).rstrip() + "\n"
    return text


def _errors_json(errors: Sequence[ErrorInfo]) -> str:
    return json.dumps([error.to_dict() for error in errors], indent=2)


async def analyze_tables(
    service: GenerationService,
    spec: str,
    signal: Optional[CancelSignal] = None,
) -> TableAnalysis:
    """
    Derive the database tables needed by a specification.

    Args:
        service: Generation service
        spec: Project specification text
        signal: Cancellation signal

    Returns:
        TableAnalysis with the reasoning and a markdown schema specification
    """
    if not spec.strip():
        raise GenerationValidationError("Spec content is required for schema analysis")

    data = await service.generate_structured(
        [Message.user(render("analyze_tables_user", spec=spec))],
        TABLE_ANALYSIS_SCHEMA,
        system=render("analyze_tables_system"),
        tool_name="record_tables",
        signal=signal,
    )
    analysis = TableAnalysis.from_dict(data)
    logger.info(
        "tables_analyzed",
        reasoning_length=len(analysis.reasoning),
        specification_length=len(analysis.schema_specification),
    )
    return analysis


async def identify_rules(
    service: GenerationService,
    schema_specification: str,
    rules: Sequence[str] = (),
    signal: Optional[CancelSignal] = None,
) -> list[SelectedRule]:
    """Pick the knowledge-base rules relevant to a schema; none without a rule list."""
    if not rules:
        return []

    data = await service.generate_structured(
        [
            Message.user(
                render(
                    "identify_rules_user",
                    schema_specification=schema_specification,
                    rules=list(rules),
                )
            )
        ],
        RULES_SCHEMA,
        system=render("identify_rules_system"),
        tool_name="select_rules",
        signal=signal,
    )
    selected = data.get("selected_rules")
    if not isinstance(selected, list):
        raise GenerationValidationError("Expected 'selected_rules' list in model output")

    known = set(rules)
    return [rule for rule in map(SelectedRule.from_dict, selected) if rule.rule_name in known]


async def generate_schema(
    service: GenerationService,
    schema_specification: str,
    relevant_rules: Sequence[SelectedRule] = (),
    signal: Optional[CancelSignal] = None,
) -> GeneratedCode:
    data = await service.generate_structured(
        [
            Message.user(
                render(
                    "generate_schema_user",
                    schema_specification=schema_specification,
                    rules_json=json.dumps([rule.to_dict() for rule in relevant_rules], indent=2),
                )
            )
        ],
        SCHEMA_CODE_SCHEMA,
        system=render("generate_schema_system"),
        tool_name="write_schema",
        temperature=0.0,
        signal=signal,
    )
    code = data.get("code")
    if not isinstance(code, str) or not code.strip():
        raise GenerationValidationError("Model returned an empty schema")

    logger.info("schema_generated", length=len(code))
    return GeneratedCode(code=extract_code(code), explanation=str(data.get("explanation", "")))


async def analyze_schema_errors(
    service: GenerationService,
    schema_specification: str,
    schema: str,
    errors: Sequence[ErrorInfo],
    signal: Optional[CancelSignal] = None,
    web_search: bool = False,
) -> ErrorAnalysis:
    """Ask for remediation advice on schema type errors."""
    result = await service.complete(
        render(
            "analyze_schema_errors",
            schema_specification=schema_specification,
            schema=schema,
            errors_json=_errors_json(errors),
            web_search=web_search,
        ),
        web_search=web_search,
        signal=signal,
    )
    logger.info("schema_errors_analyzed", errors=len(errors), length=len(result.text))
    return ErrorAnalysis(text=result.text, sources=result.sources)


async def fix_schema(
    service: GenerationService,
    analysis: str,
    original: str,
    signal: Optional[CancelSignal] = None,
) -> GeneratedCode:
    """Rewrite the schema following an error analysis."""
    result = await service.complete(
        render("fix_schema", analysis=analysis, original=original),
        temperature=0.0,
        signal=signal,
    )
    logger.info("schema_fixed", length=len(result.text))
    return GeneratedCode(code=extract_code(result.text))


async def generate_api(
    service: GenerationService,
    schema: str,
    spec: str,
    signal: Optional[CancelSignal] = None,
) -> GeneratedCode:
    """Write the API entry point for a schema and specification."""
    result = await service.complete(
        render("generate_api_user", schema=schema, spec=spec),
        system=render("generate_api_system"),
        temperature=0.0,
        signal=signal,
    )
    if not result.text.strip():
        raise GenerationValidationError("Model returned empty API code")

    logger.info("api_generated", length=len(result.text))
    return GeneratedCode(code=extract_code(result.text))


async def analyze_api_errors(
    service: GenerationService,
    code: str,
    errors: Sequence[ErrorInfo],
    signal: Optional[CancelSignal] = None,
    web_search: bool = True,
) -> ErrorAnalysis:
    """Ask for remediation advice on API type errors."""
    result = await service.complete(
        render(
            "analyze_api_errors",
            code=code,
            errors_json=_errors_json(errors),
            web_search=web_search,
        ),
        web_search=web_search,
        signal=signal,
    )
    logger.info(
        "api_errors_analyzed",
        errors=len(errors),
        length=len(result.text),
        sources=len(result.sources),
    )
    return ErrorAnalysis(text=result.text, sources=result.sources)


async def fix_api(
    service: GenerationService,
    analysis: str,
    original: str,
    signal: Optional[CancelSignal] = None,
) -> GeneratedCode:
    result = await service.complete(
        render("fix_api", analysis=analysis, original=original),
        temperature=0.0,
        signal=signal,
    )
    logger.info("api_fixed", length=len(result.text))
    return GeneratedCode(code=extract_code(result.text))
