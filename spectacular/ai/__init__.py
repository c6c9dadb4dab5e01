"""Model calls used by the workflows."""

from spectacular.ai.chat import ask_next_question, generate_spec, route_request
from spectacular.ai.client import DEFAULT_MODEL, GenerationService
from spectacular.ai.codegen import (
    analyze_api_errors,
    analyze_schema_errors,
    analyze_tables,
    extract_code,
    fix_api,
    fix_schema,
    generate_api,
    generate_schema,
    identify_rules,
)
from spectacular.ai.types import (
    CompletionResult,
    ErrorAnalysis,
    ErrorInfo,
    GeneratedCode,
    GeneratedSpec,
    GenerationError,
    GenerationValidationError,
    Message,
    NextStep,
    RouterResponse,
    SelectedRule,
    TableAnalysis,
)

__all__ = [
    "GenerationService",
    "DEFAULT_MODEL",
    # Chat
    "route_request",
    "ask_next_question",
    "generate_spec",
    # Codegen
    "analyze_tables",
    "identify_rules",
    "generate_schema",
    "analyze_schema_errors",
    "fix_schema",
    "generate_api",
    "analyze_api_errors",
    "fix_api",
    "extract_code",
    # Types
    "Message",
    "NextStep",
    "RouterResponse",
    "GeneratedSpec",
    "ErrorInfo",
    "TableAnalysis",
    "SelectedRule",
    "GeneratedCode",
    "ErrorAnalysis",
    "CompletionResult",
    "GenerationError",
    "GenerationValidationError",
]
