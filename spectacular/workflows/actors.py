"""Actor tables wiring the workflows to real collaborators.

Each table maps the actor names a machine invokes to implementations
backed by a GenerationService, an artifact store and a checker. Supply a
table with ``definition.provide(...)`` before starting the machine.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from spectacular.adapters.checker import NoopChecker
from spectacular.adapters.store import ArtifactStore, NoopStore
from spectacular.ai import chat, codegen
from spectacular.ai.client import GenerationService
from spectacular.machine import CancelSignal, ServiceLogic, from_async
from spectacular.workflows.api_codegen import (
    AnalyzeApiErrorsRequest,
    GenerateApiRequest,
    api_codegen_machine,
)
from spectacular.workflows.common import CheckRequest, FixRequest, SaveRequest
from spectacular.workflows.schema_codegen import (
    AnalyzeSchemaErrorsRequest,
    GenerateSchemaRequest,
    schema_codegen_machine,
)


def save_actor(store: ArtifactStore) -> ServiceLogic:
    async def save(request: SaveRequest, signal: CancelSignal) -> str:
        return await store.save(request.location, request.content, signal)

    return from_async(save)


def check_actor(checker: Any) -> ServiceLogic:
    async def check_validity(request: CheckRequest, signal: CancelSignal) -> list:
        return await checker.check(request.project_dir, signal)

    return from_async(check_validity)


def ideation_actors(
    service: GenerationService,
    store: Optional[ArtifactStore] = None,
) -> dict[str, ServiceLogic]:
    """Actors for ``ideation_machine``; spec saving is skipped without a store."""

    async def route_request(messages, signal):
        return await chat.route_request(service, messages, signal)

    async def ask_next_question(messages, signal):
        return await chat.ask_next_question(service, messages, signal)

    async def generate_spec(messages, signal):
        return await chat.generate_spec(service, messages, signal)

    return {
        "route_request": from_async(route_request),
        "ask_next_question": from_async(ask_next_question),
        "generate_spec": from_async(generate_spec),
        "save_spec": save_actor(store or NoopStore()),
    }


def schema_actors(
    service: GenerationService,
    store: Optional[ArtifactStore] = None,
    checker: Any = None,
    rules: Sequence[str] = (),
    web_search: bool = False,
) -> dict[str, ServiceLogic]:
    """
    Actors for ``schema_codegen_machine``.

    Args:
        service: Generation service
        store: Where the schema is written (discarded by default)
        checker: Static-validity checker (reports nothing by default)
        rules: Knowledge-base rule names offered to rule identification
        web_search: Let error analysis search the web
    """

    async def analyze_tables(spec: str, signal):
        return await codegen.analyze_tables(service, spec, signal)

    async def identify_rules(schema_specification: str, signal):
        return await codegen.identify_rules(service, schema_specification, rules, signal)

    async def generate_schema(request: GenerateSchemaRequest, signal):
        return await codegen.generate_schema(
            service, request.schema_specification, request.relevant_rules, signal
        )

    async def analyze_errors(request: AnalyzeSchemaErrorsRequest, signal):
        return await codegen.analyze_schema_errors(
            service,
            request.schema_specification,
            request.schema,
            request.errors,
            signal,
            web_search=web_search,
        )

    async def fix_schema(request: FixRequest, signal):
        return await codegen.fix_schema(service, request.analysis, request.original, signal)

    return {
        "analyze_tables": from_async(analyze_tables),
        "identify_rules": from_async(identify_rules),
        "generate_schema": from_async(generate_schema),
        "save_schema": save_actor(store or NoopStore()),
        "check_validity": check_actor(checker or NoopChecker()),
        "analyze_errors": from_async(analyze_errors),
        "fix_schema": from_async(fix_schema),
    }


def api_actors(
    service: GenerationService,
    store: Optional[ArtifactStore] = None,
    checker: Any = None,
    web_search: bool = True,
) -> dict[str, ServiceLogic]:
    """Actors for ``api_codegen_machine``."""

    async def generate_api(request: GenerateApiRequest, signal):
        return await codegen.generate_api(service, request.schema, request.spec, signal)

    async def analyze_errors(request: AnalyzeApiErrorsRequest, signal):
        return await codegen.analyze_api_errors(
            service, request.code, request.errors, signal, web_search=web_search
        )

    async def fix_api(request: FixRequest, signal):
        return await codegen.fix_api(service, request.analysis, request.original, signal)

    return {
        "generate_api": from_async(generate_api),
        "save_api": save_actor(store or NoopStore()),
        "check_validity": check_actor(checker or NoopChecker()),
        "analyze_errors": from_async(analyze_errors),
        "fix_api": from_async(fix_api),
    }


def project_actors(
    service: GenerationService,
    store: Optional[ArtifactStore] = None,
    checker: Any = None,
    rules: Sequence[str] = (),
    web_search: bool = True,
) -> dict[str, Any]:
    """Child machines for ``project_codegen_machine``, each with its actors provided."""
    return {
        "schema_codegen": schema_codegen_machine.provide(
            schema_actors(service, store, checker, rules=rules, web_search=web_search)
        ),
        "api_codegen": api_codegen_machine.provide(
            api_actors(service, store, checker, web_search=web_search)
        ),
    }
