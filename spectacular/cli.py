"""CLI entry point for spectacular."""

from __future__ import annotations

import asyncio
import json
import signal
import sys
import time
from pathlib import Path
from typing import Any, Optional

import click

from spectacular import __version__
from spectacular.adapters import FileStore, TypeScriptChecker
from spectacular.ai import GenerationService
from spectacular.config import CodegenConfig, SpectacularConfig, load_config
from spectacular.machine import (
    Cancel,
    MachineDefinition,
    Snapshot,
    UserMessage,
    start,
    wait_for,
)
from spectacular.utils.logging import configure_logging, get_logger, log_outcome, run_context
from spectacular.utils.result import ExitCode
from spectacular.workflows import (
    ApiCodegenInput,
    IdeationInput,
    ProjectCodegenInput,
    SchemaCodegenInput,
    api_actors,
    api_codegen_machine,
    ideation_actors,
    ideation_machine,
    project_actors,
    project_codegen_machine,
    schema_actors,
    schema_codegen_machine,
)

# Default paths
DEFAULT_CONFIG = "./config"

QUIT_COMMANDS = ("/quit", "/exit")


class Context:
    """CLI context for sharing state between commands."""

    def __init__(self, config_dir: Path, config: SpectacularConfig) -> None:
        self.config_dir = config_dir
        self.config = config
        self.logger = get_logger("cli")
        self.started = time.monotonic()

    def service(self) -> GenerationService:
        """Build the generation service, exiting when no API key is configured."""
        if not self.config.ai.api_key:
            output_json({
                "status": "error",
                "message": "ANTHROPIC_API_KEY not set (environment or ai.api_key in config)",
            })
            sys.exit(ExitCode.MISSING_API_KEY)
        return GenerationService.from_config(self.config.ai)

    def codegen(self, max_fix_attempts: Optional[int] = None) -> CodegenConfig:
        """Codegen settings with a validated fix budget override applied."""
        result = self.config.with_max_fix_attempts(max_fix_attempts)
        if result.is_err():
            output_json({"status": "error", "message": str(result.unwrap_err())})
            sys.exit(ExitCode.CONFIG_ERROR)
        return result.unwrap().codegen

    def checker(self) -> TypeScriptChecker:
        return TypeScriptChecker(
            command=self.config.codegen.check_command,
            timeout=self.config.codegen.check_timeout,
        )


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def read_input(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        output_json({"status": "error", "message": f"Cannot read {path}: {e}"})
        sys.exit(ExitCode.INPUT_NOT_FOUND)


async def run_to_completion(definition: MachineDefinition, input: Any) -> Any:
    """Start a machine and wait for its output."""
    actor = start(definition, input)
    try:
        return await actor.done()
    finally:
        actor.stop()


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to config directory",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Logging level (overrides config)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"], case_sensitive=False),
    default=None,
    help="Log format (overrides config)",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path,
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    """
    Spectacular - turn a project idea into a spec, a schema and an API.

    Ideates on a project in conversation, writes the resulting spec, then
    generates a Drizzle schema and a Hono API, type-checking and fixing
    each artifact.
    """
    result = load_config(config)
    if result.is_err():
        configure_logging(level=log_level or "info", format_type=log_format or "json")
        output_json({"status": "error", "message": str(result.unwrap_err())})
        ctx.exit(ExitCode.CONFIG_ERROR)

    settings = result.unwrap()
    configure_logging(
        level=log_level or settings.logging.level,
        format_type=log_format or settings.logging.format,
    )

    run_id = ctx.with_resource(run_context())
    ctx.obj = Context(config_dir=config, config=settings)
    ctx.obj.logger.debug("config_loaded", config_dir=str(config), run_id=run_id)


@cli.command()
@click.option(
    "--cwd",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Directory the spec is saved in",
)
@click.option(
    "--save/--no-save",
    default=True,
    help="Write the generated spec to disk",
)
@pass_context
def ideate(ctx: Context, cwd: Path, save: bool) -> None:
    """Talk through a project idea until a spec can be written.

    Ctrl-C cancels the pending answer; /quit or Ctrl-D ends the session.
    """
    service = ctx.service()
    # Spec locations already include cwd
    store = FileStore() if save else None
    ctx.logger.info("ideation_started", cwd=str(cwd))

    try:
        output = asyncio.run(_ideate(service, store, cwd))
    except click.Abort:
        output = None

    if output is None:
        log_outcome("ideation", "cancelled", ctx.started)
        output_json({"status": "cancelled", "message": "Session ended without a spec"})
        return

    log_outcome("ideation", "success", ctx.started, spec_location=output.spec_location)
    output_json({"status": "success", **output.to_dict()})


async def _ideate(service: GenerationService, store: Optional[FileStore], cwd: Path) -> Any:
    definition = ideation_machine.provide(ideation_actors(service, store))
    actor = start(definition, IdeationInput(cwd=str(cwd)))
    printed = 0

    def show(snapshot: Snapshot) -> None:
        nonlocal printed
        text = snapshot.context.streaming_text
        if len(text) < printed:
            printed = 0
        if len(text) > printed:
            click.echo(text[printed:], nl=False)
            printed = len(text)

    actor.subscribe(show)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, lambda: actor.send(Cancel()))
    except (NotImplementedError, RuntimeError):
        pass

    try:
        while True:
            prompt = await asyncio.to_thread(click.prompt, "\nyou", prompt_suffix="> ")
            if prompt.strip() in QUIT_COMMANDS:
                return None

            actor.send(UserMessage(prompt=prompt))
            snapshot = await wait_for(
                actor,
                lambda s: s.done or s.matches("AwaitingUserInput", "Error"),
            )
            click.echo()

            if snapshot.done:
                return await actor.done()
            if snapshot.matches("Error"):
                click.echo(f"error: {snapshot.context.error}", err=True)
            elif snapshot.context.cancelled:
                click.echo("(cancelled)", err=True)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        actor.stop()


def _report(ctx: Context, name: str, output: Any, failure_code: int) -> None:
    log_outcome(name, output.outcome, ctx.started)
    output_json({"status": output.outcome, **output.to_dict()})
    if not output.succeeded:
        sys.exit(failure_code)


@cli.command("create-schema")
@click.option(
    "--spec",
    "spec_file",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Spec document to build the schema from",
)
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project directory the schema is written into",
)
@click.option(
    "--max-fix-attempts",
    type=int,
    default=None,
    help="Fix attempts before giving up (overrides config)",
)
@pass_context
def create_schema(
    ctx: Context,
    spec_file: Path,
    project: Path,
    max_fix_attempts: Optional[int],
) -> None:
    """Generate and check the database schema for a spec."""
    codegen = ctx.codegen(max_fix_attempts)
    spec = read_input(spec_file)
    service = ctx.service()

    definition = schema_codegen_machine.provide(
        schema_actors(
            service,
            FileStore(project),
            ctx.checker(),
            rules=codegen.rules,
            web_search=codegen.web_search,
        )
    )
    output = asyncio.run(
        run_to_completion(
            definition,
            SchemaCodegenInput(
                spec=spec,
                project_dir=str(project),
                schema_path=codegen.schema_path,
                max_fix_attempts=codegen.max_fix_attempts,
            ),
        )
    )
    _report(ctx, "schema", output, ExitCode.SCHEMA_FAILED)


@cli.command("create-api")
@click.option(
    "--spec",
    "spec_file",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Spec document describing the API",
)
@click.option(
    "--schema",
    "schema_file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Schema file (defaults to the configured schema path in the project)",
)
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project directory the API is written into",
)
@click.option(
    "--max-fix-attempts",
    type=int,
    default=None,
    help="Fix attempts before giving up (overrides config)",
)
@pass_context
def create_api(
    ctx: Context,
    spec_file: Path,
    schema_file: Optional[Path],
    project: Path,
    max_fix_attempts: Optional[int],
) -> None:
    """Generate and check the API for a spec and an existing schema."""
    codegen = ctx.codegen(max_fix_attempts)
    spec = read_input(spec_file)
    schema = read_input(schema_file or project / codegen.schema_path)
    service = ctx.service()

    definition = api_codegen_machine.provide(
        api_actors(service, FileStore(project), ctx.checker(), web_search=codegen.web_search)
    )
    output = asyncio.run(
        run_to_completion(
            definition,
            ApiCodegenInput(
                spec=spec,
                schema=schema,
                project_dir=str(project),
                api_path=codegen.api_path,
                max_fix_attempts=codegen.max_fix_attempts,
            ),
        )
    )
    _report(ctx, "api", output, ExitCode.API_FAILED)


@cli.command()
@click.option(
    "--spec",
    "spec_file",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Spec document to build the project from",
)
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project directory",
)
@click.option(
    "--max-fix-attempts",
    type=int,
    default=None,
    help="Fix attempts per artifact before giving up (overrides config)",
)
@pass_context
def generate(
    ctx: Context,
    spec_file: Path,
    project: Path,
    max_fix_attempts: Optional[int],
) -> None:
    """Generate the schema, then the API, for a spec."""
    codegen = ctx.codegen(max_fix_attempts)
    spec = read_input(spec_file)
    service = ctx.service()

    definition = project_codegen_machine.provide(
        project_actors(
            service,
            FileStore(project),
            ctx.checker(),
            rules=codegen.rules,
            web_search=codegen.web_search,
        )
    )
    output = asyncio.run(
        run_to_completion(
            definition,
            ProjectCodegenInput(
                spec=spec,
                project_dir=str(project),
                schema_path=codegen.schema_path,
                api_path=codegen.api_path,
                max_fix_attempts=codegen.max_fix_attempts,
            ),
        )
    )
    failure = ExitCode.API_FAILED if output.schema and output.schema.succeeded else ExitCode.SCHEMA_FAILED
    _report(ctx, "project", output, failure)


@cli.command("show-config")
@pass_context
def show_config(ctx: Context) -> None:
    """Print the effective configuration."""
    output_json({"status": "success", "config": ctx.config.to_dict()})


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        logger = get_logger("cli")
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
