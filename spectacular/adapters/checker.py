"""Static-validity checking of generated TypeScript projects."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Optional, Sequence, Union

from spectacular.ai.types import ErrorInfo
from spectacular.machine import CancelSignal, InvocationCancelled, run_cancellable
from spectacular.utils.logging import get_logger

logger = get_logger("adapters.checker")

# Compiler timeout
CHECK_TIMEOUT = 120  # seconds

DEFAULT_COMMAND = ("npx", "tsc", "--noEmit", "--pretty", "false")

_DIAGNOSTIC = re.compile(
    r"^(?P<path>[^\s(][^(]*)\((?P<line>\d+),(?P<column>\d+)\): "
    r"(?P<severity>error|warning|message) (?P<code>TS\d+): (?P<message>.*)$"
)


class CheckerError(Exception):
    """The checker could not run or produced output it could not parse."""

    pass


def parse_diagnostics(output: str) -> list[ErrorInfo]:
    """
    Parse ``tsc --pretty false`` output.

    Indented continuation lines are appended to the preceding message.

    Args:
        output: Combined compiler output

    Returns:
        Findings in the order the compiler reported them
    """
    findings: list[dict[str, str]] = []
    for line in output.splitlines():
        match = _DIAGNOSTIC.match(line)
        if match:
            findings.append(
                {
                    "message": f"{match['code']}: {match['message']}",
                    "severity": match["severity"],
                    "location": f"{match['path']}:{match['line']}:{match['column']}",
                }
            )
        elif findings and line.startswith((" ", "\t")) and line.strip():
            findings[-1]["message"] += "\n" + line.strip()

    return [ErrorInfo.from_dict(finding) for finding in findings]


class NoopChecker:
    """Reports no findings."""

    async def check(
        self,
        project_dir: Union[str, Path],
        signal: Optional[CancelSignal] = None,
    ) -> list[ErrorInfo]:
        return []


class TypeScriptChecker:
    """
    Runs the TypeScript compiler in a project directory.

    A clean compile returns an empty list; a failing compile returns its
    parsed diagnostics. A failing compile without parseable diagnostics
    raises CheckerError.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        timeout: float = CHECK_TIMEOUT,
    ) -> None:
        """
        Initialize the checker.

        Args:
            command: Compiler command line
            timeout: Seconds before the compiler is killed
        """
        self.command = tuple(command)
        self.timeout = timeout

    async def check(
        self,
        project_dir: Union[str, Path],
        signal: Optional[CancelSignal] = None,
    ) -> list[ErrorInfo]:
        logger.debug("typecheck_started", project_dir=str(project_dir))

        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                cwd=str(project_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CheckerError(f"Could not start {self.command[0]}: {e}") from e

        try:
            stdout, stderr = await run_cancellable(
                asyncio.wait_for(process.communicate(), timeout=self.timeout),
                signal,
            )
        except asyncio.TimeoutError as e:
            self._kill(process)
            raise CheckerError(f"Type check timed out after {self.timeout}s") from e
        except InvocationCancelled:
            self._kill(process)
            raise

        output = stdout.decode(errors="replace") + stderr.decode(errors="replace")
        errors = parse_diagnostics(output)

        if process.returncode != 0 and not errors:
            raise CheckerError(
                f"Type check exited with code {process.returncode}: {output.strip()[:500]}"
            )

        logger.info(
            "typecheck_completed",
            project_dir=str(project_dir),
            returncode=process.returncode,
            errors=len(errors),
        )
        return errors

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
