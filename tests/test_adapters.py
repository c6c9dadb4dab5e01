"""Tests for artifact stores and the TypeScript checker."""

from __future__ import annotations

import sys

import pytest

from spectacular.adapters import (
    CheckerError,
    FileStore,
    MemoryStore,
    NoopChecker,
    NoopStore,
    TypeScriptChecker,
    parse_diagnostics,
)
from spectacular.ai.types import ErrorInfo
from spectacular.machine import CancelSignal, InvocationCancelled

TSC_OUTPUT = """\
src/db/schema.ts(3,15): error TS2304: Cannot find name 'sqliteTable'.
src/index.ts(10,5): error TS2345: Argument of type 'string' is not assignable to parameter of type 'number'.
  Type 'string' is not assignable to type 'number'.
src/index.ts(12,1): warning TS6133: 'unused' is declared but its value is never read.
Found 2 errors in 2 files.
"""


class TestParseDiagnostics:
    def test_parses_findings_in_order(self):
        findings = parse_diagnostics(TSC_OUTPUT)

        assert [finding.location for finding in findings] == [
            "src/db/schema.ts:3:15",
            "src/index.ts:10:5",
            "src/index.ts:12:1",
        ]
        assert findings[0] == ErrorInfo(
            message="TS2304: Cannot find name 'sqliteTable'.",
            severity="error",
            location="src/db/schema.ts:3:15",
        )
        assert findings[2].severity == "warning"

    def test_continuation_lines_join_message(self):
        findings = parse_diagnostics(TSC_OUTPUT)

        assert findings[1].message.endswith("\nType 'string' is not assignable to type 'number'.")

    def test_clean_output(self):
        assert parse_diagnostics("") == []


class TestCheckers:
    @pytest.mark.asyncio
    async def test_noop_checker_reports_nothing(self, tmp_path):
        assert await NoopChecker().check(tmp_path) == []

    @pytest.mark.asyncio
    async def test_reports_parsed_errors(self, tmp_path):
        script = "import sys; sys.stdout.write(%r); sys.exit(2)" % TSC_OUTPUT
        checker = TypeScriptChecker(command=[sys.executable, "-c", script], timeout=30)

        findings = await checker.check(tmp_path)

        assert len(findings) == 3

    @pytest.mark.asyncio
    async def test_clean_compile(self, tmp_path):
        checker = TypeScriptChecker(command=[sys.executable, "-c", "pass"], timeout=30)

        assert await checker.check(tmp_path) == []

    @pytest.mark.asyncio
    async def test_failure_without_diagnostics_raises(self, tmp_path):
        script = "import sys; sys.stderr.write('tsconfig.json not found'); sys.exit(1)"
        checker = TypeScriptChecker(command=[sys.executable, "-c", script], timeout=30)

        with pytest.raises(CheckerError, match="tsconfig.json not found"):
            await checker.check(tmp_path)

    @pytest.mark.asyncio
    async def test_missing_command_raises(self, tmp_path):
        checker = TypeScriptChecker(command=["spectacular-no-such-compiler"])

        with pytest.raises(CheckerError, match="Could not start"):
            await checker.check(tmp_path)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, tmp_path):
        checker = TypeScriptChecker(
            command=[sys.executable, "-c", "import time; time.sleep(30)"],
            timeout=0.2,
        )

        with pytest.raises(CheckerError, match="timed out"):
            await checker.check(tmp_path)

    @pytest.mark.asyncio
    async def test_aborted_signal_raises(self, tmp_path):
        signal = CancelSignal()
        signal.abort()
        checker = TypeScriptChecker(command=[sys.executable, "-c", "import time; time.sleep(30)"])

        with pytest.raises(InvocationCancelled):
            await checker.check(tmp_path, signal)


class TestStores:
    @pytest.mark.asyncio
    async def test_file_store_writes_relative_to_root(self, tmp_path):
        store = FileStore(tmp_path)

        location = await store.save("src/db/schema.ts", "export {};\n")

        path = tmp_path / "src" / "db" / "schema.ts"
        assert location == str(path)
        assert path.read_text() == "export {};\n"

    @pytest.mark.asyncio
    async def test_file_store_overwrites(self, tmp_path):
        store = FileStore(tmp_path)

        await store.save("spec.md", "first")
        await store.save("spec.md", "second")

        assert (tmp_path / "spec.md").read_text() == "second"
        assert [p.name for p in tmp_path.iterdir()] == ["spec.md"]

    @pytest.mark.asyncio
    async def test_file_store_keeps_absolute_locations(self, tmp_path):
        target = tmp_path / "elsewhere" / "plan.md"

        location = await FileStore(tmp_path / "root").save(str(target), "# Plan")

        assert location == str(target)
        assert target.read_text() == "# Plan"

    @pytest.mark.asyncio
    async def test_aborted_save_writes_nothing(self, tmp_path):
        signal = CancelSignal()
        signal.abort()

        with pytest.raises(InvocationCancelled):
            await FileStore(tmp_path).save("spec.md", "text", signal)

        assert not (tmp_path / "spec.md").exists()

    @pytest.mark.asyncio
    async def test_memory_store_keeps_history(self):
        store = MemoryStore()

        await store.save("a.ts", "1")
        await store.save("a.ts", "2")

        assert store.files == {"a.ts": "2"}
        assert store.history == [("a.ts", "1"), ("a.ts", "2")]

    @pytest.mark.asyncio
    async def test_noop_store_returns_location(self):
        assert await NoopStore().save("spec.md", "ignored") == "spec.md"
