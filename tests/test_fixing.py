"""Tests for checker-error filtering and fix bookkeeping."""

from __future__ import annotations

from spectacular.ai.types import ErrorInfo
from spectacular.workflows.fixing import (
    ArtifactInvalidError,
    FixAttempt,
    filter_artifact_errors,
    final_artifact,
    names_artifact,
)


class TestNamesArtifact:
    def test_relative_location(self):
        assert names_artifact("src/db/schema.ts:3:1", "src/db/schema.ts")

    def test_absolute_location(self):
        assert names_artifact("/home/dev/app/src/db/schema.ts:3:1", "src/db/schema.ts")

    def test_location_without_position(self):
        assert names_artifact("src/index.ts", "src/index.ts")

    def test_windows_separators(self):
        assert names_artifact("C:\\proj\\src\\index.ts:1:1", "src/index.ts")

    def test_other_file(self):
        assert not names_artifact("src/index.ts:1:1", "src/db/schema.ts")

    def test_same_name_other_directory(self):
        assert not names_artifact("lib/schema.ts:1:1", "src/db/schema.ts")

    def test_missing_location(self):
        assert not names_artifact(None, "src/index.ts")
        assert not names_artifact("", "src/index.ts")


class TestFilterArtifactErrors:
    def test_keeps_findings_naming_artifact_in_order(self):
        errors = [
            ErrorInfo(message="first", location="src/index.ts:1:1"),
            ErrorInfo(message="elsewhere", location="src/db/schema.ts:2:2"),
            ErrorInfo(message="warning", severity="warning", location="src/index.ts:3:3"),
            ErrorInfo(message="second", location="src/index.ts:4:4"),
            ErrorInfo(message="global"),
        ]

        kept = filter_artifact_errors(errors, "src/index.ts")

        assert [error.message for error in kept] == ["first", "warning", "second"]


class TestFinalArtifact:
    def test_original_without_attempts(self):
        assert final_artifact("original", []) == "original"

    def test_last_fix_wins(self):
        attempts = [
            FixAttempt(errors=(), analysis="a", fixed_code="v1"),
            FixAttempt(errors=(), analysis="b", fixed_code="v2"),
        ]

        assert final_artifact("original", attempts) == "v2"

    def test_unfinished_attempt_is_skipped(self):
        attempts = [
            FixAttempt(errors=(), analysis="a", fixed_code="v1"),
            FixAttempt(errors=(), analysis="b"),
        ]

        assert final_artifact("original", attempts) == "v1"


def test_artifact_invalid_error_message():
    error = ArtifactInvalidError("src/index.ts", [ErrorInfo(message="x"), ErrorInfo(message="y")])

    assert str(error) == "src/index.ts still has 2 error(s) after fixing"
    assert len(error.errors) == 2


def test_fix_attempt_to_dict():
    attempt = FixAttempt(errors=(ErrorInfo(message="m", location="a.ts:1:1"),), analysis="why")

    assert attempt.to_dict() == {
        "errors": [{"message": "m", "severity": "error", "location": "a.ts:1:1"}],
        "analysis": "why",
        "fixed_code": None,
    }
