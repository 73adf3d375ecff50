"""
Test error mapping and CLI exit code functionality.

Validates that exceptions are correctly mapped to exit codes and that
the run_and_exit wrapper handles errors appropriately for CLI commands.
"""
from __future__ import annotations

import pytest
import typer

from oci_blobs.errors import (
    BlobNotFound, MissingHeaderError, RegistryAuthError, RegistryStatusError,
    SessionOpenError, TransportError,
)
from oci_blobs.operations.mappers import EXIT_CODES, FALLBACK_EXIT_CODE, exit_code_for, run_and_exit


class TestExitCodeMapping:
    """Test exception to exit code mapping."""

    def test_known_exceptions_mapped_correctly(self):
        assert exit_code_for(BlobNotFound("missing", status_code=404)) == 1
        assert exit_code_for(ValueError("bad digest")) == 2
        assert exit_code_for(RegistryAuthError("denied", status_code=403)) == 4
        assert exit_code_for(SessionOpenError("no session", repository="team/app")) == 5

    def test_fallback_for_registry_and_transport_errors(self):
        assert exit_code_for(RegistryStatusError("boom", status_code=500)) == FALLBACK_EXIT_CODE
        assert exit_code_for(TransportError("unreachable")) == FALLBACK_EXIT_CODE
        assert exit_code_for(MissingHeaderError("no Location", header="Location")) == FALLBACK_EXIT_CODE
        assert exit_code_for(RuntimeError("test")) == FALLBACK_EXIT_CODE

    def test_subclasses_inherit_base_code(self):
        class CustomValueError(ValueError):
            pass

        assert exit_code_for(CustomValueError("x")) == 2

    def test_exit_code_constants(self):
        assert EXIT_CODES["BlobNotFound"] == 1
        assert EXIT_CODES["ValueError"] == 2
        assert EXIT_CODES["RegistryAuthError"] == 4
        assert EXIT_CODES["SessionOpenError"] == 5
        assert FALLBACK_EXIT_CODE == 3


class TestRunAndExit:
    """Test run_and_exit wrapper functionality."""

    def test_successful_function_returns_result(self):
        assert run_and_exit(lambda: "success result") == "success result"

    def test_function_exception_raises_typer_exit(self):
        def failing_func():
            raise BlobNotFound("missing", status_code=404)

        with pytest.raises(typer.Exit) as exc_info:
            run_and_exit(failing_func)

        assert exc_info.value.exit_code == 1

    def test_exception_chaining_preserved(self):
        original_error = ValueError("original error")

        def failing_func():
            raise original_error

        with pytest.raises(typer.Exit) as exc_info:
            run_and_exit(failing_func)

        assert exc_info.value.__cause__ is original_error

    def test_typer_exit_passes_through(self):
        def exiting_func():
            raise typer.Exit(code=7)

        with pytest.raises(typer.Exit) as exc_info:
            run_and_exit(exiting_func)

        assert exc_info.value.exit_code == 7
