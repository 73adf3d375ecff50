"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

import typer

logger = logging.getLogger(__name__)

T = TypeVar('T')

EXIT_CODES = {
    "BlobNotFound": 1,
    "ValueError": 2,
    "ValidationError": 2,
    "RegistryAuthError": 4,
    "SessionOpenError": 5,
}

# Network, protocol and other registry errors
FALLBACK_EXIT_CODE = 3


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 1: Blob not found (BlobNotFound)
    - 2: Invalid input (ValueError, ValidationError)
    - 3: Transport, protocol or other registry error (fallback)
    - 4: Authentication/authorization failed (RegistryAuthError)
    - 5: Upload session could not be opened (SessionOpenError)

    Subclasses inherit the code of the closest mapped base class.
    """
    for cls in type(exc).__mro__:
        code = EXIT_CODES.get(cls.__name__)
        if code is not None:
            return code
    return FALLBACK_EXIT_CODE


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit, printing the error to stderr.

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
