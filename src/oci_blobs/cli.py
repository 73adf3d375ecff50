"""
oci-blobs CLI

Blob verbs against the configured registry:
- push: Upload a file as a blob (chunked above the chunk size)
- pull: Download a blob to a file or stdout
- exists: Check whether a blob is present
- stat: Show blob size and media type
- mount: Link a blob from another repository
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .cli_context import CLIContext, check_repository
from .models import Digest
from .operations import run_and_exit
from .operations.printers import (
    print_descriptor, print_exists, print_mount_summary, print_pull_summary,
    print_push_summary,
)
from .upload import file_source

app = typer.Typer(name="oci-blobs", help="OCI registry blob transfers")


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every registry request"),
) -> None:
    """OCI registry blob transfers."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command()
def push(
    repository: str = typer.Argument(..., help="Target repository"),
    path: Path = typer.Argument(..., help="File to upload"),
    digest: Optional[str] = typer.Option(None, "--digest", help="Expected digest (computed when omitted)"),
) -> None:
    """Upload a file as a blob."""

    def _push() -> None:
        check_repository(repository)
        if not path.is_file():
            raise ValueError(f"Not a file: {path}")
        blob_digest = Digest.parse(digest) if digest else Digest.from_file(path)
        size = path.stat().st_size

        context = CLIContext.from_env()
        try:
            descriptor = context.client.upload_blob(repository, blob_digest, size, file_source(path))
        finally:
            context.close()
        print_push_summary(repository, descriptor, context.settings.chunk_size)

    run_and_exit(_push)


@app.command()
def pull(
    repository: str = typer.Argument(..., help="Source repository"),
    digest: str = typer.Argument(..., help="Blob digest"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Destination file (stdout when omitted)"),
) -> None:
    """Download a blob."""

    def _pull() -> None:
        check_repository(repository)
        blob_digest = Digest.parse(digest)
        context = CLIContext.from_env()
        written = 0
        try:
            with context.client.download_blob(repository, blob_digest) as stream:
                if output is None:
                    out = typer.get_binary_stream("stdout")
                    for block in stream.iter_bytes():
                        out.write(block)
                        written += len(block)
                    out.flush()
                else:
                    with open(output, "wb") as f:
                        for block in stream.iter_bytes():
                            f.write(block)
                            written += len(block)
        finally:
            context.close()
        if output is not None:
            print_pull_summary(repository, str(blob_digest), written, str(output))

    run_and_exit(_pull)


@app.command()
def exists(
    repository: str = typer.Argument(..., help="Repository"),
    digest: str = typer.Argument(..., help="Blob digest"),
) -> None:
    """Check whether a blob is present (exit code 1 when absent)."""

    def _exists() -> None:
        check_repository(repository)
        blob_digest = Digest.parse(digest)
        context = CLIContext.from_env()
        try:
            present = context.client.has_blob(repository, blob_digest)
        finally:
            context.close()
        print_exists(repository, str(blob_digest), present)
        if not present:
            raise typer.Exit(code=1)

    run_and_exit(_exists)


@app.command()
def stat(
    repository: str = typer.Argument(..., help="Repository"),
    digest: str = typer.Argument(..., help="Blob digest"),
) -> None:
    """Show blob metadata without downloading it."""

    def _stat() -> None:
        check_repository(repository)
        blob_digest = Digest.parse(digest)
        context = CLIContext.from_env()
        try:
            descriptor = context.client.blob_metadata(repository, blob_digest)
        finally:
            context.close()
        print_descriptor(repository, descriptor)

    run_and_exit(_stat)


@app.command()
def mount(
    repository: str = typer.Argument(..., help="Target repository"),
    digest: str = typer.Argument(..., help="Blob digest"),
    from_repository: str = typer.Option(..., "--from", help="Repository that already holds the blob"),
) -> None:
    """Link a blob from another repository without transferring it."""

    def _mount() -> None:
        check_repository(repository)
        check_repository(from_repository)
        blob_digest = Digest.parse(digest)
        context = CLIContext.from_env()
        try:
            context.client.mount_blob(repository, blob_digest, from_repository)
        finally:
            context.close()
        print_mount_summary(repository, str(blob_digest), from_repository)

    run_and_exit(_mount)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
