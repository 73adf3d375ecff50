"""
Human-readable output formatting.

Centralizes CLI output formatting so commands only gather results.
"""
from __future__ import annotations

import typer

from ..models import Descriptor


def _format_bytes(size: int) -> str:
    """Format byte count as human-readable string."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def print_descriptor(repository: str, descriptor: Descriptor) -> None:
    """Print blob metadata."""
    typer.echo(f"Repository: {repository}")
    typer.echo(f"Digest: {descriptor.digest}")
    typer.echo(f"Size: {descriptor.size} ({_format_bytes(descriptor.size)})")
    if descriptor.media_type:
        typer.echo(f"Media type: {descriptor.media_type}")


def print_push_summary(repository: str, descriptor: Descriptor, chunk_size: int) -> None:
    """Print result of an upload."""
    mode = "chunked" if descriptor.size > chunk_size else "single-shot"
    typer.echo(f"Pushed {descriptor.digest} to {repository}")
    typer.echo(f"Size: {_format_bytes(descriptor.size)} ({mode})")


def print_pull_summary(repository: str, digest: str, size: int, dest: str) -> None:
    """Print result of a download written to a file."""
    typer.echo(f"Pulled {repository}@{digest} to {dest}")
    typer.echo(f"Size: {_format_bytes(size)}")


def print_exists(repository: str, digest: str, present: bool) -> None:
    typer.echo(f"{repository}@{digest}: {'present' if present else 'absent'}")


def print_mount_summary(repository: str, digest: str, from_repository: str) -> None:
    typer.echo(f"Mounted {digest} from {from_repository} into {repository}")
