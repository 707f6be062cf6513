"""Shared CLI plumbing: configuration, logging and resolver construction."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from veridica.config import VeridicaConfig
from veridica.core.production_guard import ProductionConfigError
from veridica.core.resolver import OwnershipResolver

# Exit codes
EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_UNAVAILABLE = 2
EXIT_CONFIG = 3

error_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route the ``veridica`` logger tree through a RichHandler on stderr."""
    root = logging.getLogger("veridica")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=error_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level.upper())


def load_resolver(config: VeridicaConfig | None = None) -> OwnershipResolver:
    """Build the resolver from *config*, exiting cleanly on a guard failure."""
    config = config or VeridicaConfig()
    config.primary_db_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        return OwnershipResolver.from_config(config)
    except ProductionConfigError as exc:
        error_console.print(f"[bold red]Configuration rejected:[/bold red]\n{exc}")
        raise typer.Exit(EXIT_CONFIG) from exc


def read_content(path: Path) -> bytes:
    """Read *path* fully, exiting with a readable message if it cannot be read."""
    try:
        return path.read_bytes()
    except OSError as exc:
        error_console.print(f"[bold red]Cannot read {path}:[/bold red] {exc.strerror or exc}")
        raise typer.Exit(EXIT_REJECTED) from exc
