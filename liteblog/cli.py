"""Command-line interface for liteblog.

This module defines the CLI commands using Click framework.
It provides commands for creating new projects, building sites, and running
the development server.

Commands:
- init: Scaffold a new liteblog project.
- build: Build the site into the public/ directory.
- dev: Run development server with live reload.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from . import __version__

LEVEL_COLORS = {
    logging.DEBUG: "bright_black",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "red",
}


class ClickEchoHandler(logging.Handler):
    """Logging handler that writes records through ``click.echo``.

    Warnings and errors go to stderr, coloured by level.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            color = LEVEL_COLORS.get(record.levelno)
            if color:
                message = click.style(message, fg=color)
            click.echo(message, err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def configure_logging(verbose: bool = False) -> None:
    """Route the ``liteblog`` loggers to the terminal."""
    logger = logging.getLogger("liteblog")
    for handler in list(logger.handlers):
        if isinstance(handler, ClickEchoHandler):
            logger.removeHandler(handler)
    handler = ClickEchoHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@click.group()
@click.version_option(version=__version__, prog_name="liteblog")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
def cli(verbose: bool):
    """liteblog static blog generator."""
    configure_logging(verbose)


@cli.command()
@click.argument("directory", default=".", type=click.Path(file_okay=False, path_type=Path))
def init(directory: Path):
    """Scaffold a new liteblog project."""
    from .scaffold import scaffold_project

    target = directory.resolve()
    created = scaffold_project(target)
    for rel_path in created:
        click.echo(f"  Created: {rel_path.as_posix()}")
    click.echo(f"New liteblog site created at {target}")
    click.echo("Next steps:")
    click.echo("  1. Edit config.json with your site info")
    click.echo("  2. Run: liteblog dev")
    click.echo("  3. Open: http://localhost:3000")


@cli.command()
@click.argument(
    "directory",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def build(directory: Path):
    """Build the site into the public/ directory."""
    from .build import BuildError, build_site

    project_root = directory.resolve()
    try:
        result = build_site(project_root, incremental=False)
    except BuildError as exc:
        _report_build_error(project_root, exc)
        raise SystemExit(1) from None
    click.echo(f"Built {len(result.rebuilt)} pages into {result.output_dir}")


@cli.command()
@click.argument(
    "directory",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.argument("port", default=3000, type=click.IntRange(1, 65535))
def dev(directory: Path, port: int):
    """Run dev server with live reload."""
    from .build import BuildError
    from .server import DevServer

    project_root = directory.resolve()
    server = DevServer(project_root, port=port)
    try:
        server.start()
    except BuildError as exc:
        _report_build_error(project_root, exc)
        raise SystemExit(1) from None


def _report_build_error(project_root: Path, exc) -> None:
    """Display a user-friendly build error."""
    try:
        rel_path = exc.source_path.relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()
