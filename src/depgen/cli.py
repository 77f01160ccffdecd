"""Command-line interface for depgen."""

import asyncio
import logging
import shlex
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import KNOWN_DIRECTIVES, ConfigurationError, GlobalConfig, state_dir
from .generator import GenerationResult, Generator
from .models import Label
from .monitor import WorkspaceWatcher
from .parser import BridgeError, ImportParser, LocalParser, ParserSession
from .resolver import OverrideTable

app = typer.Typer(
    name="depgen",
    help="Infer build targets and their dependencies from TypeScript/JavaScript imports.",
    rich_markup_mode="rich",
)
console = Console()

logger = logging.getLogger(__name__)


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        print(f"[cyan]depgen[/cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """
    depgen - build graph generator for TypeScript/JavaScript workspaces.
    """


def _configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    log_file = state_dir() / "depgen.log"
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )


def _workspace(path: Optional[Path]) -> Path:
    if path is None:
        path = Path.cwd()
    path = path.resolve()
    if not path.exists() or not path.is_dir():
        print(f"[red]Error:[/red] {path} is not a valid directory")
        raise typer.Exit(1)
    return path


def _overrides(entries: Optional[List[str]]) -> OverrideTable:
    table = OverrideTable()
    for entry in entries or []:
        imp, sep, target = entry.partition("=")
        if not sep or not imp or not target:
            print(f"[red]Error:[/red] invalid --resolve value {entry!r}, expected IMPORT=LABEL")
            raise typer.Exit(1)
        try:
            table.add(imp, Label.parse(target))
        except ValueError as e:
            print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
    return table


def _make_parser(settings: GlobalConfig, path: Path) -> ImportParser:
    if settings.parser_command:
        return ParserSession(settings.parser_command, timeout=settings.parser_timeout, cwd=path)
    return LocalParser()


def generate_workspace(path: Path, settings: GlobalConfig, overrides: Optional[OverrideTable] = None) -> GenerationResult:
    """Run one generation pass with a fresh parser session."""
    with _make_parser(settings, path) as parser:
        return Generator(path, settings=settings, parser=parser, overrides=overrides).run()


def _print_result(result: GenerationResult):
    if not result.units and not result.empty:
        print("[yellow]No targets generated[/yellow]")
        return

    table = Table(title="Generated Targets")
    table.add_column("Target", style="cyan")
    table.add_column("Kind", style="green")
    table.add_column("Sources", justify="right")
    table.add_column("Dependencies")

    for unit in result.units:
        table.add_row(str(unit.label), unit.kind, str(len(unit.srcs)), "\n".join(sorted(unit.deps)) or "-")
    for unit in result.empty:
        table.add_row(str(unit.label), unit.kind, "0", "[yellow](stale, remove)[/yellow]")

    console.print(table)


@app.command(name="generate", help="Generate targets and dependencies for a workspace")
def generate(
    path: Optional[Path] = typer.Argument(
        None,
        help="Workspace root (defaults to current directory)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the generated build graph as JSON",
    ),
    explain: Optional[str] = typer.Option(
        None,
        "--explain",
        help="Explain how imports resolving to this dependency were resolved",
    ),
    resolve: Optional[List[str]] = typer.Option(
        None,
        "--resolve",
        help="Resolve an import to a fixed target, as IMPORT=LABEL (repeatable)",
    ),
    parser_command: Optional[str] = typer.Option(
        None,
        "--parser-command",
        help="Command of an external parse server",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging",
    ),
):
    """Generate the build graph of a workspace."""
    path = _workspace(path)
    _configure_logging(verbose)

    settings = GlobalConfig()
    if explain:
        settings.explain_dependency = explain
    if parser_command:
        settings.parser_command = shlex.split(parser_command)
    overrides = _overrides(resolve)

    try:
        result = generate_workspace(path, settings, overrides)
    except ConfigurationError as e:
        print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)
    except BridgeError as e:
        print(f"[red]Parser failure:[/red] {e}")
        raise typer.Exit(1)

    _print_result(result)

    if not result.ok:
        print(f"[red]{len(result.diagnostics)} unresolved or ambiguous import(s), see errors above[/red]")
        raise typer.Exit(1)

    if output is not None:
        result.write(output)
        print(f"[green]✓ Wrote {output}[/green]")


@app.command(name="watch", help="Regenerate the build graph whenever the workspace changes")
def watch(
    path: Optional[Path] = typer.Argument(
        None,
        help="Workspace root (defaults to current directory)",
    ),
    output: Path = typer.Option(
        Path("depgen.json"),
        "--output",
        "-o",
        help="Build graph file, relative to the workspace root",
    ),
    delay: float = typer.Option(
        1.0,
        "--delay",
        help="Seconds to wait for changes to settle",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable debug logging",
    ),
):
    """Watch a workspace and keep its build graph file up to date."""
    path = _workspace(path)
    _configure_logging(verbose)
    settings = GlobalConfig()
    if not output.is_absolute():
        output = path / output

    def regenerate() -> bool:
        try:
            result = generate_workspace(path, settings)
        except (ConfigurationError, BridgeError) as e:
            logger.error(f"ERROR: {e}")
            return False
        if not result.ok:
            logger.error(f"{len(result.diagnostics)} unresolved or ambiguous import(s), graph not written")
            return False
        result.write(output)
        logger.info(f"Wrote {output} ({len(result.units)} targets)")
        return True

    watcher = WorkspaceWatcher(path, regenerate, settings=settings, update_delay=delay, output=output)

    print(f"[green]Watching {path}[/green]")
    print("[yellow]Press Ctrl+C to stop[/yellow]")
    try:
        asyncio.run(watcher.run())
    except KeyboardInterrupt:
        print("\n[yellow]Stopped watching[/yellow]")


@app.command(name="directives", help="List the directives understood in build files")
def list_directives():
    """List known build file directives."""
    table = Table(title="Directives")
    table.add_column("Directive", style="cyan")
    table.add_column("Meaning")
    for key, description in KNOWN_DIRECTIVES.items():
        table.add_row(f"# depgen:{key}", description)
    console.print(table)


if __name__ == "__main__":
    app()
