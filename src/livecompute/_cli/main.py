import logging
import tomllib
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from livecompute._config import ConfigError, load_settings
from livecompute._engine import ReactiveEngine
from livecompute._io import FormDocument, collect_results, export_results, load_form
from livecompute._tree import MemoryTree

from .render import render_dependency_tree, render_results_table

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """livecompute CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _load_document(form: Path) -> FormDocument:
    try:
        return load_form(form)
    except FileNotFoundError:
        err_console.print(f"[red]✗ Form not found:[/red] {form}")
        raise typer.Exit(code=1) from None
    except tomllib.TOMLDecodeError as e:
        err_console.print(f"[red]✗ Invalid TOML in {form}:[/red] {e}")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        err_console.print(f"[red]✗ Invalid form document {form}:[/red]")
        err_console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None


def _build_engine(document: FormDocument) -> tuple[ReactiveEngine, MemoryTree]:
    try:
        settings = document.engine_settings(load_settings())
    except ConfigError as e:
        err_console.print(f"[red]✗ Configuration error:[/red] {e}")
        raise typer.Exit(code=1) from None
    logger.debug("Engine settings: %s", settings)
    tree = document.build_tree()
    return ReactiveEngine(tree, settings), tree


def _parse_assignment(assignment: str) -> tuple[str, str]:
    name, sep, value = assignment.partition("=")
    if not sep or not name.strip():
        msg = f"Expected name=value, got '{assignment}'"
        raise typer.BadParameter(msg, param_hint="--set")
    return name.strip(), value


@app.command()
def calc(
    form: Annotated[
        Path,
        typer.Argument(help="Path to the form TOML file"),
    ],
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output TOML file"),
    ] = None,
    assignments: Annotated[
        list[str] | None,
        typer.Option("--set", help="Edit a field after the initial computation (name=value, repeatable)"),
    ] = None,
) -> None:
    """Compute every output of a form and show the results."""
    err_console.print()
    err_console.print(f"[cyan]Loading form from:[/cyan] {form}")
    document = _load_document(form)
    engine, tree = _build_engine(document)

    err_console.print("[cyan]Computing outputs...[/cyan]")
    engine.attach()

    for assignment in assignments or []:
        name, value = _parse_assignment(assignment)
        err_console.print(f"[cyan]Setting[/cyan] {name} = {value!r}")
        try:
            tree.set_value(name, value)
        except KeyError:
            err_console.print(f"[red]✗ Unknown field:[/red] {name}")
            raise typer.Exit(code=1) from None
    err_console.print()

    results = collect_results(engine)
    render_results_table(engine, results, out_console)

    if output is not None:
        err_console.print()
        err_console.print(f"[cyan]Exporting results to:[/cyan] {output}")
        export_results(results, output)

    err_console.print()
    err_console.print("[green]✓ Calculation complete[/green]")
    err_console.print()


@app.command()
def deps(
    form: Annotated[
        Path,
        typer.Argument(help="Path to the form TOML file"),
    ],
) -> None:
    """Show what each output reads and which outputs are linked."""
    err_console.print()
    err_console.print(f"[cyan]Loading form from:[/cyan] {form}")
    document = _load_document(form)
    engine, _ = _build_engine(document)
    engine.rescan()
    err_console.print()

    render_dependency_tree(engine, out_console)


if __name__ == "__main__":
    app()
