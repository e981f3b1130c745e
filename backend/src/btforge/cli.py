"""
btforge command line.

Commands:
- compile:  JSON document -> Lua
- validate: Print validation flags for a JSON document
- check:    Syntax-check a Lua file
- slots:    List, show or delete saved document slots

Exit codes: 0 success, 1 validation/check problems, 2 unreadable document or
nothing to export.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import get_settings
from .errors import ExportFailure, ImportFailure
from .graph.store import GraphStore
from .lua.checker import LuaChunkChecker
from .lua.compiler import TreeCompiler
from .persistence.documents import PersistedDocument, load_document, parse_document
from .persistence.slots import SqliteSlotStore
from .validation.engine import GraphValidator, Severity

logger = logging.getLogger(__name__)

APP_HELP = """
btforge: behavior-tree documents to Lua.

Documents are the JSON files exported by the editor. Lua output is a single
`return { ... }` chunk with the main tree and any extracted subtrees.
"""

app = typer.Typer(name="btforge", help=APP_HELP, no_args_is_help=True)
slots_app = typer.Typer(name="slots", help="Manage saved document slots.", no_args_is_help=True)
app.add_typer(slots_app, name="slots")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """
    Behavior-tree authoring tools.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_store(document: Path) -> GraphStore:
    """Read a document file into a fresh store, exiting with 2 on failure."""
    try:
        parsed = parse_document(document.read_bytes())
    except ImportFailure as e:
        print(f"[red]Cannot import {escape(str(document))}:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)
    store = GraphStore()
    load_document(store, parsed)
    return store


@app.command("compile")
def compile_document(
    document: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON document"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write Lua here instead of stdout"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Function module prefix (overrides BTFORGE_FUNCTION_PREFIX)"),
    check: bool = typer.Option(False, "--check", help="Syntax-check the generated Lua"),
):
    """
    Compile a JSON document to Lua.
    """
    settings = get_settings()
    store = _load_store(document)
    compiler = TreeCompiler(
        store,
        function_prefix=settings.function_prefix if prefix is None else prefix,
        indent=settings.indent,
    )
    try:
        text = compiler.compile().render()
    except ExportFailure as e:
        print(f"[red]Nothing to export:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)

    if check:
        try:
            result = LuaChunkChecker().check(text)
        except RuntimeError as e:
            print(f"[red]{escape(str(e))}[/red]")
            raise typer.Exit(code=1)
        if not result.success:
            print(f"[red]Generated Lua does not compile:[/red] {escape(str(result.error))}")
            raise typer.Exit(code=1)

    if output is None:
        typer.echo(text)
    else:
        output.write_text(text + "\n", encoding="utf-8")
        print(f"[green]Wrote[/green] {escape(str(output))}")


@app.command("validate")
def validate_document(
    document: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON document"),
):
    """
    Show validation errors and warnings. Exits with 1 if any node has an error.
    """
    store = _load_store(document)
    report = GraphValidator().validate(store)

    if not report.issues and not report.warnings:
        print("[green]No issues found[/green]")
        return

    table = Table(title=f"Validation: {document.name}")
    table.add_column("Code", style="cyan")
    table.add_column("Node", justify="right")
    table.add_column("Name")
    table.add_column("Message")
    for issue in report.issues + report.warnings:
        node = store.find_node(issue.node_id)
        style = "red" if issue.severity == Severity.ERROR else "yellow"
        table.add_row(
            f"[{style}]{issue.code.value}[/{style}]",
            str(issue.node_id),
            escape(node.name) if node else "",
            escape(issue.message),
        )
    console.print(table)

    if not report.is_clean:
        raise typer.Exit(code=1)


@app.command("check")
def check_lua(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Lua file"),
):
    """
    Syntax-check a Lua file.
    """
    try:
        result = LuaChunkChecker().check(source.read_text(encoding="utf-8"))
    except RuntimeError as e:
        print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if not result.success:
        print(f"[red]{escape(str(source))}:[/red] {escape(str(result.error))}")
        raise typer.Exit(code=1)
    print(f"[green]OK[/green] {escape(str(source))}")


# =============================================================================
# Slots
# =============================================================================


def _slot_store(db: Optional[Path]) -> SqliteSlotStore:
    return SqliteSlotStore(db or get_settings().database_path)


@slots_app.command("list")
def list_slots(
    db: Optional[Path] = typer.Option(None, "--db", help="Slot database (default BTFORGE_DATABASE_PATH)"),
):
    """
    List saved documents, most recent first.
    """
    store = _slot_store(db)
    slots = store.list_slots()
    if not slots:
        print("No saved documents")
        return

    last_used = store.get_last_used()
    table = Table(title="Saved documents")
    table.add_column("Name", style="cyan")
    table.add_column("Nodes", justify="right")
    table.add_column("Last modified")
    for info in slots:
        marker = " *" if info.name == last_used else ""
        modified = info.last_modified.strftime("%Y-%m-%d %H:%M:%S") if info.last_modified else "-"
        table.add_row(escape(info.name) + marker, str(info.node_count), modified)
    console.print(table)


@slots_app.command("show")
def show_slot(
    name: str = typer.Argument(..., help="Slot name"),
    db: Optional[Path] = typer.Option(None, "--db", help="Slot database (default BTFORGE_DATABASE_PATH)"),
):
    """
    Print a saved document as JSON.
    """
    try:
        document: Optional[PersistedDocument] = _slot_store(db).load(name)
    except ImportFailure as e:
        print(f"[red]Slot '{escape(name)}' is corrupt:[/red] {escape(str(e))}")
        raise typer.Exit(code=2)
    if document is None:
        print(f"[red]No slot named '{escape(name)}'[/red]")
        raise typer.Exit(code=1)
    typer.echo(document.to_json())


@slots_app.command("delete")
def delete_slot(
    name: str = typer.Argument(..., help="Slot name"),
    db: Optional[Path] = typer.Option(None, "--db", help="Slot database (default BTFORGE_DATABASE_PATH)"),
):
    """
    Delete a saved document.
    """
    if not _slot_store(db).delete(name):
        print(f"[red]No slot named '{escape(name)}'[/red]")
        raise typer.Exit(code=1)
    print(f"Deleted '{escape(name)}'")


if __name__ == "__main__":
    app()
