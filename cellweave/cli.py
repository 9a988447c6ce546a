"""CLI entry points: `cellweave validate`, `repair`, `outline`, `vacuum` and `serve`."""

from __future__ import annotations

from pathlib import Path

import typer
from pycrdt import Doc
from rich.console import Console
from rich.table import Table

from cellweave.config import ensure_dirs, load_config
from cellweave.core import Severity
from cellweave.ops.clock import ClockSource
from cellweave.ops.tombstones import vacuum_tombstones
from cellweave.quality.reconcile import ReconcileOptions
from cellweave.quality.repair import repair_notebook
from cellweave.quality.validation import has_errors, validate_notebook
from cellweave.schema.accessors import get_output_entry
from cellweave.schema.bootstrap import get_root
from cellweave.schema.conversion import notebook_to_model, output_to_model
from cellweave.session import DAY_MS
from cellweave.store import load_document, save_document

app = typer.Typer(name="cellweave", help="Consistency tooling for collaborative notebook documents.")
console = Console()

_SEVERITY_STYLE = {Severity.ERROR: "red", Severity.WARNING: "yellow", Severity.INFO: "dim"}


def _load(path: Path) -> Doc:
    result = load_document(path)
    if not result.ok or result.data is None:
        for d in result.diagnostics:
            console.print(f"[red]Error:[/red] {d.message}")
            if d.hint:
                console.print(f"  Hint: {d.hint}")
        raise typer.Exit(1)
    return result.data


@app.command()
def validate(path: Path = typer.Argument(help="Snapshot file (.ydoc)")) -> None:
    """Report structural issues in a notebook snapshot."""
    issues = validate_notebook(get_root(_load(path)))
    if not issues:
        console.print("[green]No issues found.[/green]")
        return

    t = Table(title=f"{len(issues)} issues", show_lines=False)
    t.add_column("Severity")
    t.add_column("Code", style="cyan", no_wrap=True)
    t.add_column("Path")
    t.add_column("Message")
    for issue in issues:
        style = _SEVERITY_STYLE[issue.severity]
        t.add_row(f"[{style}]{issue.severity}[/{style}]", issue.code, issue.path, issue.message)
    console.print(t)
    if has_errors(issues):
        raise typer.Exit(1)


@app.command()
def repair(
    path: Path = typer.Argument(help="Snapshot file (.ydoc)"),
    append_orphans: bool = typer.Option(False, "--append-orphans", help="Append unreferenced cells to the order"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without writing the snapshot"),
) -> None:
    """Reconcile order, cells and outputs, then save the snapshot."""
    doc = _load(path)
    config = load_config()
    options = ReconcileOptions(
        append_orphans=append_orphans or config.reconcile.append_orphans,
        sort_orphans_by_id=config.reconcile.sort_orphans_by_id,
    )
    report = repair_notebook(get_root(doc), options)
    nb, out = report.notebook, report.outputs

    console.print(f"Order: {nb.previous_order_length} -> {nb.final_order_length} entries")
    for label, ids in (
        ("missing from cellMap", nb.removed_missing_from_map),
        ("tombstoned", nb.removed_tombstoned),
        ("duplicates", nb.removed_duplicates),
        ("invalid", nb.removed_invalid),
    ):
        if ids:
            console.print(f"  removed {label}: {', '.join(ids)}")
    if nb.appended_orphans:
        console.print(f"  appended orphans: {', '.join(nb.appended_orphans)}")
    if nb.fixed_embedded_ids:
        console.print(f"  fixed embedded ids: {', '.join(nb.fixed_embedded_ids)}")
    if nb.cleared_tombstones:
        console.print(f"  cleared tombstones of live cells: {', '.join(nb.cleared_tombstones)}")
    console.print(f"Outputs: {out.previous_count} -> {out.final_count} entries")
    if out.removed_orphans:
        console.print(f"  removed orphans: {', '.join(out.removed_orphans)}")
    if out.removed_invalid:
        console.print(f"  removed invalid: {', '.join(out.removed_invalid)}")

    if not report.changed:
        console.print("[dim]Nothing to repair.[/dim]")
    elif dry_run:
        console.print("[yellow]Dry run: snapshot not written.[/yellow]")
    else:
        save_document(path, doc)
        console.print(f"[green]Repaired and saved [bold]{path}[/bold].[/green]")


@app.command()
def outline(path: Path = typer.Argument(help="Snapshot file (.ydoc)")) -> None:
    """Print the notebook's cells in document order."""
    root = get_root(_load(path))
    notebook = notebook_to_model(root)
    console.print(f"[bold]{notebook.title}[/bold] [dim]({notebook.id})[/dim]")

    t = Table(show_lines=False)
    t.add_column("#", justify="right")
    t.add_column("Cell", style="cyan")
    t.add_column("Kind")
    t.add_column("Output", style="green")
    t.add_column("Source", no_wrap=True)
    for index, cell in enumerate(notebook.cells):
        entry = get_output_entry(root, cell.id)
        status = ""
        if entry is not None:
            output = output_to_model(entry)
            status = "running" if output.running else "stale" if output.stale else "fresh"
        preview = " ".join(cell.source.split())
        t.add_row(str(index), cell.id, cell.kind.value, status, preview[:48])
    console.print(t)
    if notebook.tombstones:
        console.print(f"[dim]Tombstoned: {', '.join(notebook.tombstones)}[/dim]")


@app.command()
def vacuum(
    path: Path = typer.Argument(help="Snapshot file (.ydoc)"),
    trust_clock: bool = typer.Option(
        False, "--trust-clock", help="Treat this machine's clock as trusted for permanent deletion"
    ),
    ttl_days: int | None = typer.Option(None, "--ttl-days", help="Override the configured tombstone TTL"),
) -> None:
    """Permanently drop tombstones older than the TTL."""
    if not trust_clock:
        console.print("[yellow]Clock not trusted; nothing vacuumed.[/yellow]")
        console.print("  Hint: pass --trust-clock when this host's time is authoritative")
        return
    doc = _load(path)
    days = ttl_days if ttl_days is not None else load_config().tombstones.ttl_days
    removed = vacuum_tombstones(get_root(doc), days * DAY_MS, clock=ClockSource(trusted=True))
    if not removed:
        console.print("[dim]No expired tombstones.[/dim]")
        return
    save_document(path, doc)
    console.print(f"[green]Vacuumed {len(removed)} tombstones:[/green] {', '.join(removed)}")


@app.command()
def serve(port: int = typer.Option(8000, "--port", "-p", help="Port to serve on")) -> None:
    """Start the diagnostics server."""
    import logging

    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    ensure_dirs()
    console.print(f"[bold]Starting cellweave on port {port}...[/bold]")
    uvicorn.run("cellweave.server:app", host="0.0.0.0", port=port, reload=False)


def main() -> None:
    app()
