"""Rich rendering for patchstack CLI output.

Summary tables for update, save and apply runs, failure tables, and the
workspace listings.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from patchstack.apply.chain import resolve_chain
from patchstack.batch import BatchResult
from patchstack.schemas.results import ApplyReport, ModuleFailure, SaveReport, SyncOutcome
from patchstack.schemas.workspace import WorkspaceConfig

_ACTION_STYLE = {
    "cloned": "bold green",
    "backed_up": "bold cyan",
    "reset_without_backup": "bold yellow",
}


def render_sync_summary(console: Console, batch: BatchResult[SyncOutcome]) -> None:
    """Table of what update did per module."""
    if batch.results:
        table = Table(title="Update")
        table.add_column("Module", style="cyan")
        table.add_column("Action")
        table.add_column("HEAD")
        table.add_column("Backup")
        for name, outcome in batch.results.items():
            action = Text(outcome.action.value, style=_ACTION_STYLE.get(outcome.action.value, ""))
            head = outcome.head[:12] + (" (detached)" if outcome.detached else "")
            backup = outcome.backup.branch if outcome.backup else "-"
            table.add_row(name, action, head, backup)
        console.print(table)
    render_failures(console, batch.failures)


def render_save_summary(console: Console, batch: BatchResult[SaveReport]) -> None:
    """Table of exported patch sets, then any warnings."""
    if batch.results:
        table = Table(title="Saved Patch Sets")
        table.add_column("Module", style="cyan")
        table.add_column("Patch Set", style="bold")
        table.add_column("Range")
        table.add_column("Patches", justify="right")
        for name, report in batch.results.items():
            for export in report.patch_sets:
                table.add_row(
                    name,
                    export.name,
                    f"{export.range_start[:8]}..{export.range_end[:8]}",
                    str(len(export.files)),
                )
        console.print(table)

        for name, report in batch.results.items():
            for warning in report.warnings:
                console.print(f"  [yellow]Warning:[/yellow] {name}: {warning}")
    render_failures(console, batch.failures)


def render_apply_summary(console: Console, batch: BatchResult[ApplyReport]) -> None:
    """Table of applied layers per module."""
    if batch.results:
        table = Table(title="Applied Patch Sets")
        table.add_column("Module", style="cyan")
        table.add_column("Layer", style="bold")
        table.add_column("Patches", justify="right")
        for name, report in batch.results.items():
            for layer in report.layers:
                count = "[dim]none saved[/dim]" if layer.skipped else str(len(layer.records))
                table.add_row(name, layer.name, count)
        console.print(table)
    render_failures(console, batch.failures)


def render_failures(console: Console, failures: list[ModuleFailure]) -> None:
    if not failures:
        return
    table = Table(show_header=True, box=None)
    table.add_column("Module", style="cyan")
    table.add_column("Step", style="bold")
    table.add_column("Error", style="red")
    for failure in failures:
        table.add_row(failure.module, failure.step, failure.error)
    console.print(
        Panel(
            table,
            title=f"[red]{len(failures)} module failure(s)[/red]",
            border_style="red",
        )
    )


def render_modules(console: Console, config: WorkspaceConfig) -> None:
    table = Table(title="Modules")
    table.add_column("Name", style="cyan")
    table.add_column("Directory")
    table.add_column("Branch")
    table.add_column("Pinned")
    table.add_column("Status")
    for module in config.modules.values():
        status = "[green]present[/green]" if module.path.exists() else "[dim]missing[/dim]"
        table.add_row(
            module.name, module.directory, module.branch, module.pinned_revision[:12], status
        )
    console.print(table)


def render_layers(console: Console, config: WorkspaceConfig) -> None:
    table = Table(title="Patch Sets")
    table.add_column("Name", style="bold")
    table.add_column("Applies")
    table.add_column("Description", style="dim")
    for name, layer in config.layers.items():
        table.add_row(name, " -> ".join(resolve_chain(config.layers, name)), layer.description)
    console.print(table)
