"""patchstack CLI: Typer commands with Rich output.

Commands: update, clean, save, apply, modules, patchsets.
Exit code 0 when every module succeeded, 1 otherwise.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from patchstack import __version__
from patchstack.apply.replayer import PatchReplayer
from patchstack.batch import BatchResult, run_for_modules
from patchstack.clean import remove_module_directories
from patchstack.cli_display import (
    render_apply_summary,
    render_layers,
    render_modules,
    render_save_summary,
    render_sync_summary,
)
from patchstack.errors import ConfigError
from patchstack.registry import CONFIG_ENV, load_workspace
from patchstack.save.segmenter import PatchSegmenter
from patchstack.schemas.workspace import Module, WorkspaceConfig
from patchstack.sync.engine import SyncEngine

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="patchstack",
    help="Carry layered patch sets across upstream updates of pinned modules.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

_MODULE_OPTION = typer.Option(
    None, "--module", "-m", help="Only process this module (repeatable)",
)


# ── Version / logging ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"patchstack {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(
        None, "--config", "-c",
        envvar=CONFIG_ENV,
        help="Workspace file (default: ./patchstack.toml)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """patchstack: layered patch sets on top of pinned upstream repositories."""
    _configure_logging(verbose)
    ctx.obj = config


# ── Helpers ──────────────────────────────────────────────────────


def _load_workspace(ctx: typer.Context) -> WorkspaceConfig:
    """Load the workspace file, exit on error."""
    try:
        return load_workspace(ctx.obj)
    except ConfigError as e:
        console.print(f"[red]Error loading workspace:[/red] {e}")
        raise typer.Exit(1) from None


def _select_modules(config: WorkspaceConfig, names: list[str] | None) -> list[Module]:
    if not names:
        return list(config.modules.values())
    unknown = [n for n in names if n not in config.modules]
    if unknown:
        console.print(f"[red]Unknown module(s):[/red] {', '.join(unknown)}")
        raise typer.Exit(1)
    return [config.modules[n] for n in names]


def _announce(verb: str):
    def _start(module: Module) -> None:
        console.print(f"[bold]{verb} module:[/bold] [cyan]{module.name}[/cyan]")
    return _start


def _finish(batch: BatchResult) -> None:
    if not batch.ok:
        raise typer.Exit(1)


# ── patchstack update ────────────────────────────────────────────


@app.command()
def update(
    ctx: typer.Context,
    no_backup: bool = typer.Option(
        False, "--no-backup", "-n",
        help="Discard local changes instead of backing them up (irreversible)",
    ),
    modules: list[str] = _MODULE_OPTION,
) -> None:
    """Clone or re-sync modules to their pinned upstream commit."""
    config = _load_workspace(ctx)
    engine = SyncEngine(config.settings)
    batch = run_for_modules(
        _select_modules(config, modules),
        lambda m: engine.sync(m, allow_backup=not no_backup),
        "update",
        on_start=_announce("Updating"),
    )
    render_sync_summary(console, batch)
    _finish(batch)


# ── patchstack clean ─────────────────────────────────────────────


@app.command()
def clean(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    modules: list[str] = _MODULE_OPTION,
) -> None:
    """Delete module directories (saved patches are kept)."""
    config = _load_workspace(ctx)
    selected = [m for m in _select_modules(config, modules) if m.path.exists()]
    if not selected:
        console.print("[dim]No module directories to delete.[/dim]")
        return

    names = ", ".join(m.directory for m in selected)
    if not yes and not typer.confirm(f"Delete {names}? Unsaved work is lost", default=False):
        console.print("[dim]Clean cancelled.[/dim]")
        raise typer.Exit(1)

    for module in remove_module_directories(selected):
        console.print(f"  [yellow]Deleted[/yellow] {module.directory}")


# ── patchstack save ──────────────────────────────────────────────


@app.command()
def save(
    ctx: typer.Context,
    one: bool = typer.Option(
        False, "--one",
        help="Only save the most recent patch set, measured from the pinned commit",
    ),
    modules: list[str] = _MODULE_OPTION,
) -> None:
    """Export tagged commits of every module into patch-set directories."""
    config = _load_workspace(ctx)
    segmenter = PatchSegmenter(config)
    batch = run_for_modules(
        _select_modules(config, modules),
        lambda m: segmenter.save(m, single_set_only=one),
        "save",
        on_start=_announce("Saving patches for"),
    )
    render_save_summary(console, batch)
    _finish(batch)


# ── patchstack apply ─────────────────────────────────────────────


@app.command()
def apply(
    ctx: typer.Context,
    patch_set: str = typer.Argument(..., help="Patch set to apply, with its bases"),
    modules: list[str] = _MODULE_OPTION,
) -> None:
    """Apply a patch set (and every patch set it is based on) to the modules."""
    config = _load_workspace(ctx)
    replayer = PatchReplayer(config)
    try:
        chain = replayer.chain(patch_set)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    console.print(f"[dim]Applying {' -> '.join(chain)}[/dim]")
    batch = run_for_modules(
        _select_modules(config, modules),
        lambda m: replayer.apply(m, patch_set),
        f"apply {patch_set}",
        on_start=_announce("Patching"),
    )
    render_apply_summary(console, batch)
    _finish(batch)


# ── patchstack modules / patchsets ───────────────────────────────


@app.command("modules")
def modules_list(ctx: typer.Context) -> None:
    """List the modules in the workspace."""
    render_modules(console, _load_workspace(ctx))


@app.command("patchsets")
def patchsets_list(ctx: typer.Context) -> None:
    """List the configured patch sets and what applying each one implies."""
    render_layers(console, _load_workspace(ctx))
