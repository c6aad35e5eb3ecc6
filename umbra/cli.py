"""CLI entry point for umbra.

Unknown commands are not errors: they are forwarded to the version-control
tool against the shadow repository after a sync pass.
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, TypeVar

import typer
import yaml
from rich import print as rprint
from rich.syntax import Syntax
from rich.table import Table

from umbra.commands import Commands
from umbra.config import UmbraConfig, load_config
from umbra.config.loader import DEFAULT_CONFIG_TEMPLATE
from umbra.debug import render_subtree, subtree_to_dict
from umbra.errors import ForwardedCommandError, UmbraError
from umbra.log import configure_logging
from umbra.state.lock import SystemLock
from umbra.sync.models import SyncResult, SyncStats
from umbra.vcs import create_client
from umbra.watcher import FollowWatcher, create_watcher, follow_changes

T = TypeVar("T")

app = typer.Typer(
    name="umbra",
    help="Work on a small shadow checkout of a huge Mercurial repository.",
)

debug_app = typer.Typer(help="Inspect repository state.")
app.add_typer(debug_app, name="debug")

config_app = typer.Typer(help="Manage umbra configuration.")
app.add_typer(config_app, name="config")

# Global state
_config: UmbraConfig | None = None

_OWN_COMMANDS = {"break", "unbreak", "sync", "follow", "debug", "config"}
_OWN_OPTIONS = {"--help", "--install-completion", "--show-completion"}


def _get_config() -> UmbraConfig:
    if _config is None:
        return load_config()
    return _config


@app.callback()
def callback(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to umbra.yaml")
    ] = None,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(_config.log_level, _config.log_format)


def _make_commands(cfg: UmbraConfig) -> Commands:
    return Commands(cfg, create_client(cfg.vcs), create_watcher(cfg.watcher))


def _run(cfg: UmbraConfig, action: Callable[[Commands], Awaitable[T]], lock: bool = True) -> T:
    """Run *action* in a fresh event loop, holding the system-wide lock."""

    async def runner() -> T:
        async with _make_commands(cfg) as commands:
            return await action(commands)

    if not lock:
        return asyncio.run(runner())
    with SystemLock(cfg.lock_path, cfg.lock.wait_seconds):
        return asyncio.run(runner())


@contextmanager
def _reporting() -> Iterator[None]:
    """Turn umbra failures into a red message and a non-zero exit."""
    try:
        yield
    except ForwardedCommandError as e:
        raise typer.Exit(e.exit_code)
    except (UmbraError, ValueError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _print_stats(stats: SyncStats, new_files: set[str]) -> None:
    table = Table(title="Sync Report")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("New base files", str(len(new_files)))
    table.add_row("Copied", str(stats.copied))
    table.add_row("Deleted", str(stats.deleted))
    rprint(table)


async def _sync_and_save(commands: Commands, cwd: str) -> SyncResult:
    result = await commands.sync(cwd)
    await commands.store.save(result.state)
    return result


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("break")
def break_() -> None:
    """Move the current draft stack into a new shadow repository."""
    cfg = _get_config()
    cwd = os.getcwd()
    with _reporting():
        state = _run(cfg, lambda c: c.execute(lambda: c.break_subtree(cwd)))
    rprint(f"[green]Broke[/green] {state.source_repo_root} -> {state.shadow_repo_root}")


@app.command()
def unbreak() -> None:
    """Move the shadow history back into the source repository."""
    cfg = _get_config()
    cwd = os.getcwd()
    with _reporting():
        state = _run(cfg, lambda c: c.execute(lambda: c.unbreak_subtree(cwd)))
    rprint(f"[green]Restored[/green] {state.source_repo_root}")


@app.command()
def sync(
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Do not print a report")] = False,
) -> None:
    """Bring the shadow repository up to date with the source workspace."""
    cfg = _get_config()
    cwd = os.getcwd()
    with _reporting():
        result = _run(cfg, lambda c: _sync_and_save(c, cwd))
    if not quiet:
        _print_stats(result.stats, result.new_files_for_base)


@app.command()
def follow(
    debounce: Annotated[
        float | None, typer.Option("--debounce", help="Seconds of quiet before syncing")
    ] = None,
    max_passes: Annotated[
        int | None, typer.Option("--max-passes", help="Stop after this many sync passes")
    ] = None,
) -> None:
    """Watch the source workspace and sync after every burst of changes."""
    cfg = _get_config()
    cwd = os.getcwd()
    with _reporting():
        root = _run(cfg, lambda c: c.vcs.repo_root(cwd), lock=False)

    def run_pass(paths: set[str]) -> None:
        with _reporting():
            result = _run(cfg, lambda c: _sync_and_save(c, cwd))
        rprint(
            f"[green]Synced[/green] {len(paths)} changes "
            f"({result.stats.copied} copied, {result.stats.deleted} deleted)"
        )

    watcher = FollowWatcher(
        Path(root), debounce if debounce is not None else cfg.watcher.follow_debounce_seconds
    )
    rprint(f"[bold]Following[/bold] {root} (Ctrl-C to stop)")
    try:
        follow_changes(watcher, run_pass, max_passes=max_passes)
    except KeyboardInterrupt:
        rprint("[dim]Stopped.[/dim]")


@debug_app.command("get-subtree")
@debug_app.command("getSubtree", hidden=True)
def debug_get_subtree(
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON instead of a tree")] = False,
) -> None:
    """Dump the subtree around the current revision."""
    cfg = _get_config()
    cwd = os.getcwd()
    with _reporting():
        subtree = _run(cfg, lambda c: c.get_subtree(cwd), lock=False)
    if as_json:
        typer.echo(json.dumps(subtree_to_dict(subtree), indent=4))
    else:
        rprint(render_subtree(subtree))


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default umbra.yaml in current directory."""
    target = Path("umbra.yaml")
    if target.exists() and not force:
        rprint("[yellow]umbra.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")


# ---------------------------------------------------------------------------
# Forwarding
# ---------------------------------------------------------------------------


def split_forwarded(args: list[str]) -> tuple[str | None, list[str]] | None:
    """Return (config path, forwarded args) if *args* are not an umbra command."""
    config_path = None
    rest = list(args)
    if len(rest) >= 2 and rest[0] in ("--config", "-c"):
        config_path, rest = rest[1], rest[2:]
    elif rest and rest[0].startswith("--config="):
        config_path, rest = rest[0].split("=", 1)[1], rest[1:]
    if not rest or rest[0] in _OWN_COMMANDS or rest[0] in _OWN_OPTIONS:
        return None
    return config_path, rest


def forward(args: list[str], config_path: str | None = None) -> None:
    """Sync, then run *args* with the version-control tool in the shadow repository."""
    try:
        cfg = load_config(config_path)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    configure_logging(cfg.log_level, cfg.log_format)
    cwd = os.getcwd()
    with _reporting():
        _run(cfg, lambda c: c.execute(lambda: c.forward(cwd, args)))


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    forwarded = split_forwarded(args)
    if forwarded is None:
        app(args=args, prog_name="umbra")
        return
    config_path, rest = forwarded
    try:
        forward(rest, config_path)
    except typer.Exit as e:
        sys.exit(e.exit_code)
