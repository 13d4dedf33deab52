"""Typer-based CLI entry point."""

from __future__ import annotations

import functools
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.tree import Tree

from .errors import EverlookError, SettingsError
from .explorer.builder import ExplorerBuilder
from .explorer.reference import ItemReference, ReferenceState, VirtualItemReference
from .settings.manager import SettingsManager
from .utils.logging import configure_logging

app = typer.Typer(help="Browse package groups one directory level at a time")
dirs_app = typer.Typer(help="Manage the configured package directories")
app.add_typer(dirs_app, name="dirs")

SettingsOption = typer.Option(None, "--settings", help="Settings file to use instead of the default")


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SettingsError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc
        except EverlookError as exc:
            typer.echo(f"Unexpected error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


def _load_settings(path: Optional[Path]) -> SettingsManager:
    settings = SettingsManager(path=path)
    settings.load()
    return settings


# ----------------------------------------------------------------------
# Tree expansion
# ----------------------------------------------------------------------

def _expand(builder: ExplorerBuilder, references: List[ItemReference], timeout: float) -> None:
    for reference in references:
        builder.submit_work(reference)
    if not builder.wait_until_idle(timeout):
        raise typer.Exit(_timeout_exit(timeout))


def _timeout_exit(timeout: float) -> int:
    typer.echo(f"Error: enumeration did not finish within {timeout:g}s", err=True)
    return 1


def _pending_directories(references: List[ItemReference]) -> List[ItemReference]:
    return [
        child
        for reference in references
        for child in reference.child_references
        if child.state == ReferenceState.NOT_ENUMERATED
    ]


def _merge_children(builder: ExplorerBuilder, virtual: VirtualItemReference) -> None:
    for part in virtual.hard_references():
        for child in part.child_references:
            virtual.add_child(builder.overlay(child, virtual))


def _walk_hard(builder: ExplorerBuilder, depth: int, timeout: float) -> None:
    frontier = [
        package
        for group_reference in builder.package_group_references.values()
        for package in group_reference.child_references
    ]
    for _ in range(1, depth):
        frontier = _pending_directories(frontier)
        if not frontier:
            return
        _expand(builder, frontier, timeout)


def _walk_merged(builder: ExplorerBuilder, depth: int, timeout: float) -> List[VirtualItemReference]:
    roots: List[VirtualItemReference] = []
    for group_reference in builder.package_group_references.values():
        root: Optional[VirtualItemReference] = None
        for package in group_reference.child_references:
            root = builder.overlay(package, group_reference)
        if root is not None:
            roots.append(root)

    frontier = list(roots)
    for level in range(depth):
        for virtual in frontier:
            _merge_children(builder, virtual)
        if level == depth - 1:
            break
        frontier = [
            child
            for virtual in frontier
            for child in virtual.child_references
            if isinstance(child, VirtualItemReference) and child.state != ReferenceState.ENUMERATED
        ]
        if not frontier:
            break
        _expand(builder, list(frontier), timeout)
    return roots


def _label(reference: ItemReference) -> str:
    if isinstance(reference, VirtualItemReference):
        owners = len(reference.hard_references())
        name = reference.display_reference.name
        suffix = f" [dim]({owners} packages)[/dim]" if owners > 1 else ""
    else:
        name = reference.name
        suffix = ""
    if reference.is_directory:
        return f"[bold blue]{name}[/bold blue]{suffix}"
    return f"{name}{suffix}"


def _render(node: Tree, reference: ItemReference) -> None:
    for child in reference.child_references:
        branch = node.add(_label(child))
        _render(branch, child)


@app.command()
@_handle_errors
def tree(
    directories: List[Path] = typer.Argument(None, help="Package directories; defaults to the configured ones"),
    depth: int = typer.Option(1, "--depth", "-d", min=1, help="Number of directory levels to list"),
    merged: bool = typer.Option(False, "--merged", help="Merge the packages of each group into one view"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Maximum concurrent workers"),
    timeout: float = typer.Option(60.0, "--timeout", help="Seconds to wait for each level"),
    settings_path: Optional[Path] = SettingsOption,
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Print the package groups as a tree."""

    configure_logging(verbose)
    settings = _load_settings(settings_path)
    source = None
    if directories:
        chosen = [str(path) for path in directories]
        source = lambda: chosen  # noqa: E731

    with ExplorerBuilder(settings, directory_source=source, max_workers=workers) as builder:
        builder.start()
        builder.reload(blocking=True)
        if not builder.wait_until_idle(timeout):
            raise typer.Exit(_timeout_exit(timeout))
        if not builder.package_groups:
            print("[yellow]No package directories to show")
            return

        if merged:
            roots = {root.package_group: root for root in _walk_merged(builder, depth, timeout)}
        else:
            _walk_hard(builder, depth, timeout)
            roots = {}

        for group, group_reference in builder.package_group_references.items():
            node = Tree(f"[bold]{group.name}[/bold]")
            if merged:
                root = roots.get(group)
                if root is not None:
                    _render(node, root)
            else:
                for package in group_reference.child_references:
                    _render(node.add(f"[green]{package.name}[/green]"), package)
            print(node)


@dirs_app.command("list")
@_handle_errors
def list_dirs(settings_path: Optional[Path] = SettingsOption) -> None:
    """Show the configured package directories."""

    settings = _load_settings(settings_path)
    entries = settings.package_directories()
    if not entries:
        print("[yellow]No package directories configured")
        return
    for entry in entries:
        marker = "" if Path(entry).is_dir() else " [red](missing)[/red]"
        print(f"{entry}{marker}")


@dirs_app.command("add")
@_handle_errors
def add_dir(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, resolve_path=True),
    settings_path: Optional[Path] = SettingsOption,
) -> None:
    """Add a package directory."""

    settings = _load_settings(settings_path)
    if settings.add_package_directory(directory):
        print(f"[green]Added {directory}")
    else:
        print(f"[yellow]{directory} is already configured")


@dirs_app.command("remove")
@_handle_errors
def remove_dir(
    directory: Path = typer.Argument(...),
    settings_path: Optional[Path] = SettingsOption,
) -> None:
    """Remove a package directory."""

    settings = _load_settings(settings_path)
    if settings.remove_package_directory(directory) or settings.remove_package_directory(directory.resolve()):
        print(f"[green]Removed {directory}")
    else:
        typer.echo(f"Error: {directory} is not configured", err=True)
        raise typer.Exit(1)


def main() -> None:  # pragma: no cover - thin wrapper
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
