"""Command line interface for LockSearch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.table import Table

from locksearch.config import SORT_ORDERS, AppConfig
from locksearch.index.manager import IndexManager
from locksearch.index.search import SearchResult
from locksearch.index.storage import IndexCache
from locksearch.models import ExtractedIcon
from locksearch.web.app import app as web_app
from locksearch.web.app import configure as configure_web


console = Console()
app = typer.Typer(help="LockSearch - find installed programs by typing part of their name")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _build_config(
    extra: Optional[List[Path]],
    exclude: Optional[List[Path]],
    cache: Optional[Path],
    no_cache: bool = False,
    max_results: Optional[int] = None,
    sort: Optional[str] = None,
) -> AppConfig:
    defaults = AppConfig()
    if sort is not None and sort not in SORT_ORDERS:
        raise typer.BadParameter(f"Sort must be one of: {', '.join(SORT_ORDERS)}")
    return AppConfig(
        extra_index_paths=list(extra or []),
        exclude_paths=list(exclude or []),
        cache_path=cache if cache is not None else defaults.cache_path,
        enable_cache=not no_cache,
        max_results=max_results if max_results is not None else defaults.max_results,
        initial_sort=sort or defaults.initial_sort,  # type: ignore[arg-type]
    )


def _print_results(results: Sequence[SearchResult], *, show_score: bool = True) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    if show_score:
        table.add_column("Score")
    table.add_column("Program")
    table.add_column("Origin")
    table.add_column("Icon")
    table.add_column("Target")

    for result in results:
        icon = result.icon
        icon_text = (
            f"{icon.width}x{icon.height} png"
            if isinstance(icon, ExtractedIcon)
            else f"[on {icon.color}] {icon.letter} [/]"
        )
        row = [result.display_name, result.entry.origin.value, icon_text, str(result.launch_target)]
        if show_score:
            row.insert(0, str(result.score))
        table.add_row(*row)

    console.print(table)


@app.command()
def index(
    extra: Optional[List[Path]] = typer.Option(None, "--extra", "-e", help="Extra directory to scan"),
    exclude: Optional[List[Path]] = typer.Option(None, "--exclude", "-x", help="Path prefix to skip"),
    cache: Path = typer.Option(None, "--cache", help="Index cache file"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not write the index cache"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Scan for programs and refresh the index cache."""
    _setup_logging(verbose)
    config = _build_config(extra, exclude, cache, no_cache)
    manager = IndexManager(config)

    console.print(f"Indexing into [bold]{config.cache_path}[/bold]...")
    try:
        built = manager.rebuild()
    finally:
        manager.close()
    stats = manager.last_stats
    if stats is not None:
        console.print(
            f"Programs: {len(built)}, shortcuts: {stats.shortcuts}, "
            f"executables: {stats.executables}, duplicates: {stats.duplicates}, "
            f"skipped: {stats.skipped}, warnings: {len(stats.warnings)}"
        )


@app.command()
def search(
    query: str = typer.Argument(..., help="Part of a program name"),
    extra: Optional[List[Path]] = typer.Option(None, "--extra", "-e", help="Extra directory to scan"),
    exclude: Optional[List[Path]] = typer.Option(None, "--exclude", "-x", help="Path prefix to skip"),
    cache: Path = typer.Option(None, "--cache", help="Index cache file"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore the index cache"),
    max_results: int = typer.Option(AppConfig().max_results, "--max-results", "-n", help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rank installed programs against a query."""
    _setup_logging(verbose)
    config = _build_config(extra, exclude, cache, no_cache, max_results=max_results)
    manager = IndexManager(config)
    try:
        manager.load_or_build()
        results = manager.search(query)
    finally:
        manager.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return
    _print_results(results)


@app.command("list")
def list_programs(
    extra: Optional[List[Path]] = typer.Option(None, "--extra", "-e", help="Extra directory to scan"),
    exclude: Optional[List[Path]] = typer.Option(None, "--exclude", "-x", help="Path prefix to skip"),
    cache: Path = typer.Option(None, "--cache", help="Index cache file"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore the index cache"),
    max_results: int = typer.Option(AppConfig().max_results, "--max-results", "-n", help="Number of programs to display"),
    sort: str = typer.Option(AppConfig().initial_sort, "--sort", help="alphabetical or random"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Show programs in the configured display order."""
    _setup_logging(verbose)
    config = _build_config(extra, exclude, cache, no_cache, max_results=max_results, sort=sort)
    manager = IndexManager(config)
    try:
        manager.load_or_build()
        results = manager.list_all()
    finally:
        manager.close()

    if not results:
        console.print("[yellow]No programs indexed.[/yellow]")
        return
    _print_results(results, show_score=False)


@app.command("clear-cache")
def clear_cache(
    cache: Path = typer.Option(None, "--cache", help="Index cache file"),
) -> None:
    """Delete the index cache so the next start rescans."""
    config = _build_config(None, None, cache)
    if IndexCache(config.resolve_cache_path()).clear():
        console.print(f"Removed {config.cache_path}.")
    else:
        console.print("[yellow]No index cache found.[/yellow]")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    extra: Optional[List[Path]] = typer.Option(None, "--extra", "-e", help="Extra directory to scan"),
    exclude: Optional[List[Path]] = typer.Option(None, "--exclude", "-x", help="Path prefix to skip"),
    cache: Path = typer.Option(None, "--cache", help="Index cache file"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore the index cache"),
    max_results: int = typer.Option(AppConfig().max_results, "--max-results", "-n", help="Results per query"),
    sort: str = typer.Option(AppConfig().initial_sort, "--sort", help="alphabetical or random"),
) -> None:
    """Serve the search API over HTTP."""
    import uvicorn

    configure_web(_build_config(extra, exclude, cache, no_cache, max_results=max_results, sort=sort))
    console.print(f"Starting search API on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
