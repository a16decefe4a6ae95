"""Main CLI entry point for conncache.

Provides commands to locate, list, inspect and clear connection cache files.
"""

import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from conncache.cache.config import CacheConfig
from conncache.cache.disk import DiskPersistenceService
from conncache.cache.keys import CacheKey
from conncache.cache.validation import (
    CacheValidationError,
    file_age,
    get_age_remaining,
    is_file_older_than,
)

# Global console for Rich output
console = Console()


def build_config(cache_dir: Optional[str] = None) -> CacheConfig:
    """Build the cache configuration for a CLI invocation.

    Priority:
    1. Explicit --cache-dir flag
    2. CONNCACHE_* environment variables
    3. Defaults

    Args:
        cache_dir: Cache directory from CLI context

    Returns:
        CacheConfig instance
    """
    config = CacheConfig.from_env()
    if cache_dir:
        config.cache_dir = Path(cache_dir).expanduser()
    return config


def open_disk_service(ctx) -> DiskPersistenceService:
    config = ctx.obj["config"]
    return DiskPersistenceService(
        cache_dir=config.cache_dir,
        filename_extension=config.filename_extension,
        write_workers=1,
    )


def mask(secret: Optional[str]) -> str:
    """Mask all but the first 4 characters of a secret."""
    if not secret:
        return ""
    return secret[:4] + "*" * max(4, len(secret) - 4)


def format_age(age: timedelta) -> str:
    minutes, seconds = divmod(int(age.total_seconds()), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    return f"{minutes}m{seconds:02d}s"


@click.group()
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False),
    help="Cache directory (default: CONNCACHE_DIR env var or the OS user cache directory)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, cache_dir, verbose):
    """conncache CLI - Inspect and clear cached connection data."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = build_config(cache_dir)
    except ValueError as e:
        raise click.ClickException(f"Invalid cache configuration: {e}")


@cli.command("path")
@click.pass_context
def show_path(ctx):
    """Print the cache directory."""
    disk = open_disk_service(ctx)
    try:
        click.echo(str(disk.cache_dir))
    finally:
        disk.shutdown()


@cli.command("list")
@click.option(
    "--max-age",
    type=int,
    default=None,
    help="Age in seconds after which a file is stale (default: disk TTL)",
)
@click.pass_context
def list_files(ctx, max_age):
    """List cache files with their age.

    Example:
        conncache list
        conncache list --max-age 900
    """
    config = ctx.obj["config"]
    threshold = timedelta(seconds=max_age if max_age is not None else config.disk_ttl)
    disk = open_disk_service(ctx)
    try:
        files = disk.list_files()
        if not files:
            console.print("[yellow]No cache files found[/yellow]")
            return

        table = Table(title=f"Cache files ({len(files)})")
        table.add_column("File", style="cyan", overflow="fold")
        table.add_column("Size", justify="right", style="green")
        table.add_column("Age", justify="right", style="blue")
        table.add_column("Expires in", justify="right", style="blue")
        table.add_column("Stale", style="magenta")

        for path in files:
            try:
                size = path.stat().st_size
                age = format_age(file_age(path))
            except OSError:
                continue
            stale = is_file_older_than(path, threshold)
            remaining = get_age_remaining(path, threshold) or 0
            table.add_row(
                path.name[:24] + "...",
                str(size),
                age,
                format_age(timedelta(seconds=remaining)),
                "yes" if stale else "no",
            )

        console.print(table)
    finally:
        disk.shutdown()


@cli.command("clear")
@click.option("--stale-only", is_flag=True, help="Only delete files past the disk TTL")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def clear(ctx, stale_only, yes):
    """Delete cache files.

    Example:
        conncache clear -y
        conncache clear --stale-only
    """
    config = ctx.obj["config"]
    disk = open_disk_service(ctx)
    try:
        files = disk.list_files()
        if stale_only:
            threshold = timedelta(seconds=config.disk_ttl)
            files = [p for p in files if is_file_older_than(p, threshold)]

        if not files:
            console.print("[yellow]Nothing to delete[/yellow]")
            return

        if not yes:
            if not click.confirm(f"Delete {len(files)} cache file(s)?"):
                console.print("[yellow]Cancelled[/yellow]")
                return

        for path in files:
            disk.delete(path)

        console.print(f"[green]✓[/green] Deleted {len(files)} cache file(s)")
    finally:
        disk.shutdown()


@cli.command("inspect")
@click.option("--value", required=True, help="Cache key value")
@click.option(
    "--key",
    "encryption_key",
    prompt="Encryption key",
    hide_input=True,
    help="Cache key secret (prompted if omitted)",
)
@click.pass_context
def inspect(ctx, value, encryption_key):
    """Show the validated content of the cache file for a key.

    Invalid files are reported, not deleted. The access token is masked.

    Example:
        conncache inspect --value "client#secret#account"
    """
    cache_key = CacheKey(value=value, encryption_key=encryption_key)
    disk = open_disk_service(ctx)
    try:
        path = disk.find_file(cache_key)
        if path is None:
            console.print("[red]✗[/red] Cannot derive a cache filename for this key")
            sys.exit(1)

        if not path.exists():
            console.print("[yellow]No cache file for this key[/yellow]")
            return

        try:
            connection_cache = disk.read(cache_key, path)
        except CacheValidationError as e:
            console.print(f"[red]✗[/red] Invalid cache file: {e}")
            sys.exit(1)

        if connection_cache is None:
            console.print("[red]✗[/red] Cannot read the cache file")
            sys.exit(1)

        console.print(f"[bold]Connection:[/bold] {connection_cache.connection_id}")
        console.print(f"  Access token: {mask(connection_cache.access_token)}")
        console.print(f"  System engine URL: {connection_cache.system_engine_url or ''}")
        console.print(f"  Age: {format_age(file_age(path))}")

        for name, options in sorted(connection_cache.database_options.items()):
            console.print(f"  [cyan]Database[/cyan] {name}")
            for key, param_value in options.parameters:
                console.print(f"    {key} = {param_value}")

        for name, options in sorted(connection_cache.engine_options.items()):
            console.print(f"  [cyan]Engine[/cyan] {name}: {options.engine_url or ''}")
            for key, param_value in options.parameters:
                console.print(f"    {key} = {param_value}")
    finally:
        disk.shutdown()


if __name__ == "__main__":
    cli()
