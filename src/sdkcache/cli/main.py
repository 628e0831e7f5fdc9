"""Main CLI entry point for sdkcache.

Provides command-line access to the download cache and checksum verifier.
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from sdkcache.batch import fetch_files, load_manifest, verify_files
from sdkcache.cache.config import CacheConfig, load_config
from sdkcache.cache.errors import CacheError
from sdkcache.cache.fetcher import ConditionalFetcher
from sdkcache.cache.keys import derive_cache_key
from sdkcache.cache.metadata import MetadataStore
from sdkcache.cache.validation import DigestMismatch, Missing, UnsupportedAlgorithm, Valid

# Global console for Rich output
console = Console()
err_console = Console(stderr=True)


def get_log_level(verbose: int, quiet: bool, debug: bool) -> int:
    """Map CLI verbosity flags to a logging level.

    ``--quiet`` wins over everything else. ``--debug`` selects DEBUG; otherwise
    each ``-v`` steps from ERROR to WARNING to INFO.
    """
    if quiet:
        return logging.CRITICAL + 1
    if debug:
        return logging.DEBUG
    if verbose == 0:
        return logging.ERROR
    if verbose == 1:
        return logging.WARNING
    return logging.INFO


def build_fetcher(ctx: click.Context) -> ConditionalFetcher:
    """Create the run's shared client and a fetcher bound to it.

    The client is closed when the click context tears down.
    """
    config: CacheConfig = ctx.obj["config"]
    client = config.build_client()
    ctx.call_on_close(client.close)
    return ConditionalFetcher(client, config)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: config.json in the per-user cache dir)",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Cache root directory (default: SDKCACHE_DIR or the per-user cache dir)",
)
@click.option("-v", "--verbose", count=True, help="Verbose mode, repeat to increase")
@click.option("-q", "--quiet", is_flag=True, help="Silence log output")
@click.option("-g", "--debug", is_flag=True, help="Enable debugging output")
@click.pass_context
def cli(ctx, config_path, cache_dir, verbose, quiet, debug):
    """sdkcache CLI - Download, cache and verify SDK artifacts.

    Settings come from the config file, then SDKCACHE_* environment
    variables, then --cache-dir.
    """
    logging.basicConfig(
        level=get_log_level(verbose, quiet, debug),
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )

    ctx.ensure_object(dict)
    config = load_config(config_path)
    if cache_dir is not None:
        config.cache_dir = cache_dir.expanduser()
    ctx.obj["config"] = config


@cli.command("get")
@click.argument("url")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Copy the cached data to this file",
)
@click.option("--text", is_flag=True, help="Print the body as text")
@click.pass_context
def get_command(ctx, url, output, text):
    """Fetch URL through the cache and print the cached file path.

    Example:
        sdkcache get https://example.test/repo.json
        sdkcache get https://example.test/repo.json --text
    """
    try:
        artifact = build_fetcher(ctx).fetch(url)

        if text:
            click.echo(artifact.text())
        elif output is not None:
            artifact.copy_to(output)
            console.print(f"[green]✓[/green] Saved {url} to {output}")
        else:
            click.echo(str(artifact.path))

    except (CacheError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("fetch")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--dest",
    "-d",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to place downloaded files in",
)
@click.option("--base-url", "-b", help="Base URL that manifest file URLs resolve against")
@click.pass_context
def fetch_command(ctx, manifest, dest, base_url):
    """Fetch every file listed in MANIFEST into DEST.

    MANIFEST is a JSON list of catalog download file records, or an object
    with a 'downloadFiles' list.
    """
    try:
        files = load_manifest(manifest)
        results = fetch_files(build_fetcher(ctx), files, dest, base_url=base_url)
    except (CacheError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    failed = 0
    for result in results:
        if result.ok:
            console.print(f"[green]✓[/green] {result.file.file_name}")
        else:
            failed += 1
            console.print(f"[red]✗[/red] {result.file.file_name}: {result.error}")

    console.print(f"\nFetched {len(results) - failed} of {len(results)} files")
    if failed:
        sys.exit(1)


@cli.command("verify")
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--dest",
    "-d",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory containing the downloaded files",
)
@click.option("--no-progress", is_flag=True, help="Don't show progress bars")
@click.pass_context
def verify_command(ctx, manifest, dest, no_progress):
    """Verify files listed in MANIFEST against their checksums.

    Prints one line per file and exits with status 1 if any file is missing
    or has the wrong digest.
    """
    config: CacheConfig = ctx.obj["config"]
    try:
        files = load_manifest(manifest)
        if no_progress:
            outcomes = verify_files(files, dest, chunk_size=config.chunk_size)
        else:
            with Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                console=err_console,
                transient=True,
            ) as bar:
                tasks = {}

                def on_progress(file, done, total):
                    if file.file_name not in tasks:
                        tasks[file.file_name] = bar.add_task(file.file_name, total=total)
                    bar.update(tasks[file.file_name], completed=done)

                outcomes = verify_files(
                    files, dest, progress=on_progress, chunk_size=config.chunk_size
                )
    except (CacheError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    failed = 0
    for file, outcome in zip(files, outcomes):
        if isinstance(outcome, Valid):
            console.print(f"[green]✓[/green] {file.file_name}: valid")
            continue

        failed += 1
        if isinstance(outcome, DigestMismatch):
            console.print(
                f"[red]✗[/red] {file.file_name}: invalid digest "
                f"(expected {outcome.expected}, actual {outcome.actual})"
            )
        elif isinstance(outcome, Missing):
            console.print(f"[yellow]?[/yellow] {file.file_name}: missing")
        elif isinstance(outcome, UnsupportedAlgorithm):
            console.print(
                f"[yellow]?[/yellow] {file.file_name}: "
                f"unsupported checksum type '{outcome.name}'"
            )

    if failed:
        sys.exit(1)


@cli.command("info")
@click.argument("url")
@click.pass_context
def info_command(ctx, url):
    """Show the cached metadata for URL."""
    config: CacheConfig = ctx.obj["config"]
    store = MetadataStore(config.cache_dir)
    key = derive_cache_key(url)
    try:
        metadata = store.load(key)
    except CacheError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    if metadata is None:
        console.print(f"[yellow]Not cached:[/yellow] {url}")
        return

    table = Table(title=f"Cache entry for {metadata.source_url}")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("Data", str(store.data_path(key)))
    table.add_row("Captured", metadata.captured_at.isoformat())
    table.add_row("ETag", metadata.etag or "-")
    table.add_row("Last-Modified", metadata.last_modified or "-")
    table.add_row("Policy", type(metadata.cache_control).__name__)
    console.print(table)


if __name__ == "__main__":
    cli()
