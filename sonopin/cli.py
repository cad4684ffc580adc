"""
Command-line interface for sonopin.

Pins audio project directories into numbered versions, syncs them with a
sync server and diffs/patches audio at the sample level.
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from sonopin import __version__
from sonopin.audio import apply_patch, apply_patch_set, compare_files, count_change_runs, read_samples
from sonopin.shared.config import load_remote_config, server_defaults
from sonopin.shared.errors import SonopinError
from sonopin.shared.models import SyncStatus
from sonopin.store import history, init_project, pin as pin_project
from sonopin.sync.client import SyncClient

console = Console()


def _fail(e: SonopinError):
    console.print(f"[red]❌ {e.message}[/red]", soft_wrap=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('-v', '--verbose', is_flag=True, help='Show debug logging')
def cli(verbose):
    """
    🎚  sonopin: version control for audio projects

    Pin your project into numbered versions, push them to a sync server
    and compare or patch audio files sample by sample.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


@cli.command()
@click.argument('name')
@click.option('-r', '--remote', required=True, help='Sync server URL, e.g. http://localhost:6969')
def init(name, remote):
    """Turn the current directory into a project."""
    try:
        tracked = init_project(Path.cwd(), name, remote)
    except SonopinError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Initialized project [cyan]{name}[/cyan] at version 0.1")
    console.print(f"Remote: [cyan]{remote}[/cyan]")
    console.print(f"Tracked audio files: [bold]{len(tracked)}[/bold]")


@cli.command()
@click.option('-m', '--message', help='Pin message')
@click.option('--push/--no-push', default=True, help='Push the new pin to the remote')
def pin(message, push):
    """Pin the working tree as the next version."""
    root = Path.cwd()
    try:
        remote = load_remote_config(root) if push else None
        with console.status("[bold green]Pinning..."):
            result = pin_project(root, message=message, remote=remote)
    except SonopinError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Pinned version [bold]{result.version}[/bold]")
    for file in result.added:
        console.print(f"  [green]+ {file}[/green]")
    for file in result.removed:
        console.print(f"  [red]- {file}[/red]")
    if not result.diffs:
        console.print("  [dim]No changes[/dim]")

    if result.remote is SyncStatus.OK:
        console.print(f"[green]✓[/green] Pushed to [cyan]{remote.server}[/cyan]")
    elif result.remote is SyncStatus.FAILED:
        console.print(f"[yellow]⚠ Pin {result.version} is stored locally but was not pushed:[/yellow]")
        console.print(f"[yellow]{result.remote_error}[/yellow]")
        console.print(f"Retry with: [cyan]sonopin push {result.version}[/cyan]")


@cli.command()
@click.argument('version')
def push(version):
    """Push an existing local pin to the remote."""
    root = Path.cwd()
    try:
        remote = load_remote_config(root)
        SyncClient(remote).push(root, version)
    except SonopinError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Pushed {version} to [cyan]{remote.server}[/cyan]")


@cli.command()
@click.argument('version')
@click.option('--extract', is_flag=True, help='Write the pin\'s files into the working tree')
def checkout(version, extract):
    """Download a pin archive from the remote."""
    root = Path.cwd()
    try:
        remote = load_remote_config(root)
        with console.status(f"[bold green]Downloading {version}..."):
            path = SyncClient(remote).checkout(root, version, extract=extract)
    except SonopinError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Checked out {version} to [cyan]{path}[/cyan]")
    if extract:
        console.print("[green]✓[/green] Files written to the working tree")


@cli.command()
@click.option('-l', '--limit', type=int, help='Show only the newest N pins')
def log(limit):
    """Show local pin history."""
    try:
        summaries = history(Path.cwd(), limit=limit)
    except SonopinError as e:
        _fail(e)

    if not summaries:
        console.print("[yellow]No pins yet.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Version", style="cyan")
    table.add_column("Message")
    table.add_column("Added", justify="right", style="green")
    table.add_column("Removed", justify="right", style="red")
    for summary in summaries:
        table.add_row(str(summary.version), summary.message,
                      str(summary.added), str(summary.removed))
    console.print(table)


@cli.command()
def pins():
    """List the pins stored on the remote."""
    try:
        remote = load_remote_config(Path.cwd())
        versions = SyncClient(remote).list_pins()
    except SonopinError as e:
        _fail(e)

    if not versions:
        console.print(f"[yellow]No pins on the server for {remote.project}.[/yellow]")
        return
    console.print(f"[bold]{remote.project}[/bold] on [cyan]{remote.server}[/cyan]")
    for version in versions:
        console.print(f"  {version}")


@cli.command('fetch-file')
@click.argument('version')
@click.argument('name')
@click.option('-o', '--output', type=click.Path(), help='Where to write the file')
def fetch_file(version, name, output):
    """Download one file out of a remote pin."""
    dest = Path(output) if output else Path.cwd() / Path(name).name
    try:
        remote = load_remote_config(Path.cwd())
        SyncClient(remote).fetch_file(version, name, dest)
    except SonopinError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Saved {name} from {version} to [cyan]{dest}[/cyan]")


@cli.command()
@click.argument('old', type=click.Path(exists=True, dir_okay=False))
@click.argument('new', type=click.Path(exists=True, dir_okay=False))
@click.argument('output_dir', type=click.Path(file_okay=False))
@click.option('--runs', is_flag=True, help='Write one patch pair per contiguous run of changes')
def compare(old, new, output_dir, runs):
    """Diff two audio files into patch artifacts."""
    try:
        written = compare_files(old, new, output_dir, runs=runs)
        scattered = 0
        if written and not runs:
            old_buf, new_buf = read_samples(old), read_samples(new)
            scattered = count_change_runs(old_buf.samples, new_buf.samples,
                                          old_buf.bit_depth, old_buf.is_float)
    except SonopinError as e:
        _fail(e)

    if not written:
        console.print("[green]✓[/green] Files are identical, no patches written")
        return
    console.print(f"[green]✓[/green] Wrote {len(written)} patch file(s) to [cyan]{output_dir}[/cyan]")
    for path in written:
        console.print(f"  {path.name}")
    if scattered > 1:
        console.print(f"[yellow]⚠ Changes fall in {scattered} separate runs; these patches will not "
                      f"rebuild {new}.[/yellow]", soft_wrap=True)
        console.print("Re-run with: [cyan]sonopin compare --runs[/cyan]")


@cli.command()
@click.argument('target', type=click.Path(exists=True, dir_okay=False))
@click.argument('patch_path', metavar='PATCH', type=click.Path(exists=True))
def patch(target, patch_path):
    """Apply a patch file (or a directory of patches) to TARGET."""
    try:
        if Path(patch_path).is_dir():
            applied = apply_patch_set(target, patch_path)
        else:
            applied = [apply_patch(target, patch_path)]
    except SonopinError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Applied {len(applied)} patch(es) to [cyan]{target}[/cyan]")


@cli.command()
@click.option('-p', '--port', type=int, help='Port to listen on')
@click.option('-d', '--data-dir', type=click.Path(file_okay=False), help='Object store directory')
def server(port, data_dir):
    """Run the sync server."""
    from sonopin.sync.serve import serve

    defaults = server_defaults()
    port = port or defaults["port"]
    data_dir = data_dir or defaults["data_dir"]

    # Server logs go to the terminal even without --verbose
    logging.getLogger("sonopin").setLevel(logging.INFO)
    console.print(f"[bold green]Sync server[/bold green] on port [cyan]{port}[/cyan], data in [cyan]{data_dir}[/cyan]")
    serve(data_dir, port, grace=defaults["grace"])
