#!/usr/bin/env python3
"""
duofetch CLI

Command-line interface for the TCP/UDP file server and batch client.

Usage:
    duofetch serve                      # Serve ./files over TCP and UDP
    duofetch fetch                      # Ask for TCP/UDP, download the configured files
    duofetch fetch -p udp a.txt b.txt   # Download specific files over UDP
    duofetch show-config                # Show the effective configuration
"""

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.panel import Panel
from rich.logging import RichHandler

from .client import FileClient
from .config import Config, EXAMPLE_CONFIG, load_config
from .exceptions import ConfigurationError
from .server import FileServer
from .transfer import BatchReport, Transport

console = Console()

# Exit status when the transport choice is invalid
EXIT_INVALID_PROTOCOL = 2


def setup_logging(verbose: bool = False, level_name: str = 'INFO'):
    """Configure logging with rich output."""
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', default=None,
              type=click.Path(dir_okay=False, path_type=Path),
              help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """duofetch - retrieve files over TCP or UDP and time each transfer."""
    config = load_config(config_path)
    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--root', type=click.Path(file_okay=False, path_type=Path),
              help='Directory to serve files from')
@click.option('--host', help='Address to bind')
@click.option('--tcp-port', type=int, help='Stream (TCP) port')
@click.option('--udp-port', type=int, help='Datagram (UDP) port')
@click.option('--chunk-size', type=int, help='Maximum UDP payload per datagram')
@click.pass_context
def serve(ctx, root, host, tcp_port, udp_port, chunk_size):
    """Serve a directory over TCP and UDP."""
    config: Config = ctx.obj['config']
    if root:
        config.files_dir = root
    if host:
        config.host = host
    if tcp_port is not None:
        config.tcp_port = tcp_port
    if udp_port is not None:
        config.udp_port = udp_port
    if chunk_size is not None:
        config.chunk_size = chunk_size

    async def run():
        server = FileServer(config)

        try:
            await server.start()

            console.print(Panel.fit(
                f"[bold green]File Server Started[/bold green]\n\n"
                f"Root: [blue]{server.resolver.root_dir}[/blue]\n"
                f"TCP Port: [yellow]{server.tcp_port}[/yellow]\n"
                f"UDP Port: [yellow]{server.udp_port}[/yellow]\n"
                f"UDP Chunk Size: [yellow]{config.chunk_size:,} bytes[/yellow]",
                title="Server Info"
            ))
            console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

            while True:
                await asyncio.sleep(1)
        finally:
            await server.stop()

    try:
        asyncio.run(run())
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        ctx.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        console.print("[green]Server stopped[/green]")


@cli.command()
@click.argument('names', nargs=-1)
@click.option('--protocol', '-p', help='TCP or UDP (asked for if omitted)')
@click.option('--server', 'server_host', help='Server address')
@click.option('--tcp-port', type=int, help='Server stream (TCP) port')
@click.option('--udp-port', type=int, help='Server datagram (UDP) port')
@click.option('--download-dir', type=click.Path(file_okay=False, path_type=Path),
              help='Where to save files')
@click.option('--json', 'as_json', is_flag=True, help='Print the batch report as JSON')
@click.pass_context
def fetch(ctx, names, protocol, server_host, tcp_port, udp_port, download_dir, as_json):
    """Download files one after another over a single transport."""
    config: Config = ctx.obj['config']
    if server_host:
        config.server_host = server_host
    if tcp_port is not None:
        config.tcp_port = tcp_port
    if udp_port is not None:
        config.udp_port = udp_port
    if download_dir:
        config.download_dir = download_dir

    if protocol is None:
        protocol = click.prompt('Choose protocol (TCP/UDP)')

    try:
        transport = Transport.parse(protocol)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        ctx.exit(EXIT_INVALID_PROTOCOL)

    try:
        config.validate()
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        ctx.exit(1)

    files = list(names) or list(config.files)

    async def run() -> BatchReport:
        client = FileClient(config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"Downloading over {transport.value}...", total=len(files))

            def update_progress(index, total, result):
                progress.update(task, completed=index,
                                description=f"Downloading over {transport.value}... ({result.name})")

            return await client.run_batch(files, transport, update_progress)

    report = asyncio.run(run())

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)

    console.print("\n[bold]All requested files have been processed.[/bold]")


@cli.command('show-config')
@click.option('--example', is_flag=True, help='Print an example config file instead')
@click.option('--save', 'save_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Write the effective configuration to a JSON file')
@click.pass_context
def show_config(ctx, example, save_path):
    """Show the effective configuration."""
    config: Config = ctx.obj['config']

    if example:
        click.echo(EXAMPLE_CONFIG)
        return

    if save_path:
        config.save(save_path)
        console.print(f"[green]Configuration written to {save_path}[/green]")
        return

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


def print_report(report: BatchReport):
    """Render a batch report as a table."""
    table = Table(title=f"Downloads over {report.transport}")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right", style="yellow")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Completion")
    table.add_column("Status")

    for r in report.results:
        if r.ok:
            status = "[green]✓ saved[/green]"
            completion = r.completion.value if r.completion else ''
            table.add_row(r.name, format_size(r.size), f"{r.elapsed_ms:.2f}", completion, status)
        else:
            table.add_row(r.name, "-", "-", "-", f"[red]✗ {escape(r.error)}[/red]")

    console.print(table)
    console.print(
        f"[green]{report.succeeded} succeeded[/green], "
        f"[red]{report.failed} failed[/red], "
        f"{format_size(report.total_bytes)} in {report.total_ms:.2f} ms"
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


if __name__ == '__main__':
    cli()
