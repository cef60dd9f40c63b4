#!/usr/bin/env python3
"""
SwiftShare CLI

Command-line interface for local-network file transfers.

Usage:
    swiftshare listen                    # Wait for a peer and receive files
    swiftshare send HOST PORT FILE       # Send a file to a listening peer
    swiftshare config                    # Show the effective configuration
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.logging import RichHandler

from .config import load_config, EXAMPLE_CONFIG
from .node import SwiftShareNode
from .notify import CollectingNotifier, Notice, NoticeLevel
from .transfer import Direction, TransferRecord
from .utils import format_size

console = Console()

_NOTICE_STYLES = {
    NoticeLevel.INFO: "green",
    NoticeLevel.WARNING: "yellow",
    NoticeLevel.ERROR: "red",
}


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


class ConsoleNotifier(CollectingNotifier):
    """Shows notices as panels on the console."""

    def __init__(self, api_url: Optional[str] = None):
        super().__init__()
        # Base URL of the REST API, when one is being served
        self.api_url = api_url

    def notify(self, notice: Notice):
        self.notices.append(notice)
        style = _NOTICE_STYLES[notice.level]
        body = notice.message
        if notice.can_retry and self.api_url:
            body += (f"\n\n[dim]Retry with: POST "
                     f"{self.api_url}/files/received/{notice.file_id}/retry[/dim]")
        console.print(Panel.fit(body, title=f"[bold {style}]{notice.title}[/bold {style}]"))


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(), default=None,
              help='JSON config file')
@click.option('--download-dir', default=None, help='Where received files are saved')
@click.option('--device-name', default=None, help='Name shown to the peer')
@click.pass_context
def cli(ctx, verbose, config_path, download_dir, device_name):
    """SwiftShare - peer-to-peer file transfer on the local network."""
    config = load_config(Path(config_path) if config_path else None)
    if download_dir:
        config.download_dir = Path(download_dir).expanduser()
    if device_name:
        config.device_name = device_name

    setup_logging(verbose, config.log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--port', default=None, type=int, help='TCP port to listen on')
@click.option('--api/--no-api', default=False, help='Also serve the REST API')
@click.option('--api-port', default=None, type=int, help='REST API port')
@click.pass_context
def listen(ctx, port, api, api_port):
    """Wait for a peer and receive files."""
    config = ctx.obj['config']
    if port is not None:
        config.port = port

    api_port = api_port or config.api_port
    api_url = f"http://localhost:{api_port}" if api else None

    async def run():
        node = SwiftShareNode(config, notifier=ConsoleNotifier(api_url))

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console,
        ) as progress:
            tasks = {}

            def update_progress(record: TransferRecord):
                if record.id not in tasks:
                    arrow = "←" if record.direction == Direction.RECEIVED else "→"
                    tasks[record.id] = progress.add_task(
                        f"{arrow} {record.name} ({format_size(record.size)})", total=100
                    )
                progress.update(tasks[record.id], completed=record.progress)

            node.on_record_change(update_progress)

            try:
                await node.start_server()

                console.print(Panel.fit(
                    f"[bold green]SwiftShare Listening[/bold green]\n\n"
                    f"Device: [cyan]{config.device_name}[/cyan]\n"
                    f"Port: [yellow]{node.listening_port}[/yellow]\n"
                    f"Saving to: [blue]{config.download_dir}[/blue]",
                    title="Receiver"
                ))

                if api:
                    from .api import run_api_server
                    console.print(f"\n[dim]REST API available at {api_url}[/dim]\n")
                    await run_api_server(node, port=api_port)
                else:
                    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")
                    while True:
                        await asyncio.sleep(1)

            finally:
                await node.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@cli.command()
@click.argument('host')
@click.argument('port', type=int)
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--peer-name', default='', help='Display name of the peer')
@click.option('--timeout', default=None, type=float,
              help='Give up after this many seconds (default: wait forever)')
@click.pass_context
def send(ctx, host, port, file_path, peer_name, timeout):
    """Send a file to a listening peer."""
    config = ctx.obj['config']
    file_path = Path(file_path)

    async def run() -> bool:
        node = SwiftShareNode(config, notifier=ConsoleNotifier())

        try:
            if not await node.connect(host, port, peer_name):
                console.print(f"[red]✗ Could not connect to {host}:{port}[/red]")
                return False

            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                console=console,
            ) as progress:
                task = progress.add_task(f"Sending {file_path.name}...", total=100)
                node.on_record_change(
                    lambda record: progress.update(task, completed=record.progress)
                )

                if not await node.send_file(file_path):
                    return False

                record = await node.wait_for_record(
                    Direction.SENT, lambda r: r.is_finished, timeout=timeout
                )

            if record.available:
                console.print(f"\n[green]✓ Sent {record.name} "
                              f"({format_size(record.size)}) to {node.connected_device}[/green]")
                return True

            console.print(f"\n[red]✗ Transfer did not complete "
                          f"({record.progress:.0f}%)[/red]")
            return False

        except asyncio.TimeoutError:
            console.print("\n[red]✗ Timed out waiting for the peer[/red]")
            await node.cancel_transfer()
            return False
        finally:
            await node.stop()

    ok = asyncio.run(run())
    ctx.exit(0 if ok else 1)


@cli.command('config')
@click.option('--example', is_flag=True, help='Print an example config file')
@click.pass_context
def show_config(ctx, example):
    """Show the effective configuration."""
    if example:
        console.print(EXAMPLE_CONFIG)
        return
    console.print_json(json.dumps(ctx.obj['config'].to_dict()))


def main(argv: Optional[list] = None):
    cli(args=argv, obj={})


if __name__ == '__main__':
    main()
