"""
peertunnel CLI entry point.

Usage:
    peertunnel run host [OPTIONS]
    peertunnel run client REMOTE_PEER [OPTIONS]

Commands:
    run       Run the host or client side of the tunnel
    version   Show version information
"""

import asyncio
from typing import Annotated

import typer

from peertunnel.app import run_client, run_host
from peertunnel.cli.output import console, print_error, print_usage
from peertunnel.config import config
from peertunnel.models.enums import LogLevel, TunnelMode
from peertunnel.utils.logger import configure_logging

app = typer.Typer(
    name="peertunnel",
    help="Tunnel TCP connections over a peer-to-peer link",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

USAGE = "Usage: peertunnel run <host|client> [remotePeerIdentity]"
CLIENT_USAGE = "Usage: peertunnel run client <remotePeerIdentity>"


@app.command("run")
def run_command(
    mode: Annotated[
        str | None, typer.Argument(help="Tunnel side to run: host or client")
    ] = None,
    remote_peer: Annotated[
        str | None,
        typer.Argument(help="Identity of the host peer (client mode only)"),
    ] = None,
    service_host: Annotated[
        str,
        typer.Option(
            "--service-host",
            help="Local service address the host dials",
            envvar="PEERTUNNEL_SERVICE_HOST",
        ),
    ] = config.SERVICE_HOST,
    service_port: Annotated[
        int,
        typer.Option(
            "--service-port",
            "-s",
            help="Local service port the host dials",
            envvar="PEERTUNNEL_SERVICE_PORT",
        ),
    ] = config.SERVICE_PORT,
    listen_host: Annotated[
        str,
        typer.Option(
            "--listen-host",
            help="Address the client listens on",
            envvar="PEERTUNNEL_LISTEN_HOST",
        ),
    ] = config.LISTEN_HOST,
    listen_port: Annotated[
        int,
        typer.Option(
            "--listen-port",
            "-l",
            help="Port the client listens on",
            envvar="PEERTUNNEL_LISTEN_PORT",
        ),
    ] = config.LISTEN_PORT,
    bind: Annotated[
        str,
        typer.Option(
            "--bind",
            help="Address the host accepts peers on",
            envvar="PEERTUNNEL_BIND",
        ),
    ] = config.TRANSPORT_BIND_IP,
    port: Annotated[
        int,
        typer.Option(
            "--port",
            "-p",
            help="Port the host accepts peers on",
            envvar="PEERTUNNEL_PORT",
        ),
    ] = config.TRANSPORT_PORT,
    identity: Annotated[
        str | None,
        typer.Option(
            "--identity",
            help="Identity announced to peers (random by default)",
            envvar="PEERTUNNEL_IDENTITY",
        ),
    ] = None,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", help="Logging verbosity", envvar="PEERTUNNEL_LOG_LEVEL"),
    ] = config.LOG_LEVEL,
):
    """
    Run one side of the tunnel.

    [bold]host[/bold] dials the local service once per tunneled connection.
    [bold]client[/bold] listens locally and forwards to REMOTE_PEER.
    """
    if mode not in (TunnelMode.HOST.value, TunnelMode.CLIENT.value):
        print_usage(USAGE)
        raise typer.Exit(1)

    if mode == TunnelMode.CLIENT.value and not remote_peer:
        print_usage(CLIENT_USAGE)
        raise typer.Exit(1)

    config.SERVICE_HOST = service_host
    config.SERVICE_PORT = service_port
    config.LISTEN_HOST = listen_host
    config.LISTEN_PORT = listen_port
    config.TRANSPORT_BIND_IP = bind
    config.TRANSPORT_PORT = port
    if identity:
        config.LOCAL_IDENTITY = identity
    config.LOG_LEVEL = log_level

    configure_logging(log_level)

    try:
        if mode == TunnelMode.HOST.value:
            console.print(
                f"[bold green]Host[/bold green] "
                f"[cyan]{config.get_transport_url()}[/cyan] "
                f"[dim]→[/dim] "
                f"[yellow]{service_host}:{service_port}[/yellow]"
            )
            console.print("[dim]Press Ctrl+C to stop.[/dim]")
            asyncio.run(run_host(config))
        else:
            console.print(
                f"[bold green]Client[/bold green] "
                f"[cyan]{listen_host}:{listen_port}[/cyan] "
                f"[dim]→[/dim] "
                f"[yellow]{remote_peer}[/yellow]"
            )
            console.print("[dim]Press Ctrl+C to stop.[/dim]")
            asyncio.run(run_client(remote_peer, config))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    except OSError as e:
        if "Address already in use" in str(e):
            print_error(f"Port is already in use: {e}")
        else:
            print_error(f"Error: {e}")
        raise typer.Exit(1)


@app.command("version")
def version():
    """Show version information."""
    from peertunnel import __version__

    console.print(f"peertunnel v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
