"""Command-line interface for Kiln.

This module defines the CLI commands using Click framework.

Commands:
- build: Build a site once.
- serve: Serve a built site; in development mode also rebuild on change and push reloads.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .config import DEFAULTS, ConfigError, Mode, ServerConfig
from .log import configure_logging

_MODE_CHOICE = click.Choice([m.value for m in Mode], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="kiln")
@click.option("-v", "--verbose", is_flag=True, help="Log every processed file")
def cli(verbose: bool):
    """Kiln static site generator."""
    configure_logging(verbose=verbose)


@cli.command()
@click.option(
    "--src-dir",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding the site sources",
)
@click.option(
    "--dst-dir",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to build into (wiped first)",
)
@click.option(
    "--mode",
    type=_MODE_CHOICE,
    default=Mode.PRODUCTION.value,
    show_default=True,
    help="Production minifies; development keeps source maps and the debug flag",
)
def build(src_dir: Path, dst_dir: Path, mode: str):
    """Build the site into the output directory."""
    from .build import process_tree

    try:
        result = process_tree(src_dir, dst_dir, Mode.parse(mode))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None
    if result.failed:
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        for path in result.failed:
            click.echo(click.style(f"  File: {_display(path, src_dir)}", fg="yellow"), err=True)
        raise SystemExit(1)
    click.echo(f"Built {len(result.written)} files into {result.output_root}")


@cli.command()
@click.option("--mode", type=_MODE_CHOICE, required=True, help="development or production")
@click.option(
    "--src-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding the site sources (required in development)",
)
@click.option(
    "--dst-dir",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Built site to serve",
)
@click.option("--hostname", default=DEFAULTS["hostname"], show_default=True)
@click.option("--port", type=int, default=DEFAULTS["port"], show_default=True)
@click.option(
    "--ws-port",
    type=int,
    default=DEFAULTS["ws_port"],
    show_default=True,
    help="Port of the reload websocket (development only)",
)
@click.option(
    "--tls-key",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Private key; serve HTTPS/WSS together with --tls-cert",
)
@click.option(
    "--tls-cert",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Certificate chain matching --tls-key",
)
def serve(
    mode: str,
    src_dir: Path | None,
    dst_dir: Path,
    hostname: str,
    port: int,
    ws_port: int,
    tls_key: Path | None,
    tls_cert: Path | None,
):
    """Serve the built site; development mode rebuilds on change and reloads browsers."""
    from .server import SiteServer

    config = ServerConfig(
        mode=Mode.parse(mode),
        output_root=dst_dir,
        source_root=src_dir,
        hostname=hostname,
        port=port,
        ws_port=ws_port,
        tls_key=tls_key,
        tls_cert=tls_cert,
    )
    try:
        server = SiteServer(config)
        server.start()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None


def _display(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root.resolve()))
    except ValueError:
        return str(path)


def main():
    """Entry point for the CLI application."""
    cli()
