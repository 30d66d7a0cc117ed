"""chunksync CLI main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from chunksync.cli._helpers import configure_logging
from chunksync.cli.commands.chunks import chunks_app
from chunksync.cli.commands.config_cmd import config_app
from chunksync.cli.commands.setup import device, init, test
from chunksync.cli.commands.sync_cmd import resolve, status, sync

# Main app
app = typer.Typer(
    name="chunksync",
    help="chunksync - Sync chunked application data between devices over WebDAV",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.add_typer(chunks_app, name="chunks")

app.command()(init)
app.command()(test)
app.command()(device)
app.command()(sync)
app.command()(status)
app.command()(resolve)


@app.callback()
def _root(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    configure_logging(verbose)


@app.command()
def version() -> None:
    """Show version information."""
    from chunksync import __version__

    typer.echo(f"chunksync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
