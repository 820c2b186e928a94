"""Start command."""

import click

from . import cli
from .shared import console


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Connect to WhatsApp and start the bot."""
    from wachat.main import main as run_main
    console.print("[bold blue]Starting wachat...[/bold blue]")
    run_main(debug=debug)
