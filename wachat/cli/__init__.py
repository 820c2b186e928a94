"""wachat CLI — command line interface."""

import click
from wachat import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="wachat")
@click.pass_context
def cli(ctx):
    """wachat — WhatsApp chat-bot with an LLM persona"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands grouped by category."""
    console.print(f"[bold]wachat v{__version__}[/bold] — WhatsApp chat-bot with an LLM persona\n")

    groups = {
        "Usage": [
            ("start", "Connect to WhatsApp and start answering messages"),
            ("status", "Show configuration and stored data"),
        ],
        "Data": [
            ("leads", "List captured leads"),
            ("reset-memory", "Forget the conversation with one chat (JID)"),
        ],
    }

    for category, commands in groups.items():
        console.print(f"  [bold cyan]{category}[/bold cyan]")
        for name, desc in commands:
            console.print(f"    [bold]wachat {name:14s}[/bold] {desc}")
        console.print()

    console.print("[dim]Run 'wachat <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_status  # noqa: E402, F401
from . import cmd_leads  # noqa: E402, F401


@cli.command(name="help", hidden=True)
def help_cmd():
    """Show all available commands."""
    _show_help()


def main():
    """CLI entry point."""
    import sys
    try:
        cli(standalone_mode=False)
    except click.UsageError as e:
        if e.ctx:
            click.echo(e.ctx.command.get_usage(e.ctx), err=True)
        click.echo("Try 'wachat help' for help.\n", err=True)
        click.echo(f"Error: {e.format_message()}", err=True)
        sys.exit(2)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
