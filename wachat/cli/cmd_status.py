"""Status command."""

import click
from rich.table import Table

from . import cli
from .shared import console, get_settings


def _count_files(path) -> int:
    return sum(1 for p in path.rglob("*") if p.is_file()) if path.is_dir() else 0


@cli.command()
def status():
    """Show configuration and stored data."""
    from wachat import __version__
    from wachat.services.leads import LeadStore
    from wachat.services.memory import ConversationMemory
    from wachat.services.profiles import ProfileStore

    settings = get_settings()
    data = settings.data_path

    table = Table(title=f"wachat Status v{__version__}", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Bot", settings.bot_name)
    table.add_row("Data dir", str(data))
    table.add_row("Owner", settings.owner_jid or "[yellow]not set[/yellow]")
    table.add_row(
        "LLM key",
        "[green]configured[/green]" if settings.groq_api_key else "[red]missing[/red]",
    )
    table.add_row("Chat model", settings.chat_model)
    table.add_row("Profiles", str(ProfileStore(data / "profiles").count()))
    table.add_row("Histories", str(ConversationMemory(data, lambda name: "").count_histories()))
    table.add_row("Leads", str(len(LeadStore(data / "leads.json").all_leads())))
    table.add_row("Sandbox files", str(_count_files(data / "sandbox")))
    table.add_row(
        "Login QR",
        f"[yellow]pending[/yellow] ({settings.qr_path})" if settings.qr_path.is_file() else "none",
    )
    table.add_row("QR server", f"http://{settings.http_host}:{settings.http_port}/qr")

    console.print(table)
