"""Lead and memory management commands."""

import click
from rich.table import Table

from . import cli
from .shared import console, get_settings


@cli.command()
def leads():
    """List captured leads."""
    from wachat.services.leads import LeadStore

    settings = get_settings()
    all_leads = LeadStore(settings.data_path / "leads.json").all_leads()
    if not all_leads:
        console.print("[dim]No leads captured yet.[/dim]")
        return

    table = Table(title=f"Leads ({len(all_leads)})")
    table.add_column("#", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Project")
    table.add_column("Number")
    table.add_column("Captured")
    for i, lead in enumerate(all_leads, 1):
        table.add_row(
            str(i),
            lead.get("name", ""),
            lead.get("project", ""),
            str(lead.get("jid", "")).split("@")[0],
            lead.get("timestamp", ""),
        )
    console.print(table)


@cli.command(name="reset-memory")
@click.argument("jid")
def reset_memory(jid):
    """Forget the stored conversation with JID."""
    from wachat.services.memory import ConversationMemory

    settings = get_settings()
    memory = ConversationMemory(settings.data_path, lambda name: "", max_length=settings.memory_max_length)
    path = memory.history_path(jid)
    if not path.exists():
        console.print(f"[yellow]No stored history for {jid}[/yellow]")
        return
    memory.reset(jid)
    console.print(f"[green]✓ Conversation memory cleared for {jid}[/green]")
