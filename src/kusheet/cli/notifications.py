"""CLI: kusheet notifications list|read|read-all"""

import json

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _get_client():
    from kusheet.cli.main import _get_client
    return _get_client()


def _run(coro):
    from kusheet.cli.main import _run
    return _run(coro)


@click.group()
def notifications():
    """Notification feed."""


@notifications.command("list")
@click.option("--limit", default=10, type=int)
@click.option("--json-output", "--json", is_flag=True)
def notifications_list(limit, json_output):
    """List recent notifications."""

    async def _list():
        client = _get_client()
        feed = client.notification_feed()
        await feed.load(limit=limit)
        await client.close()
        if json_output:
            click.echo(json.dumps([n.model_dump(mode="json", by_alias=True) for n in feed.items], indent=2))
            return
        table = Table(title=f"Notifications ({feed.unread_count} unread)")
        table.add_column("ID", style="bold")
        table.add_column("Type")
        table.add_column("Title")
        table.add_column("Read")
        for n in feed.items:
            table.add_row(str(n.id), n.type, n.title, "yes" if n.is_read else "")
        console.print(table)

    _run(_list())


@notifications.command("read")
@click.argument("notification_id")
def notifications_read(notification_id):
    """Mark one notification read."""

    async def _read():
        client = _get_client()
        await client.notification_feed().mark_read(notification_id)
        await client.close()
        console.print(f"[green]Notification {notification_id} marked read.[/green]")

    _run(_read())


@notifications.command("read-all")
def notifications_read_all():
    """Mark every notification read."""

    async def _read_all():
        client = _get_client()
        await client.notification_feed().mark_all_read()
        await client.close()
        console.print("[green]All notifications marked read.[/green]")

    _run(_read_all())
