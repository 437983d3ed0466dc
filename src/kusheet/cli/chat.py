"""CLI: kusheet chat, kusheet send"""

import asyncio

import click
from rich.console import Console

from kusheet.errors import KuSheetError, SendError
from kusheet.models.message import ChatMessage

console = Console()


def _get_client():
    from kusheet.cli.main import _get_client
    return _get_client()


def _run(coro):
    from kusheet.cli.main import _run
    return _run(coro)


def _print_message(message: ChatMessage) -> None:
    when = message.created_at.strftime("%H:%M") if message.created_at else "--:--"
    name = message.user.full_name or "user"
    console.print(f"[dim]{when}[/dim] [cyan]{name}:[/cyan] {message.content}")


@click.command("chat")
@click.argument("group_id")
def chat_cmd(group_id: str):
    """Interactive group chat."""

    async def _chat():
        client = _get_client()
        try:
            await client.connect()
        except KuSheetError as e:
            console.print(f"[yellow]Socket unavailable ({e}); using the SSE stream.[/yellow]")
        try:
            await _session(client.group_chat(group_id))
        finally:
            await client.close()

    async def _session(chat):
        async with chat:
            if not chat.can_chat:
                console.print("[red]You are not a member of this group.[/red]")
                return
            for message in chat.messages:
                _print_message(message)
            chat.on_message(_print_message)
            console.print("[cyan]Type your message (/quit to exit)[/cyan]\n")
            try:
                while True:
                    text = await asyncio.to_thread(click.prompt, "", prompt_suffix="> ")
                    if text.lower() in ("/quit", "/exit"):
                        break
                    try:
                        await chat.send(text)
                    except SendError as e:
                        console.print(f"[red]Send failed:[/red] {e} (kept: {e.content})")
            except (KeyboardInterrupt, EOFError, click.Abort):
                pass

    _run(_chat())


@click.command("send")
@click.argument("group_id")
@click.argument("message")
def send_cmd(group_id: str, message: str):
    """Send a one-shot message over REST."""

    async def _send():
        client = _get_client()
        try:
            sent = await client.chat_api.send_message(group_id, message)
        except KuSheetError as e:
            console.print(f"[red]Send failed: {e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        _print_message(sent)

    _run(_send())
