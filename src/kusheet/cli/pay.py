"""CLI: kusheet pay status|wait|verify"""

import click
from rich.console import Console

from kusheet.errors import KuSheetError, PaymentExpiredError

console = Console()


def _get_client():
    from kusheet.cli.main import _get_client
    return _get_client()


def _run(coro):
    from kusheet.cli.main import _run
    return _run(coro)


@click.group()
def pay():
    """PromptPay payment sessions."""


@pay.command("status")
@click.argument("session_id")
def pay_status(session_id):
    """Show a payment session's status."""

    async def _status():
        client = _get_client()
        try:
            status = await client.payments.get_status(session_id)
        finally:
            await client.close()
        console.print(f"{status.session_id}: [bold]{status.status}[/bold] ฿{status.amount}")

    _run(_status())


@pay.command("wait")
@click.argument("session_id")
@click.option("--interval", default=5.0, type=float)
def pay_wait(session_id, interval):
    """Wait until the session is paid (30 minutes at most)."""

    async def _wait():
        client = _get_client()
        try:
            with console.status("Waiting for payment..."):
                status = await client.payments.wait_for_completion(session_id, interval=interval)
        except PaymentExpiredError:
            console.print("[red]QR code expired. Create a new session.[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        console.print(f"[green]Paid: orders {status.order_ids}[/green]")

    _run(_wait())


@pay.command("verify")
@click.argument("session_id")
@click.argument("reference_number")
@click.argument("amount", type=float)
@click.option("--bank", default="Unknown")
def pay_verify(session_id, reference_number, amount, bank):
    """Confirm a transfer with the bank reference number."""

    async def _verify():
        client = _get_client()
        try:
            result = await client.payments.verify(session_id, reference_number, amount, bank_name=bank)
        except KuSheetError as e:
            console.print(f"[red]Verification failed: {e}[/red]")
            raise SystemExit(1)
        finally:
            await client.close()
        console.print(f"[green]Payment verified.[/green] {result.get('message', '') if isinstance(result, dict) else ''}")

    _run(_verify())
