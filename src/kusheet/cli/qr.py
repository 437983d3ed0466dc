"""CLI: kusheet qr payload|url|png|check"""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from kusheet.errors import PayloadError
from kusheet.promptpay.payload import build_promptpay_payload, debug_promptpay_payload, validate_promptpay_payload
from kusheet.promptpay.qr import get_qr_image_url_from_payload, render_qr_png

console = Console()


def _build(mobile: str, amount: float, merchant: str, city: str) -> str:
    try:
        return build_promptpay_payload(mobile, amount, merchant_name=merchant, city=city)
    except PayloadError as e:
        console.print(f"[red]Cannot generate QR: {e}[/red]")
        raise SystemExit(1)


def _payload_options(fn):
    fn = click.option("--city", default="BANGKOK")(fn)
    fn = click.option("--merchant", default="KU SHEET")(fn)
    fn = click.argument("amount", type=float)(fn)
    fn = click.argument("mobile")(fn)
    return fn


@click.group()
def qr():
    """PromptPay QR codes."""


@qr.command("payload")
@_payload_options
def qr_payload(mobile, amount, merchant, city):
    """Print the EMVCo payload string."""
    click.echo(_build(mobile, amount, merchant, city))


@qr.command("url")
@_payload_options
@click.option("--size", default=300, type=int)
def qr_url(mobile, amount, merchant, city, size):
    """Print a QR image URL."""
    click.echo(get_qr_image_url_from_payload(_build(mobile, amount, merchant, city), size))


@qr.command("png")
@_payload_options
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), required=True)
def qr_png(mobile, amount, merchant, city, output):
    """Render the QR code to a PNG file."""
    output.write_bytes(render_qr_png(_build(mobile, amount, merchant, city)))
    console.print(f"[green]Saved {output}[/green]")


@qr.command("check")
@click.argument("payload")
def qr_check(payload):
    """Validate a payload and show its fields."""
    report = debug_promptpay_payload(payload)
    table = Table(title="PromptPay payload")
    table.add_column("Tag", style="bold")
    table.add_column("Len")
    table.add_column("Value")
    for field in report.fields:
        table.add_row(field.tag, f"{field.length:02d}", field.value)
    console.print(table)
    if validate_promptpay_payload(payload):
        console.print(f"[green]Valid[/green] (CRC {report.actual_crc})")
    else:
        console.print(f"[red]Invalid[/red] (expected CRC {report.expected_crc}, got {report.actual_crc})")
        raise SystemExit(1)
