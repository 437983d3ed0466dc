"""
KU SHEET CLI — `kusheet` command.

Commands:
  kusheet auth set-token        Store an API token
  kusheet qr payload|url|png    Build PromptPay QR codes
  kusheet qr check <payload>    Validate and decode a payload
  kusheet chat <group-id>       Interactive group chat
  kusheet send <group-id> <msg> One-shot message
  kusheet notifications <cmd>   Notification feed
  kusheet pay <cmd>             PromptPay session status/verify
"""

import asyncio
import json
import logging
import os
from pathlib import Path

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install kusheet[cli]")

from kusheet.client import AsyncKuSheet
from kusheet.transport.http import DEFAULT_BASE_URL

console = Console()
CONFIG_FILE = Path.home() / ".kusheet" / "config.json"


def _load_config() -> dict:
    try:
        cfg = json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        cfg = {}
    if os.environ.get("KUSHEET_TOKEN"):
        cfg["token"] = os.environ["KUSHEET_TOKEN"]
    if os.environ.get("KUSHEET_BASE_URL"):
        cfg["base_url"] = os.environ["KUSHEET_BASE_URL"]
    return cfg


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _get_client() -> AsyncKuSheet:
    cfg = _load_config()
    if not cfg.get("token"):
        console.print("[red]No API token. Run `kusheet auth set-token` first.[/red]")
        raise SystemExit(1)
    return AsyncKuSheet(token=cfg["token"], base_url=cfg.get("base_url", DEFAULT_BASE_URL))


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """KU SHEET CLI — PromptPay QR codes and study group chat."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands from separate modules
from kusheet.cli.auth import auth
from kusheet.cli.chat import chat_cmd, send_cmd
from kusheet.cli.notifications import notifications
from kusheet.cli.pay import pay
from kusheet.cli.qr import qr

main.add_command(auth)
main.add_command(chat_cmd)
main.add_command(send_cmd)
main.add_command(notifications)
main.add_command(pay)
main.add_command(qr)


if __name__ == "__main__":
    main()
