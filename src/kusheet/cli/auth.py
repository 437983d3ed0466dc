"""CLI: kusheet auth set-token|status|logout"""

from typing import Optional

import click
from rich.console import Console

console = Console()


def _load_config() -> dict:
    from kusheet.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from kusheet.cli.main import _save_config
    _save_config(cfg)


@click.group()
def auth():
    """API token commands."""


@auth.command("set-token")
@click.option("--base-url", default=None, help="KU SHEET API base URL")
def auth_set_token(base_url: Optional[str]):
    """Store the bearer token issued at web login."""
    cfg = _load_config()
    token = click.prompt("Token", hide_input=True)
    if base_url:
        cfg["base_url"] = base_url
    _save_config({**cfg, "token": token.strip()})
    console.print("[dim]Token saved to ~/.kusheet/config.json[/dim]")


@auth.command("status")
def auth_status():
    """Show the configured token and API URL."""
    cfg = _load_config()
    if cfg.get("token"):
        console.print(f"[green]Token set[/green] (…{cfg['token'][-6:]}) for {cfg.get('base_url', 'default API')}")
    else:
        console.print("[yellow]No token. Run `kusheet auth set-token`.[/yellow]")


@auth.command("logout")
def auth_logout():
    """Clear saved credentials."""
    _save_config({})
    console.print("[green]Logged out.[/green]")
