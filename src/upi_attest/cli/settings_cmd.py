"""CLI commands for inspecting and validating upi-attest settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate upi-attest configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (mnemonic redacted)."""
    from upi_attest.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from upi_attest.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Portal: {settings.portal.history_url}")
    console.print(f"  Signing domain: {settings.signer.domain_name} v{settings.signer.domain_version} on chain {settings.signer.chain_id}")
    if not settings.signer.mnemonic.get_secret_value():
        console.print("[yellow]![/yellow] No mnemonic configured; the service will refuse to start.")
        raise typer.Exit(code=1)
