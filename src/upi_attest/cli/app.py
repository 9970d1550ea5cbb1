"""Unified CLI entry point for upi-attest.

Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (UPI_ATTEST_* with __) -> CLI flags.
"""

from __future__ import annotations

from typing import Optional

import typer

from upi_attest import __version__
from upi_attest.cli.settings_cmd import settings_app

APP_HELP = (
    "upi-attest — signed UPI payment attestations for escrow claims. "
    "Config precedence: settings.default.toml -> settings.<env>.toml -> settings.local.toml -> env vars (UPI_ATTEST_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context, version: bool = typer.Option(False, "--version", help="Show version and exit.")) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"upi-attest {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: api.host)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default: api.port)."),
) -> None:
    """Run the HTTP service."""
    import uvicorn

    from upi_attest.api.app import create_app
    from upi_attest.logging_setup import configure_logging
    from upi_attest.settings import get_settings

    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        create_app(settings),
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )


@app.command("address")
def address() -> None:
    """Print the signer address derived from the configured mnemonic."""
    from upi_attest.exceptions import SigningError
    from upi_attest.settings import get_settings
    from upi_attest.signer.eip712 import AttestationSigner

    try:
        signer = AttestationSigner.from_settings(get_settings().signer)
    except SigningError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(signer.address)


if __name__ == "__main__":
    app()
