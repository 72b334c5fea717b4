from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_device, render_devices, render_power, render_transfer


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the bulb energy coordinator.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        help="Owner token for transfers (defaults to BULB_TOKEN env).",
    ),
    device_id: Optional[str] = typer.Option(
        None,
        "--device-id",
        help="Device id for power commands (defaults to BULB_DEVICE_ID env).",
    ),
    device_key: Optional[str] = typer.Option(
        None,
        "--device-key",
        help="Device key for power commands (defaults to BULB_DEVICE_KEY env).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        timeout=timeout,
        token=token,
        device_id=device_id,
        device_key=device_key,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("devices")
def devices_command(ctx: typer.Context) -> None:
    """List all devices with power, energy and presence."""
    state = _get_state(ctx)
    render_devices(state.client.list_devices())


@app.command("show")
def show_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device identifier."),
) -> None:
    """Show one device."""
    state = _get_state(ctx)
    render_device(state.client.get_device(device_id))


@app.command("on")
def on_command(ctx: typer.Context) -> None:
    """Switch the credentialed device on."""
    state = _get_state(ctx)
    render_power(state.client.set_power(True))


@app.command("off")
def off_command(ctx: typer.Context) -> None:
    """Switch the credentialed device off."""
    state = _get_state(ctx)
    render_power(state.client.set_power(False))


@app.command("share")
def share_command(
    ctx: typer.Context,
    from_id: str = typer.Argument(..., help="Source device (must be the token owner's bulb)."),
    to_id: str = typer.Argument(..., help="Receiving device."),
    amount: float = typer.Argument(..., help="Energy to transfer."),
) -> None:
    """Transfer energy from your bulb to another bulb."""
    state = _get_state(ctx)
    typer.echo(f"Sending {amount} energy from {from_id} to {to_id} ...")
    render_transfer(state.client.share(from_id, to_id, amount))
