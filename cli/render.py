from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_device(payload: Dict[str, Any]) -> None:
    echo_heading(f"Device {payload.get('id')}")
    echo_key_values(
        [
            ("power", "on" if payload.get("isOn") else "off"),
            ("energy", payload.get("energy")),
            ("consumption_rate", payload.get("consumptionRate")),
            ("online", payload.get("online")),
            ("connected", payload.get("connected")),
            ("last_seen", payload.get("lastSeen") or "never"),
        ]
    )


def render_devices(payload: Iterable[Dict[str, Any]]) -> None:
    devices = list(payload)
    echo_heading("Devices")
    if not devices:
        typer.echo("No devices provisioned.")
        return
    for device in devices:
        power = "on" if device.get("isOn") else "off"
        presence = "online" if device.get("online") else "offline"
        typer.echo(f"  - {device.get('id')}: {power}, energy={device.get('energy')}, {presence}")


def render_power(payload: Dict[str, Any]) -> None:
    if payload.get("ok"):
        state = "on" if payload.get("isOn") else "off"
        typer.secho(f"{payload.get('deviceId')} is now {state}.", fg=typer.colors.GREEN)
    else:
        typer.secho(
            f"{payload.get('deviceId')} unchanged: {payload.get('message') or 'request refused'}",
            fg=typer.colors.YELLOW,
        )


def render_transfer(payload: Dict[str, Any]) -> None:
    echo_heading("Transfer complete")
    echo_key_values(
        [
            ("from", payload.get("from")),
            ("to", payload.get("to")),
            ("energy_remaining", payload.get("energyRemaining")),
            ("energy_received", payload.get("energyReceived")),
        ]
    )
