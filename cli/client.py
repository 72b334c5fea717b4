from __future__ import annotations

from typing import Any, Dict, List, NoReturn

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the bulb control surface."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def list_devices(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/devices")

    def get_device(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/devices/{device_id}")

    def set_power(self, on: bool) -> Dict[str, Any]:
        if not self._config.device_id or not self._config.device_key:
            raise typer.BadParameter(
                "Device credentials are required (--device-id/--device-key or BULB_DEVICE_ID/BULB_DEVICE_KEY)."
            )
        headers = {
            "x-device-id": self._config.device_id,
            "x-device-key": self._config.device_key,
        }
        path = "/api/device/on" if on else "/api/device/off"
        return self._request("POST", path, headers=headers)

    def share(self, from_id: str, to_id: str, amount: float) -> Dict[str, Any]:
        if not self._config.token:
            raise typer.BadParameter("An owner token is required (--token or BULB_TOKEN).")
        return self._request(
            "POST",
            "/api/share",
            json={"from": from_id, "to": to_id, "amount": amount},
            headers={"Authorization": f"Bearer {self._config.token}"},
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("message") or data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
