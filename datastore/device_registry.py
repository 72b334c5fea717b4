from __future__ import annotations

import hmac
from contextlib import ExitStack, contextmanager
from threading import Lock
from typing import Callable, Dict, Iterable, Iterator, Optional, TypeVar

from models.devices import Device, DeviceSnapshot
from services.errors import DeviceNotFoundError
from settings import DeviceProvision

T = TypeVar("T")


class DeviceRegistry:
    """In-memory store of every known device, with one lock per device.

    Records are only reachable through ``mutate`` and ``locked``; readers get
    ``DeviceSnapshot`` copies.
    """

    def __init__(self, devices: Iterable[Device]) -> None:
        self._devices: Dict[str, Device] = {}
        self._locks: Dict[str, Lock] = {}
        for device in devices:
            if device.device_id in self._devices:
                raise ValueError(f"Duplicate device id {device.device_id!r}.")
            self._devices[device.device_id] = device
            self._locks[device.device_id] = Lock()

    @classmethod
    def from_provisioning(cls, provisions: Iterable[DeviceProvision]) -> "DeviceRegistry":
        return cls(
            Device(
                device_id=item.device_id,
                shared_secret=item.shared_secret,
                is_on=item.is_on,
                energy_balance=item.energy_balance,
                consumption_rate=item.consumption_rate,
            )
            for item in provisions
        )

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def ids(self) -> list[str]:
        return sorted(self._devices)

    def get(self, device_id: str) -> Optional[DeviceSnapshot]:
        lock = self._locks.get(device_id)
        if lock is None:
            return None
        with lock:
            return self._devices[device_id].snapshot()

    def scan(self) -> list[DeviceSnapshot]:
        """Return snapshots of all devices, ordered by id."""

        snapshots = []
        for device_id in self.ids():
            snapshot = self.get(device_id)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    def mutate(self, device_id: str, fn: Callable[[Device], T]) -> T:
        """Run ``fn`` on the live record while holding that device's lock."""

        lock = self._locks.get(device_id)
        if lock is None:
            raise DeviceNotFoundError(f"Bulb {device_id!r} not found")
        with lock:
            return fn(self._devices[device_id])

    @contextmanager
    def locked(self, *device_ids: str) -> Iterator[Dict[str, Device]]:
        """Hold the locks of several devices at once.

        Locks are taken in sorted id order regardless of argument order.
        """

        ordered = sorted(set(device_ids))
        missing = [device_id for device_id in ordered if device_id not in self._locks]
        if missing:
            raise DeviceNotFoundError(f"Bulb {missing[0]!r} not found")

        with ExitStack() as stack:
            for device_id in ordered:
                stack.enter_context(self._locks[device_id])
            yield {device_id: self._devices[device_id] for device_id in ordered}

    def check_secret(self, device_id: str, key: str) -> bool:
        device = self._devices.get(device_id)
        if device is None or not isinstance(key, str):
            return False
        return hmac.compare_digest(device.shared_secret.encode(), key.encode())

