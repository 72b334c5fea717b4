"""Online/offline derivation from heartbeat recency."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from datastore.device_registry import DeviceRegistry

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PresenceOracle:
    """A device is online while its last inbound message is younger than the threshold."""

    def __init__(
        self,
        registry: DeviceRegistry,
        threshold: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self.registry = registry
        self.threshold = threshold
        self._clock = clock

    def is_online(self, device_id: str) -> bool:
        age = self.last_seen_age(device_id)
        return age is not None and age < self.threshold

    def last_seen_age(self, device_id: str) -> Optional[timedelta]:
        snapshot = self.registry.get(device_id)
        if snapshot is None or snapshot.last_seen is None:
            return None
        return self._clock() - snapshot.last_seen

    def online_ids(self) -> list[str]:
        return [device_id for device_id in self.registry.ids() if self.is_online(device_id)]
