"""
Device Registry — the host's device table and attribute event bus.

Owns device handles by ID and delivers attribute change events to
subscribers as (device, value, timestamp). Subscriptions can filter on the
new value, which is how the reconciler honours its monitor-on/off settings.
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import uuid4

from groupthink.devices.handle import GroupDevice, VirtualGroupDevice
from groupthink.errors import DeviceNotFoundError

logger = logging.getLogger(__name__)

EventHandler = Callable[[GroupDevice, Any, int], None]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Subscription:
    """A handler listening to one attribute on a set of devices."""

    def __init__(
        self,
        owner: str,
        device_ids: Iterable[str],
        attribute: str,
        handler: EventHandler,
        values: Optional[Iterable[Any]] = None,
    ):
        self.id = f"sub_{uuid4().hex[:12]}"
        self.owner = owner
        self.device_ids = frozenset(device_ids)
        self.attribute = attribute
        self.handler = handler
        self.values = frozenset(values) if values is not None else None

    def matches(self, device_id: str, attribute: str, value: Any) -> bool:
        if device_id not in self.device_ids or attribute != self.attribute:
            return False
        return self.values is None or value in self.values


class DeviceRegistry:
    """In-memory device table with attribute subscriptions."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._devices: Dict[str, GroupDevice] = {}
        self._subscriptions: List[Subscription] = []
        self._clock = clock

    def add(self, device: GroupDevice) -> GroupDevice:
        """Register a device. In-memory devices publish their own changes."""
        self._devices[device.device_id] = device
        if isinstance(device, VirtualGroupDevice):
            device.bind(self._on_attribute_change)
        return device

    def get(self, device_id: str) -> Optional[GroupDevice]:
        return self._devices.get(device_id)

    def require(self, device_id: str) -> GroupDevice:
        """Get a device or raise DeviceNotFoundError."""
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(f"Unknown device: {device_id}")
        return device

    def remove(self, device_id: str) -> bool:
        device = self._devices.pop(device_id, None)
        if device is None:
            return False
        if isinstance(device, VirtualGroupDevice):
            device.bind(None)
        return True

    def all(self) -> List[GroupDevice]:
        return list(self._devices.values())

    # --- Events ---

    def subscribe(
        self,
        owner: str,
        device_ids: Iterable[str],
        attribute: str,
        handler: EventHandler,
        values: Optional[Iterable[Any]] = None,
    ) -> Subscription:
        """Deliver changes of ``attribute`` on ``device_ids`` to ``handler``."""
        subscription = Subscription(owner, device_ids, attribute, handler, values)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions = [s for s in self._subscriptions if s.id != subscription.id]

    def unsubscribe_all(self, owner: str) -> int:
        """Remove every subscription held by ``owner``. Returns how many were removed."""
        before = len(self._subscriptions)
        self._subscriptions = [s for s in self._subscriptions if s.owner != owner]
        return before - len(self._subscriptions)

    def subscriptions(self, owner: Optional[str] = None) -> List[Subscription]:
        return [s for s in self._subscriptions if owner is None or s.owner == owner]

    def publish(
        self,
        device_id: str,
        attribute: str,
        value: Any,
        timestamp: Optional[int] = None,
    ) -> int:
        """
        Deliver an attribute event to matching subscribers.
        Returns the number of handlers invoked.
        """
        device = self.require(device_id)
        if timestamp is None:
            timestamp = self._clock()

        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(device_id, attribute, value):
                subscription.handler(device, value, timestamp)
                delivered += 1
        logger.debug(
            "event %s.%s=%s delivered to %d handler(s)",
            device_id, attribute, value, delivered,
        )
        return delivered

    def _on_attribute_change(self, device: VirtualGroupDevice, attribute: str, value: Any) -> None:
        self.publish(device.device_id, attribute, value)
