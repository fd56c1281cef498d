"""Groupthink data models."""

from groupthink.models.config import GroupthinkConfig
from groupthink.models.device import (
    AttributeUpdate,
    Capability,
    DeviceRegistration,
    DeviceSnapshot,
    GroupState,
    SwitchValue,
)
from groupthink.models.retry import (
    ChainRecord,
    CheckOutcome,
    RepeatCommand,
    RetryEntry,
)

__all__ = [
    "AttributeUpdate",
    "Capability",
    "ChainRecord",
    "CheckOutcome",
    "DeviceRegistration",
    "DeviceSnapshot",
    "GroupState",
    "GroupthinkConfig",
    "RepeatCommand",
    "RetryEntry",
    "SwitchValue",
]
