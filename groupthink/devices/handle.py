"""
Device handles — the hub-side surface Groupthink reads and commands.

A group activator is a virtual switch fronting many physical lights. Besides
its own ``switch`` attribute it reports ``groupState``, the aggregate of what
its members currently report ("allOn", "allOff", "partialOn"). Commands sent
to the activator are fanned out to the members by the hub, which is lossy;
``groupState`` is how we find out whether every member actually followed.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Protocol, Tuple

from groupthink.models.device import Capability, DeviceRegistration, DeviceSnapshot

ATTRIBUTES = (
    "switch",
    "groupState",
    "colorMode",
    "colorTemperature",
    "level",
    "hue",
    "saturation",
)


class GroupDevice(Protocol):
    """Protocol for a monitored device handle — supplied by the host."""

    device_id: str
    name: str
    capabilities: FrozenSet[Capability]

    def current_value(self, attribute: str) -> Any: ...

    def on(self) -> None: ...

    def off(self) -> None: ...

    def set_level(self, level: Any) -> None: ...

    def set_color_temperature(self, temperature: Any, level: Any = None) -> None: ...

    def set_color(self, color: Dict[str, Any]) -> None: ...


AttributeListener = Callable[["VirtualGroupDevice", str, Any], None]


class VirtualGroupDevice:
    """
    In-memory group activator.

    Commands update the activator's own attributes and are appended to
    ``command_log``. ``groupState`` is never touched by commands: only the
    member lights know whether they followed, so the host sets it.
    """

    def __init__(
        self,
        device_id: str,
        name: str,
        capabilities: Iterable[Capability] = (Capability.SWITCH,),
        attributes: Optional[Dict[str, Any]] = None,
    ):
        self.device_id = device_id
        self.name = name
        self.capabilities = frozenset(Capability(c) for c in capabilities)
        self._attributes: Dict[str, Any] = {attr: None for attr in ATTRIBUTES}
        self._attributes["switch"] = "off"
        self._attributes.update(attributes or {})
        self.command_log: List[Tuple[str, tuple]] = []
        self._listener: Optional[AttributeListener] = None

    @classmethod
    def from_registration(cls, req: DeviceRegistration) -> "VirtualGroupDevice":
        return cls(
            device_id=req.device_id,
            name=req.name,
            capabilities=req.capabilities,
            attributes={
                "switch": req.switch.value,
                "groupState": req.group_state,
                "colorMode": req.color_mode,
                "colorTemperature": req.color_temperature,
                "level": req.level,
                "hue": req.hue,
                "saturation": req.saturation,
            },
        )

    def bind(self, listener: Optional[AttributeListener]) -> None:
        """Attach the callback notified when an attribute value changes."""
        self._listener = listener

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def current_value(self, attribute: str) -> Any:
        return self._attributes.get(attribute)

    def update(self, **attributes: Any) -> None:
        """Set attribute values, notifying the listener for each one that changed."""
        for attribute, value in attributes.items():
            self._set(attribute, value)

    def snapshot(self, monitored: bool = False) -> DeviceSnapshot:
        return DeviceSnapshot(
            device_id=self.device_id,
            name=self.name,
            capabilities=sorted(self.capabilities, key=lambda c: c.value),
            attributes=dict(self._attributes),
            monitored=monitored,
        )

    # --- Commands ---

    def on(self) -> None:
        self.command_log.append(("on", ()))
        self._set("switch", "on")

    def off(self) -> None:
        self.command_log.append(("off", ()))
        self._set("switch", "off")

    def set_level(self, level: Any) -> None:
        self.command_log.append(("set_level", (level,)))
        self._set("level", level)
        self._set("switch", "on")

    def set_color_temperature(self, temperature: Any, level: Any = None) -> None:
        self.command_log.append(("set_color_temperature", (temperature, level)))
        self._set("colorTemperature", temperature)
        if level is not None:
            self._set("level", level)
        if Capability.COLOR_MODE in self.capabilities:
            self._set("colorMode", "CT")
        self._set("switch", "on")

    def set_color(self, color: Dict[str, Any]) -> None:
        self.command_log.append(("set_color", (dict(color),)))
        for key in ("hue", "saturation", "level"):
            if color.get(key) is not None:
                self._set(key, color[key])
        if Capability.COLOR_MODE in self.capabilities:
            self._set("colorMode", "RGB")
        self._set("switch", "on")

    def _set(self, attribute: str, value: Any) -> None:
        if self._attributes.get(attribute) == value:
            return
        self._attributes[attribute] = value
        if self._listener is not None:
            self._listener(self, attribute, value)
