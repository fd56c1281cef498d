"""Tests for device handles and the device registry."""

import pytest

from groupthink.devices.handle import VirtualGroupDevice
from groupthink.devices.registry import DeviceRegistry
from groupthink.errors import DeviceNotFoundError, GroupthinkError
from groupthink.models.device import Capability, DeviceRegistration


def _make_light(**attributes) -> VirtualGroupDevice:
    return VirtualGroupDevice(
        device_id="grp_living",
        name="Living Room",
        capabilities=(Capability.SWITCH, Capability.SWITCH_LEVEL, Capability.COLOR_MODE),
        attributes=attributes,
    )


class TestVirtualGroupDevice:
    def test_defaults(self):
        device = VirtualGroupDevice("grp_1", "Group 1")
        assert device.current_value("switch") == "off"
        assert device.current_value("groupState") is None
        assert device.capabilities == frozenset({Capability.SWITCH})

    def test_commands_are_logged(self):
        device = _make_light(level=30)
        device.on()
        device.set_level(55)
        device.off()
        assert device.command_log == [("on", ()), ("set_level", (55,)), ("off", ())]
        assert device.current_value("level") == 55
        assert device.current_value("switch") == "off"

    def test_color_commands_track_mode(self):
        device = _make_light()
        device.set_color_temperature(3000, 70)
        assert device.current_value("colorMode") == "CT"
        assert device.current_value("level") == 70

        device.set_color({"hue": 10, "saturation": 20, "level": None})
        assert device.current_value("colorMode") == "RGB"
        assert device.current_value("hue") == 10
        assert device.current_value("level") == 70

    def test_commands_never_touch_group_state(self):
        device = _make_light(groupState="partialOn")
        device.on()
        device.off()
        assert device.current_value("groupState") == "partialOn"

    def test_listener_only_sees_changes(self):
        device = _make_light(switch="on")
        changes = []
        device.bind(lambda d, attribute, value: changes.append((attribute, value)))

        device.on()
        device.update(switch="on", level=10)
        device.off()
        assert changes == [("level", 10), ("switch", "off")]

    def test_from_registration(self):
        req = DeviceRegistration(
            device_id="grp_2",
            name="Bedroom",
            capabilities=["Switch", "ColorTemperature"],
            switch="on",
            group_state="allOn",
            color_temperature=2200,
            level=15,
        )
        device = VirtualGroupDevice.from_registration(req)
        assert device.has_capability(Capability.COLOR_TEMPERATURE)
        assert device.current_value("groupState") == "allOn"
        assert device.current_value("colorTemperature") == 2200

        snapshot = device.snapshot(monitored=True)
        assert snapshot.monitored is True
        assert snapshot.attributes["level"] == 15


class TestDeviceRegistry:
    def setup_method(self):
        self.registry = DeviceRegistry(clock=lambda: 42)
        self.device = self.registry.add(_make_light(switch="off"))
        self.events = []

    def _handler(self, device, value, timestamp):
        self.events.append((device.device_id, value, timestamp))

    def test_require_unknown(self):
        with pytest.raises(DeviceNotFoundError):
            self.registry.require("missing")
        assert issubclass(DeviceNotFoundError, GroupthinkError)

    def test_publish_to_subscribers(self):
        self.registry.subscribe("test", ["grp_living"], "switch", self._handler)
        assert self.registry.publish("grp_living", "switch", "on", timestamp=7) == 1
        assert self.registry.publish("grp_living", "level", 10) == 0
        assert self.events == [("grp_living", "on", 7)]

    def test_publish_uses_clock(self):
        self.registry.subscribe("test", ["grp_living"], "switch", self._handler)
        self.registry.publish("grp_living", "switch", "on")
        assert self.events == [("grp_living", "on", 42)]

    def test_value_filter(self):
        self.registry.subscribe("test", ["grp_living"], "switch", self._handler, values=["off"])
        self.registry.publish("grp_living", "switch", "on")
        self.registry.publish("grp_living", "switch", "off")
        assert [e[1] for e in self.events] == ["off"]

    def test_device_changes_are_published(self):
        self.registry.subscribe("test", ["grp_living"], "switch", self._handler)
        self.device.update(switch="on")
        self.device.off()
        assert [e[1] for e in self.events] == ["on", "off"]

    def test_removed_device_stops_publishing(self):
        self.registry.subscribe("test", ["grp_living"], "switch", self._handler)
        assert self.registry.remove("grp_living") is True
        self.device.update(switch="on")
        assert self.events == []
        assert self.registry.remove("grp_living") is False

    def test_unsubscribe(self):
        sub = self.registry.subscribe("a", ["grp_living"], "switch", self._handler)
        self.registry.subscribe("b", ["grp_living"], "switch", self._handler)
        self.registry.subscribe("b", ["grp_living"], "level", self._handler)

        self.registry.unsubscribe(sub)
        assert len(self.registry.subscriptions()) == 2
        assert self.registry.unsubscribe_all("b") == 2
        assert self.registry.subscriptions() == []
