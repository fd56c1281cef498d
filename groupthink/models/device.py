"""Device capability and registration models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Capability(str, Enum):
    """Static capabilities attached to a device handle when it is registered."""
    SWITCH = "Switch"
    SWITCH_LEVEL = "SwitchLevel"
    COLOR_CONTROL = "ColorControl"
    COLOR_TEMPERATURE = "ColorTemperature"
    COLOR_MODE = "ColorMode"


class SwitchValue(str, Enum):
    ON = "on"
    OFF = "off"


class GroupState(str, Enum):
    """Aggregate state reported by a group activator for its members."""
    ALL_ON = "allOn"
    ALL_OFF = "allOff"
    PARTIAL_ON = "partialOn"


class DeviceRegistration(BaseModel):
    """Request to register an in-memory group device."""

    device_id: str
    name: str
    capabilities: List[Capability] = [Capability.SWITCH]
    switch: SwitchValue = SwitchValue.OFF
    group_state: Optional[str] = None       # None: device does not expose groupState
    level: Optional[int] = Field(ge=0, le=100, default=None)
    color_temperature: Optional[int] = None
    color_mode: Optional[str] = None        # "CT" | "RGB" | ...
    hue: Optional[int] = Field(ge=0, le=100, default=None)
    saturation: Optional[int] = Field(ge=0, le=100, default=None)


class DeviceSnapshot(BaseModel):
    """Read-only view of a device handle."""

    device_id: str
    name: str
    capabilities: List[Capability]
    attributes: dict
    monitored: bool = False


class AttributeUpdate(BaseModel):
    """Attribute values reported for a device. Unknown attributes are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    switch: Optional[SwitchValue] = None
    group_state: Optional[str] = Field(default=None, alias="groupState")
    color_mode: Optional[str] = Field(default=None, alias="colorMode")
    color_temperature: Optional[int] = Field(ge=0, default=None, alias="colorTemperature")
    level: Optional[int] = Field(ge=0, le=100, default=None)
    hue: Optional[int] = Field(ge=0, le=100, default=None)
    saturation: Optional[int] = Field(ge=0, le=100, default=None)

    @field_validator("switch")
    @classmethod
    def _switch_not_null(cls, value: Optional[SwitchValue]) -> SwitchValue:
        if value is None:
            raise ValueError("switch must be \"on\" or \"off\"")
        return value

    def attributes(self) -> dict:
        """Only the attributes present in the request, keyed by hub attribute name."""
        return self.model_dump(mode="json", exclude_unset=True, by_alias=True)
