"""Retry chain state and outcomes."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class RetryEntry(BaseModel):
    """Active retry chain for one device. At most one per device ID."""

    device_id: str
    attempt_count: int = Field(ge=0, default=0)
    last_trigger: int                       # Epoch ms of the event that started the chain
    generation: int                         # Chain token; a new trigger always allocates a new one


class RepeatCommand(str, Enum):
    """Command re-issued to a group that has not converged."""
    COLOR_TEMPERATURE = "set_color_temperature"
    COLOR = "set_color"
    LEVEL = "set_level"
    ON = "on"
    OFF = "off"
    UNSUPPORTED = "unsupported"


class CheckOutcome(str, Enum):
    STALE = "stale"
    MAX_RETRIES = "max_retries"
    NOT_SELECTED = "not_selected"
    NO_GROUP_STATE = "no_group_state"
    UNSUPPORTED_COLOR_MODE = "unsupported_color_mode"
    CONVERGED = "converged"
    RETRIED = "retried"


class ChainRecord(BaseModel):
    """How a retry chain ended."""

    device_id: str
    outcome: CheckOutcome
    attempts: int
    generation: int
    reason: str
    finished_at: datetime
