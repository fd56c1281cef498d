"""Groupthink configuration."""

from typing import List

from pydantic import BaseModel, Field


class GroupthinkConfig(BaseModel):
    """Preferences for the group reconciler. Replaced wholesale, never mutated mid-run."""

    monitored: List[str] = []               # Group activator device IDs
    monitor_on: bool = True                 # React to "on" transitions
    monitor_off: bool = True                # React to "off" transitions
    delay_seconds: int = Field(ge=0, default=5)
    max_retries: int = Field(ge=0, default=20)
    debug_logging: bool = False
