"""
Group Reconciler — repeats group commands until every member responds.

A group activator fans a command out to its member lights, and some members
routinely miss it. The reconciler watches the activator's ``switch``
attribute; on each change it starts a retry chain that periodically compares
the desired state with the activator's ``groupState`` and re-sends the
command until they agree or the retry ceiling is reached.

Chain lifecycle, one tick per ``delay_seconds``:
  TRIGGERED → CHECK → (CONVERGED | RETRIED → CHECK | GIVE_UP)

A new trigger for the same device always starts a new chain. Scheduled
callbacks cannot be cancelled, so each chain carries a generation token and
any tick whose token no longer matches the stored entry ends silently.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, FrozenSet, List, Optional

from groupthink.devices.handle import GroupDevice
from groupthink.devices.registry import DeviceRegistry
from groupthink.models.config import GroupthinkConfig
from groupthink.models.device import Capability, GroupState, SwitchValue
from groupthink.models.retry import ChainRecord, CheckOutcome, RepeatCommand, RetryEntry
from groupthink.scheduling.scheduler import Scheduler
from groupthink.state.store import RetryStateStore

logger = logging.getLogger(__name__)

CHECK_GROUP = "checkGroup"
SUBSCRIBER = "groupthink"


def select_repeat_command(
    capabilities: FrozenSet[Capability],
    desired_state: Any,
    color_mode: Any = None,
) -> RepeatCommand:
    """
    Pick the command that re-asserts the desired state. First match wins:
    ColorMode (by current mode) → ColorTemperature → ColorControl →
    SwitchLevel → plain on. Anything but "on" is repeated as plain off.
    """
    if desired_state != SwitchValue.ON.value:
        return RepeatCommand.OFF

    if Capability.COLOR_MODE in capabilities:
        if color_mode == "CT":
            return RepeatCommand.COLOR_TEMPERATURE
        if color_mode == "RGB":
            return RepeatCommand.COLOR
        return RepeatCommand.UNSUPPORTED
    if Capability.COLOR_TEMPERATURE in capabilities:
        return RepeatCommand.COLOR_TEMPERATURE
    if Capability.COLOR_CONTROL in capabilities:
        return RepeatCommand.COLOR
    if Capability.SWITCH_LEVEL in capabilities:
        return RepeatCommand.LEVEL
    return RepeatCommand.ON


def is_converged(desired_state: Any, group_state: Any) -> bool:
    """True when the member aggregate matches the activator's switch."""
    return (
        (desired_state == SwitchValue.ON.value and group_state == GroupState.ALL_ON.value)
        or (desired_state == SwitchValue.OFF.value and group_state == GroupState.ALL_OFF.value)
    )


class GroupReconciler:
    """Per-device retry chains driven by switch events and scheduled checks."""

    def __init__(
        self,
        registry: DeviceRegistry,
        store: RetryStateStore,
        scheduler: Scheduler,
        config: Optional[GroupthinkConfig] = None,
        history_limit: int = 200,
    ):
        self.registry = registry
        self.store = store
        self.scheduler = scheduler
        self.config = config or GroupthinkConfig()
        self._history: Deque[ChainRecord] = deque(maxlen=history_limit)
        self._scheduled: Dict[str, int] = {}    # Generation this process last scheduled, per device
        self.scheduler.register(CHECK_GROUP, self._on_scheduled_check)

    # --- Lifecycle ---

    def initialize(self) -> None:
        """(Re)subscribe to switch events and resume chains left in the store."""
        self.registry.unsubscribe_all(SUBSCRIBER)

        values = []
        if self.config.monitor_on:
            values.append(SwitchValue.ON.value)
        if self.config.monitor_off:
            values.append(SwitchValue.OFF.value)
        if values:
            self.registry.subscribe(
                SUBSCRIBER,
                self.config.monitored,
                "switch",
                self.on_device_switch_changed,
                values=values,
            )

        non_group = self.non_group_devices()
        if non_group:
            logger.warning(
                "These devices do not expose groupState and will be ignored: %s",
                ", ".join(d.name for d in non_group),
            )

        self._resume_orphaned_chains()

    def _resume_orphaned_chains(self) -> None:
        """Schedule stored chains that no callback in this process will tick."""
        for entry in self.store.all():
            if self._scheduled.get(entry.device_id) == entry.generation:
                continue
            self._debug(
                "resuming retry chain for %s at attempt %d",
                entry.device_id, entry.attempt_count,
            )
            self._schedule(entry)

    def update_config(self, config: GroupthinkConfig) -> None:
        """Replace the configuration and re-subscribe."""
        self.config = config
        self.initialize()

    def is_monitored(self, device_id: str) -> bool:
        return device_id in self.config.monitored

    def monitored_devices(self) -> List[GroupDevice]:
        """Monitored devices currently known to the registry."""
        devices = [self.registry.get(device_id) for device_id in self.config.monitored]
        return [d for d in devices if d is not None]

    def non_group_devices(self) -> List[GroupDevice]:
        """Monitored devices that do not report groupState."""
        return [
            d for d in self.monitored_devices()
            if d.current_value("groupState") is None
        ]

    @property
    def history(self) -> List[ChainRecord]:
        """Recently finished chains, oldest first."""
        return list(self._history)

    def active_retries(self) -> List[RetryEntry]:
        return self.store.all()

    # --- Event intake ---

    def on_device_switch_changed(self, device: GroupDevice, value: Any, timestamp: int) -> RetryEntry:
        """Device just changed; start a fresh chain, superseding any in flight."""
        self._debug("deviceChanged: %s %s", device.name, value)
        entry = self.store.start_chain(device.device_id, timestamp)
        self._schedule(entry)
        return entry

    def _schedule(self, entry: RetryEntry) -> None:
        self._scheduled[entry.device_id] = entry.generation
        self.scheduler.run_in(
            self.config.delay_seconds,
            CHECK_GROUP,
            {"device": entry.device_id, "trigger": entry.generation},
        )

    def _on_scheduled_check(self, payload: dict) -> CheckOutcome:
        return self.check_group(payload["device"], payload["trigger"])

    # --- Reconciliation ---

    def check_group(self, device_id: str, trigger: int) -> CheckOutcome:
        """Run one reconciliation tick for a device's chain."""
        entry = self.store.get(device_id)
        if entry is None or entry.generation != trigger:
            # Superseded or finished chain
            return CheckOutcome.STALE

        device = self.registry.get(device_id)
        name = device.name if device is not None else device_id

        if entry.attempt_count > self.config.max_retries:
            return self._finish(
                entry, CheckOutcome.MAX_RETRIES,
                f"{name} reached max retries; giving up", warn=True,
            )

        if device is None or not self.is_monitored(device_id):
            return self._finish(
                entry, CheckOutcome.NOT_SELECTED,
                f"{name} not selected; giving up",
            )

        group_state = device.current_value("groupState")
        if group_state is None:
            return self._finish(
                entry, CheckOutcome.NO_GROUP_STATE,
                f"{name} does not expose groupState; giving up",
            )

        desired_state = device.current_value("switch")
        if is_converged(desired_state, group_state):
            return self._finish(
                entry, CheckOutcome.CONVERGED,
                f"{name} reached desired state; done",
            )

        # Not there yet; try again
        command = self._repeat(device, desired_state)
        if command is RepeatCommand.UNSUPPORTED:
            return self._finish(
                entry, CheckOutcome.UNSUPPORTED_COLOR_MODE,
                f"{name} has unsupported color mode "
                f"{device.current_value('colorMode')}; giving up",
                warn=True,
            )

        self.store.increment(device_id)
        self._schedule(entry)
        return CheckOutcome.RETRIED

    def _repeat(self, device: GroupDevice, desired_state: Any) -> RepeatCommand:
        """Re-send the command for ``desired_state`` using the device's current settings."""
        command = select_repeat_command(
            device.capabilities, desired_state, device.current_value("colorMode")
        )
        level = device.current_value("level")

        if command is RepeatCommand.COLOR_TEMPERATURE:
            ct = device.current_value("colorTemperature")
            self._debug("repeatCT: %s %s %s", device.name, ct, level)
            device.set_color_temperature(ct, level)
        elif command is RepeatCommand.COLOR:
            hue = device.current_value("hue")
            saturation = device.current_value("saturation")
            self._debug("repeatColor: %s %s %s %s", device.name, hue, saturation, level)
            device.set_color({"hue": hue, "saturation": saturation, "level": level})
        elif command is RepeatCommand.LEVEL:
            self._debug("repeatLevel: %s %s", device.name, level)
            device.set_level(level)
        elif command is RepeatCommand.ON:
            self._debug("repeatOn: %s", device.name)
            device.on()
        elif command is RepeatCommand.OFF:
            self._debug("repeatOff: %s", device.name)
            device.off()
        return command

    def _finish(
        self,
        entry: RetryEntry,
        outcome: CheckOutcome,
        reason: str,
        warn: bool = False,
    ) -> CheckOutcome:
        """End a chain: log, delete the entry, remember the outcome."""
        message = f"checkGroup: {reason}"
        if warn:
            logger.warning(message)
        else:
            self._debug(message)

        self.store.clear(entry.device_id)
        self._history.append(ChainRecord(
            device_id=entry.device_id,
            outcome=outcome,
            attempts=entry.attempt_count,
            generation=entry.generation,
            reason=reason,
            finished_at=datetime.utcnow(),
        ))
        return outcome

    def _debug(self, msg: str, *args: Any) -> None:
        if self.config.debug_logging:
            logger.debug(msg, *args)
