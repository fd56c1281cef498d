"""
Groupthink API — FastAPI endpoints.

Exposes the reconciler's host surface via a REST API for:
- Configuration
- Device registration and attribute updates
- Active retry chains and finished-chain history
"""

from typing import Any, Optional

from fastapi import FastAPI, HTTPException

from groupthink.devices.handle import VirtualGroupDevice
from groupthink.devices.registry import DeviceRegistry
from groupthink.errors import DeviceNotFoundError
from groupthink.log import get_logger
from groupthink.models.config import GroupthinkConfig
from groupthink.models.device import AttributeUpdate, DeviceRegistration, DeviceSnapshot
from groupthink.reconciler.loop import GroupReconciler
from groupthink.scheduling.scheduler import AsyncioScheduler, Scheduler
from groupthink.state.store import RetryStateStore


def _snapshot(device: Any, monitored: bool) -> DeviceSnapshot:
    if isinstance(device, VirtualGroupDevice):
        return device.snapshot(monitored=monitored)
    return DeviceSnapshot(
        device_id=device.device_id,
        name=device.name,
        capabilities=sorted(device.capabilities, key=lambda c: c.value),
        attributes={},
        monitored=monitored,
    )


# --- Application Factory ---

def create_app(
    config: Optional[GroupthinkConfig] = None,
    registry: Optional[DeviceRegistry] = None,
    store: Optional[RetryStateStore] = None,
    scheduler: Optional[Scheduler] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Groupthink API",
        description="Repeats group commands until all devices respond",
        version="0.1.0",
    )

    cfg = config or GroupthinkConfig()
    get_logger(debug=cfg.debug_logging)

    reg = registry or DeviceRegistry()
    rs = store or RetryStateStore()
    reconciler = GroupReconciler(
        registry=reg,
        store=rs,
        scheduler=scheduler or AsyncioScheduler(),
        config=cfg,
    )
    reconciler.initialize()

    # Store components on app state for access in endpoints
    app.state.registry = reg
    app.state.retry_store = rs
    app.state.reconciler = reconciler

    # === STATUS & CONFIG ===

    @app.get("/status")
    def status():
        """Reconciler overview."""
        return {
            "config": reconciler.config.model_dump(),
            "monitored_devices": len(reconciler.monitored_devices()),
            "active_retries": rs.count(),
            "non_group_devices": [d.device_id for d in reconciler.non_group_devices()],
        }

    @app.get("/config")
    def get_config():
        """Current configuration."""
        return reconciler.config.model_dump()

    @app.put("/config")
    def update_config(new_config: GroupthinkConfig):
        """Replace the configuration and re-subscribe."""
        get_logger(debug=new_config.debug_logging)
        reconciler.update_config(new_config)
        return new_config.model_dump()

    # === DEVICES ===

    @app.get("/devices")
    def list_devices():
        """All registered devices."""
        return [
            _snapshot(d, reconciler.is_monitored(d.device_id)).model_dump(mode="json")
            for d in reg.all()
        ]

    @app.post("/devices")
    def register_device(req: DeviceRegistration):
        """Register an in-memory group activator."""
        device = VirtualGroupDevice.from_registration(req)
        reg.add(device)
        # Picks up the new device if it is already listed in the config
        reconciler.initialize()
        return _snapshot(device, reconciler.is_monitored(device.device_id)).model_dump(mode="json")

    @app.get("/devices/non-group")
    def get_non_group_devices():
        """Monitored devices that do not expose groupState."""
        return [
            {"device_id": d.device_id, "name": d.name}
            for d in reconciler.non_group_devices()
        ]

    @app.get("/devices/{device_id}")
    def get_device(device_id: str):
        """A single device snapshot."""
        try:
            device = reg.require(device_id)
        except DeviceNotFoundError:
            raise HTTPException(404, "Device not found")
        return _snapshot(device, reconciler.is_monitored(device_id)).model_dump(mode="json")

    @app.patch("/devices/{device_id}/attributes")
    async def update_attributes(device_id: str, req: AttributeUpdate):
        """Set attribute values as the hub would report them."""
        try:
            device = reg.require(device_id)
        except DeviceNotFoundError:
            raise HTTPException(404, "Device not found")
        if not isinstance(device, VirtualGroupDevice):
            raise HTTPException(409, "Device attributes are owned by the host")
        # Runs on the event loop so switch events can schedule checks
        device.update(**req.attributes())
        return _snapshot(device, reconciler.is_monitored(device_id)).model_dump(mode="json")

    # === RETRIES ===

    @app.get("/retries")
    def list_retries():
        """Active retry chains."""
        return [e.model_dump() for e in rs.all()]

    @app.get("/retries/{device_id}")
    def get_retry(device_id: str):
        """Active retry chain for a device."""
        entry = rs.get(device_id)
        if entry is None:
            raise HTTPException(404, "No active retry chain")
        return entry.model_dump()

    @app.get("/history")
    def get_history(limit: int = 50):
        """Recently finished chains."""
        records = reconciler.history[-limit:] if limit > 0 else []
        return [r.model_dump(mode="json") for r in records]

    return app


# Default application instance
app = create_app()
