"""Exceptions raised by Groupthink's host collaborators."""


class GroupthinkError(Exception):
    """Base class for Groupthink errors."""
    pass


class DeviceNotFoundError(GroupthinkError):
    """Raised when a device ID is not known to the registry."""
    pass


class SchedulerError(GroupthinkError):
    """Raised when a callback name has no registered handler."""
    pass
