"""
errors.py

Exception hierarchy for hwcheck.

Only the FatalError branch stops a run. Missing tools, timeouts and
unparseable tool output are recorded as row values and never raised.
"""

from typing import List, Optional


class HardwareCheckError(Exception):
    """Base class for all hwcheck errors."""


class FatalError(HardwareCheckError):
    """Error that aborts the whole run."""

    exit_code = 1


class SinkUnavailable(FatalError):
    """The output CSV could not be created or written."""


class ConfigError(FatalError):
    """Invalid configuration value or file."""

    exit_code = 2


class TargetsMissing(FatalError):
    """Destructive run started without any target devices."""


class DeviceUnsafe(FatalError):
    """A destructive target failed a safety check."""

    def __init__(self, device: str, reason: str, details: Optional[List[str]] = None):
        super().__init__(f"{device}: {reason}")
        self.device = device
        self.reason = reason
        self.details = details or []


class NotABlockDevice(DeviceUnsafe):
    """Target does not resolve to a block device."""


class DeviceMounted(DeviceUnsafe):
    """Target (or one of its partitions) has a mountpoint."""


class DeviceIsSystemDisk(DeviceUnsafe):
    """Target backs the root or boot filesystem."""


class ConfirmationDeclined(FatalError):
    """Operator did not type the confirmation token."""


class RunInterrupted(HardwareCheckError):
    """Raised from the SIGTERM handler so scoped cleanup runs."""

    exit_code = 130
