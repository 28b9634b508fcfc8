"""
Error taxonomy for gpufan.

Every failure a component can hit maps to one of five classes. Components
raise them; the orchestrator in cli/fanctl.py decides what happens next:

  InitializationFailure  NVML init / device count failed     → run ends
  DeviceUnavailable      handle lookup for one GPU failed    → GPU skipped
  InvalidArgument        fan percent / fan index out of range → GPU skipped
  OperationFailed        a fan or clock Set call failed      → GPU skipped
  DataUnavailable        a PCIe field could not be read      → GPU skipped

Errors that come from NVML keep the raw return code in .status so callers
can tell NOT_SUPPORTED from NO_PERMISSION without parsing the message.
"""

from __future__ import annotations


class GpuFanError(Exception):
    """Base class for everything gpufan raises on purpose."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class InitializationFailure(GpuFanError):
    """NVML could not be initialized or could not enumerate devices."""


class DeviceUnavailable(GpuFanError):
    """A device handle could not be obtained for one GPU index."""

    def __init__(self, index: int, reason: str, status: int | None = None):
        super().__init__(f"GPU {index} unavailable: {reason}", status)
        self.index = index


class InvalidArgument(GpuFanError):
    """Caller-supplied fan percent or fan index is out of range."""


class OperationFailed(GpuFanError):
    """A vendor Set/Reset call failed.

    step = which call ("set fan speed", "reset GPU locked clocks", ...)
    fan  = fan ordinal the call was made for, None for device-wide steps
    """

    def __init__(self, step: str, reason: str, fan: int | None = None, status: int | None = None):
        where = f" at fan {fan}" if fan is not None else ""
        super().__init__(f"unable to {step}{where}: {reason}", status)
        self.step = step
        self.fan = fan


class DataUnavailable(GpuFanError):
    """A PCIe field could not be read."""

    def __init__(self, field: str, reason: str, status: int | None = None):
        super().__init__(f"unable to get {field}: {reason}", status)
        self.field = field
