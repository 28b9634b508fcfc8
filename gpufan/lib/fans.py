"""
Fan control: set or reset fan speed on one GPU.

Both operations share the same fan loop (_for_each_fan):
  1. Read the fan count once.
  2. Walk the target fans in ascending order (one fan, or 0..count-1).
  3. Stop at the first fan whose Set call fails and raise OperationFailed
     naming that fan. Fans already set stay set.

Setting a fan puts it in manual mode; resetting hands it back to the
driver's automatic curve. Both need root.
"""

from __future__ import annotations

from gpufan.lib.errors import InvalidArgument, OperationFailed
from gpufan.lib.nvml import NVMLError, error_status, error_string

# Fan ordinal meaning "every fan on the device". Any negative value works.
ALL_FANS = -1

MIN_FAN_PCT = 0
MAX_FAN_PCT = 100


def _for_each_fan(device, fan_index: int, step: str, action) -> None:
    """Run action(fan) on the selected fans, fail-fast.

    Raises InvalidArgument if a specific fan_index is out of range (no fan
    is touched), OperationFailed on the first failing fan.
    """
    try:
        count = device.num_fans()
    except NVMLError as e:
        raise OperationFailed("get number of fans", error_string(e), status=error_status(e)) from e

    if fan_index >= count:
        raise InvalidArgument(f"invalid fan index: {fan_index}, only get {count} fans")

    fans = range(count) if fan_index < 0 else range(fan_index, fan_index + 1)
    for fan in fans:
        try:
            action(fan)
        except NVMLError as e:
            raise OperationFailed(step, error_string(e), fan=fan, status=error_status(e)) from e


def _target(fan_index: int) -> str:
    return "all fans" if fan_index < 0 else f"{fan_index} fan"


def set_fan_speed(device, percent: int, fan_index: int = ALL_FANS) -> None:
    """Set fan speed in percent (0-100) on one fan, or all fans with ALL_FANS."""
    if percent < MIN_FAN_PCT or percent > MAX_FAN_PCT:
        raise InvalidArgument(
            f"invalid fan speed: {percent}, must be in range {MIN_FAN_PCT} to {MAX_FAN_PCT}"
        )

    _for_each_fan(
        device,
        fan_index,
        f"set {percent}% fan speed",
        lambda fan: device.set_fan_speed(fan, percent),
    )
    print(f"Set {percent}% fan speed at {_target(fan_index)} for GPU {device.index}")


def reset_fan_speed(device, fan_index: int = ALL_FANS) -> None:
    """Return one fan, or all fans with ALL_FANS, to the driver default curve."""
    _for_each_fan(device, fan_index, "reset fan speed", device.set_default_fan_speed)
    print(f"Reset fan speed at {_target(fan_index)} for GPU {device.index}")
