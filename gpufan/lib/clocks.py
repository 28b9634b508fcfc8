"""
Clock reset: put a GPU back on driver-default clocks.

Three Set calls in a fixed order, each must succeed before the next runs:
  1. enable persistence mode
  2. reset GPU locked clocks
  3. reset memory locked clocks

The driver has no transaction for these. If step 2 fails, persistence mode
from step 1 stays enabled.
"""

from __future__ import annotations

from gpufan.lib.errors import OperationFailed
from gpufan.lib.nvml import NVMLError, error_status, error_string

RESET_STEPS = (
    ("enable PersistenceMode", "enable_persistence_mode"),
    ("reset GPU locked clocks", "reset_gpu_locked_clocks"),
    ("reset memory locked clocks", "reset_memory_locked_clocks"),
)


def reset_gpu(device) -> None:
    """Run the reset sequence, raising OperationFailed on the first failing step."""
    for step, method in RESET_STEPS:
        try:
            getattr(device, method)()
        except NVMLError as e:
            raise OperationFailed(step, error_string(e), status=error_status(e)) from e
    print(f"Reset locked clocks for GPU {device.index}")
