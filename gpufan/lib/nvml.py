"""
NVML wrapper: the only module in gpufan that talks to pynvml.

Uses nvidia-ml-py (pynvml), the official NVIDIA Python binding for the
NVIDIA Management Library (NVML). NVML ships with every NVIDIA driver and
exposes both sensor reads and the privileged Set calls we need (fan speed,
persistence mode, locked clocks).

Key design decisions:
  - NvmlSession is a context manager. nvmlInit() runs on enter and
    nvmlShutdown() runs on exit, on every exit path. Nothing else in the
    package calls nvmlInit/nvmlShutdown.
  - NvmlDevice is the capability interface the rest of the package codes
    against: fan count, fan Set/Reset, PCIe reads, clock resets. Tests swap
    in a fake with the same methods and never load libnvidia-ml.
  - NvmlDevice methods are thin pass-throughs. They let nvml.NVMLError
    propagate; fans.py / clocks.py / pcie.py translate it into the error
    class for the step that failed (lib/errors.py).

Provides:
  - NvmlSession()             → with-block owning the NVML lifetime
  - session.device_count()    → int
  - session.device(index)     → NvmlDevice
  - iter_devices(session, count, gpu_index) → (index, device) per selected GPU
  - error_string(err)         → human-readable NVML error text
"""

from __future__ import annotations

import warnings as _warnings

_warnings.filterwarnings("ignore", message=".*pynvml.*deprecated.*", category=FutureWarning)

import pynvml as nvml  # noqa: E402

from gpufan.lib.errors import DeviceUnavailable, InitializationFailure  # noqa: E402

# Re-exported so callers never import pynvml directly
NVMLError = nvml.NVMLError

# -1 on the command line means "every GPU in the system"
ALL_GPUS = -1


def error_string(err: Exception) -> str:
    """Human-readable text for an NVML failure.

    str(NVMLError) resolves through nvmlErrorString() and caches the result,
    so this is the same text nvidia-smi would print for the return code.
    """
    return str(err)


def error_status(err: Exception) -> int | None:
    """Raw NVML return code of an NVMLError, None for anything else."""
    return getattr(err, "value", None)


def _text(value) -> str:
    # Older pynvml releases return bytes for string getters
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class NvmlDevice:
    """One GPU, addressed through an NVML handle.

    Every method maps 1:1 to an nvmlDevice* call.
    """

    def __init__(self, handle, index: int):
        self._handle = handle
        self.index = index

    def __repr__(self) -> str:
        return f"NvmlDevice(index={self.index})"

    # ── Identity ──

    def uuid(self) -> str:
        return _text(nvml.nvmlDeviceGetUUID(self._handle))

    # ── Fans ──

    def num_fans(self) -> int:
        return nvml.nvmlDeviceGetNumFans(self._handle)

    def set_fan_speed(self, fan: int, percent: int) -> None:
        """Switch one fan to manual control at the given percent (root required)."""
        nvml.nvmlDeviceSetFanSpeed_v2(self._handle, fan, percent)

    def set_default_fan_speed(self, fan: int) -> None:
        """Hand one fan back to the driver's automatic curve."""
        nvml.nvmlDeviceSetDefaultFanSpeed_v2(self._handle, fan)

    # ── PCIe ──
    # Width is a lane count (x1..x16), generation is 1..6, speed is the
    # NVML_PCIE_LINK_SPEED class reported by the driver.

    def curr_pcie_link_width(self) -> int:
        return nvml.nvmlDeviceGetCurrPcieLinkWidth(self._handle)

    def max_pcie_link_width(self) -> int:
        return nvml.nvmlDeviceGetMaxPcieLinkWidth(self._handle)

    def pcie_speed(self) -> int:
        return nvml.nvmlDeviceGetPcieSpeed(self._handle)

    def curr_pcie_link_generation(self) -> int:
        return nvml.nvmlDeviceGetCurrPcieLinkGeneration(self._handle)

    def gpu_max_pcie_link_generation(self) -> int:
        """Highest generation the GPU itself supports."""
        return nvml.nvmlDeviceGetGpuMaxPcieLinkGeneration(self._handle)

    def max_pcie_link_generation(self) -> int:
        """Highest generation reachable in this slot (GPU and platform)."""
        return nvml.nvmlDeviceGetMaxPcieLinkGeneration(self._handle)

    # ── Clocks / driver state ──

    def enable_persistence_mode(self) -> None:
        nvml.nvmlDeviceSetPersistenceMode(self._handle, nvml.NVML_FEATURE_ENABLED)

    def reset_gpu_locked_clocks(self) -> None:
        nvml.nvmlDeviceResetGpuLockedClocks(self._handle)

    def reset_memory_locked_clocks(self) -> None:
        nvml.nvmlDeviceResetMemoryLockedClocks(self._handle)


class NvmlSession:
    """Scoped NVML lifetime.

    Usage:
        with NvmlSession() as session:
            for index, dev in iter_devices(session, session.device_count()):
                ...

    If nvmlInit() fails, __enter__ raises InitializationFailure and there is
    nothing to shut down. Once init succeeded, __exit__ always shuts down,
    including when the with-body raised.
    """

    def __init__(self):
        self._initialized = False

    def __enter__(self) -> NvmlSession:
        try:
            nvml.nvmlInit()  # Must be called before ANY nvml function
        except nvml.NVMLError as e:
            raise InitializationFailure(f"Init nvml {error_string(e)}", error_status(e)) from e
        self._initialized = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False

    def shutdown(self) -> None:
        if not self._initialized:
            return
        self._initialized = False
        try:
            nvml.nvmlShutdown()
        except nvml.NVMLError as e:
            # Shutdown runs on the way out of the with-block; never mask the
            # exception that got us here.
            print(f"Shutdown nvml {error_string(e)}")

    def device_count(self) -> int:
        try:
            return nvml.nvmlDeviceGetCount()
        except nvml.NVMLError as e:
            raise InitializationFailure(f"DeviceGetCount {error_string(e)}", error_status(e)) from e

    def device(self, index: int) -> NvmlDevice:
        try:
            handle = nvml.nvmlDeviceGetHandleByIndex(index)
        except nvml.NVMLError as e:
            raise DeviceUnavailable(index, f"DeviceGetHandleByIndex {error_string(e)}", error_status(e)) from e
        return NvmlDevice(handle, index)


def iter_devices(session, count: int, gpu_index: int = ALL_GPUS):
    """Yield (index, device) for every selected GPU in ascending order.

    session is anything with a device(index) method (NvmlSession, or a fake
    in tests). gpu_index == ALL_GPUS selects every GPU, anything else selects
    just that one. A GPU whose handle can't be obtained is reported and
    skipped so one bad card doesn't block the rest.
    """
    for i in range(count):
        if gpu_index != ALL_GPUS and i != gpu_index:
            continue
        try:
            dev = session.device(i)
        except DeviceUnavailable as e:
            print(e)
            continue
        yield i, dev
