import pynvml
import pytest

from gpufan.lib.errors import DeviceUnavailable, InitializationFailure


class FakeDevice:
    """Stand-in for NvmlDevice that records every call.

    failures maps a call to an NVML return code to raise. Keys are either a
    method name ("num_fans") or a (method, *args) tuple
    (("set_fan_speed", 1, 50)) to fail one specific call.
    """

    def __init__(
        self,
        index=0,
        fans=2,
        uuid=None,
        link_width=16,
        max_link_width=16,
        link_speed=4,
        link_generation=4,
        max_link_generation=4,
        max_pcie_generation=4,
        failures=None,
    ):
        self.index = index
        self.fans = fans
        self._uuid = uuid or f"GPU-{index:08d}"
        self.link_width = link_width
        self.max_link_width = max_link_width
        self.link_speed = link_speed
        self.link_generation = link_generation
        self.max_link_generation = max_link_generation
        self.max_pcie_generation = max_pcie_generation
        self.failures = failures or {}
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name, *args))
        code = self.failures.get((name, *args), self.failures.get(name))
        if code is not None:
            raise pynvml.NVMLError(code)

    def uuid(self):
        self._call("uuid")
        return self._uuid

    def num_fans(self):
        self._call("num_fans")
        return self.fans

    def set_fan_speed(self, fan, percent):
        self._call("set_fan_speed", fan, percent)

    def set_default_fan_speed(self, fan):
        self._call("set_default_fan_speed", fan)

    def curr_pcie_link_width(self):
        self._call("curr_pcie_link_width")
        return self.link_width

    def max_pcie_link_width(self):
        self._call("max_pcie_link_width")
        return self.max_link_width

    def pcie_speed(self):
        self._call("pcie_speed")
        return self.link_speed

    def curr_pcie_link_generation(self):
        self._call("curr_pcie_link_generation")
        return self.link_generation

    def gpu_max_pcie_link_generation(self):
        self._call("gpu_max_pcie_link_generation")
        return self.max_link_generation

    def max_pcie_link_generation(self):
        self._call("max_pcie_link_generation")
        return self.max_pcie_generation

    def enable_persistence_mode(self):
        self._call("enable_persistence_mode")

    def reset_gpu_locked_clocks(self):
        self._call("reset_gpu_locked_clocks")

    def reset_memory_locked_clocks(self):
        self._call("reset_memory_locked_clocks")

    def set_calls(self):
        return [c for c in self.calls if c[0] in ("set_fan_speed", "set_default_fan_speed")]


class FakeSession:
    """Stand-in for NvmlSession over a list of FakeDevice.

    A list entry that is None stands for a GPU whose handle lookup fails.
    """

    def __init__(self, devices, init_error=False, count_error=False):
        self.devices = devices
        self.init_error = init_error
        self.count_error = count_error
        self.entered = False
        self.exited = False
        self.lookups = []

    def __enter__(self):
        if self.init_error:
            raise InitializationFailure("Init nvml Driver Not Loaded", pynvml.NVML_ERROR_DRIVER_NOT_LOADED)
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.exited = True
        return False

    def device_count(self):
        if self.count_error:
            raise InitializationFailure("DeviceGetCount Unknown Error", pynvml.NVML_ERROR_UNKNOWN)
        return len(self.devices)

    def device(self, index):
        self.lookups.append(index)
        dev = self.devices[index]
        if dev is None:
            raise DeviceUnavailable(index, "DeviceGetHandleByIndex GPU is lost", pynvml.NVML_ERROR_GPU_IS_LOST)
        return dev


@pytest.fixture
def make_device():
    return FakeDevice


@pytest.fixture
def make_session():
    return FakeSession
