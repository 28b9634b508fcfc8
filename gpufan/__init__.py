"""gpufan: NVIDIA GPU fan control and PCIe link check on top of NVML."""

__version__ = "0.1.0"
