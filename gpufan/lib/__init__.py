"""gpufan.lib: NVML access and the per-GPU operations.

nvml.py   = NVML session lifetime + device capability wrapper
errors.py = Error classes raised by the operations below
fans.py   = Set / reset fan speed
clocks.py = Persistence mode + locked clock reset
pcie.py   = PCIe link width check
"""
