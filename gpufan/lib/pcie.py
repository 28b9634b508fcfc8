"""
PCIe link inspection: find GPUs running on fewer lanes than they can.

A GPU in an x16 slot that negotiated x8 (bad riser, dirty contacts, BIOS
bifurcation setting) still works, just with half the host bandwidth. NVML
reports both the current and the maximum link width, so the check is a
single integer comparison:

    current width < max width  →  degraded, report it

Generation is read and printed too but does not decide anything: cards
drop to Gen1 at idle to save power, so a low current generation is normal.
"""

from __future__ import annotations

from dataclasses import dataclass

from gpufan.lib.errors import DataUnavailable
from gpufan.lib.nvml import NVMLError, error_status, error_string

# Heading of the degraded-link table printed after the device loop
REPORT_TITLE = "-------- Error PcieInfos: -------------"


@dataclass
class PcieInfo:
    """PCIe link state of one GPU. Kept past the scan only when degraded."""

    index: int = 0               # GPU ordinal for this process run
    uuid: str = ""

    # Lanes (x1, x4, x8, x16)
    link_width: int = 0          # What the link negotiated
    max_link_width: int = 0      # What the GPU + slot could do

    link_speed: int = 0          # NVML PCIe speed class

    # Generation (1..6)
    link_generation: int = 0     # Current negotiated generation
    max_link_generation: int = 0  # GPU's own max generation
    max_pcie_generation: int = 0  # Max generation reachable in this slot

    @property
    def degraded(self) -> bool:
        return self.link_width < self.max_link_width

    def summary_line(self) -> str:
        return (
            f"GPU {self.index}: UUID={self.uuid}, "
            f"LinkWidth={self.link_width}(MAX:{self.max_link_width}), "
            f"LinkGeneration={self.link_generation}"
            f"(MAX:{self.max_link_generation},Pcie: {self.max_pcie_generation})"
        )


def _read(field: str, fn):
    try:
        return fn()
    except NVMLError as e:
        raise DataUnavailable(field, error_string(e), error_status(e)) from e


def read_pcie_info(device) -> PcieInfo:
    """Read all PCIe fields of a GPU. Raises DataUnavailable on the first failed read."""
    uuid = _read("UUID", device.uuid)
    link_width = _read("LinkWidth", device.curr_pcie_link_width)
    link_speed = _read("LinkSpeed", device.pcie_speed)
    max_link_width = _read("MaxLinkWidth", device.max_pcie_link_width)
    link_generation = _read("CurrentLinkGeneration", device.curr_pcie_link_generation)
    max_link_generation = _read("MaxLinkGeneration", device.gpu_max_pcie_link_generation)
    max_pcie_generation = _read("MaxPcieGeneration", device.max_pcie_link_generation)

    return PcieInfo(
        index=device.index,
        uuid=uuid,
        link_width=link_width,
        max_link_width=max_link_width,
        link_speed=link_speed,
        link_generation=link_generation,
        max_link_generation=max_link_generation,
        max_pcie_generation=max_pcie_generation,
    )


def scan_pcie_info(device) -> PcieInfo | None:
    """Print the PCIe status line of a GPU and return it if the link is degraded.

    Returns None for a healthy link (width at max, or above it on odd
    platforms). Read failures raise DataUnavailable and print nothing.
    """
    info = read_pcie_info(device)
    print(info.summary_line())
    return info if info.degraded else None

