"""
CLI fan control: the single gpufan command.

One run = one mode applied to every selected GPU. The mode comes from the
flags, highest priority first:

  -p  pcie     scan PCIe links, then force degraded GPUs to 100% fan
  -r  reset    reset locked clocks, then hand fans back to the driver
               (fans are reset even when the clock reset fails)
  -m  mini     all fans to 0%
  (none)       all fans to -f percent (default 100)

Flags never combine: -p -r runs the PCIe scan only.

Per-GPU failures (bad handle, out-of-range value, failed Set call,
unreadable PCIe field) are printed and the loop moves on to the next GPU.
Only an NVML init / device count failure ends the run early.
"""

from __future__ import annotations

from enum import Enum

from gpufan.lib.clocks import reset_gpu
from gpufan.lib.errors import GpuFanError, InitializationFailure, OperationFailed
from gpufan.lib.fans import ALL_FANS, reset_fan_speed, set_fan_speed
from gpufan.lib.nvml import ALL_GPUS, NvmlSession, iter_devices
from gpufan.lib.pcie import REPORT_TITLE, PcieInfo, scan_pcie_info

# Fan speed forced onto GPUs with a degraded PCIe link
REMEDIATION_FAN_PCT = 100


class Mode(Enum):
    PCIE = "pcie"
    RESET = "reset"
    MINI = "mini"
    CUSTOM = "custom"


def select_mode(args) -> Mode:
    if args.pcie:
        return Mode.PCIE
    if args.reset:
        return Mode.RESET
    if args.mini_fan:
        return Mode.MINI
    return Mode.CUSTOM


def _apply(mode: Mode, device, fan_pct: int) -> PcieInfo | None:
    """Run the per-GPU action for a mode. Returns a PCIe finding, if any."""
    if mode is Mode.PCIE:
        return scan_pcie_info(device)
    if mode is Mode.RESET:
        try:
            reset_gpu(device)
        except OperationFailed as e:
            # Fans still go back to the driver curve; a card left in manual
            # mode at 0% has no cooling.
            print(f"GPU {device.index} clock reset failed: {e}")
        reset_fan_speed(device, ALL_FANS)
    elif mode is Mode.MINI:
        set_fan_speed(device, 0, ALL_FANS)
    else:
        set_fan_speed(device, fan_pct, ALL_FANS)
    return None


def _remediate(session, findings: list[PcieInfo]) -> None:
    """Print the degraded-link table and max out fans on each listed GPU.

    Inspection and remediation share the -p flag; a degraded link is treated
    as a cooling risk until someone reseats the card.
    """
    print()
    print(REPORT_TITLE)
    for info in findings:
        print(info.summary_line())
        try:
            device = session.device(info.index)
            set_fan_speed(device, REMEDIATION_FAN_PCT, ALL_FANS)
        except GpuFanError as e:
            print(f"GPU {info.index} fan remediation failed: {e}")


def run(session, mode: Mode, gpu_index: int = ALL_GPUS, fan_pct: int = 100) -> list[PcieInfo]:
    """Process every selected GPU inside an open NVML session.

    Returns the degraded-link findings (empty outside PCIe mode).
    Raises InitializationFailure if the device count can't be read.
    """
    count = session.device_count()
    print(f"Number of devices: {count}")

    if gpu_index != ALL_GPUS and not 0 <= gpu_index < count:
        print(f"GPU index {gpu_index} not found")
        return []

    findings: list[PcieInfo] = []
    for index, device in iter_devices(session, count, gpu_index):
        try:
            info = _apply(mode, device, fan_pct)
        except GpuFanError as e:
            print(f"GPU {index} {mode.value} failed: {e}")
            continue
        if info is not None:
            findings.append(info)

    if mode is Mode.PCIE and findings:
        _remediate(session, findings)
    return findings


def cmd_fanctl(args, session_factory=None) -> int:
    """Handle a parsed command line. Returns the process exit status.

    session_factory builds the NVML session (default NvmlSession).
    """
    factory = session_factory or NvmlSession
    mode = select_mode(args)
    try:
        with factory() as session:
            run(session, mode, gpu_index=args.gpu, fan_pct=args.fan)
    except InitializationFailure as e:
        print(e)
        return 1
    return 0
