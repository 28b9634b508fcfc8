"""
CLI entry point: gpufan command.

Parses the flags, sets up the run log, and hands off to cli/fanctl.py:

  gpufan              →  all fans on all GPUs to 100%
  gpufan -f 60        →  all fans to 60%
  gpufan -m           →  all fans to 0%
  gpufan -r           →  reset locked clocks + fans back to auto
  gpufan -p           →  PCIe link width check (+ 100% fans on degraded GPUs)
  gpufan -i 2 ...     →  only GPU 2

Usage examples:
    sudo gpufan -f 80 -i 0
    sudo gpufan -r
    gpufan -p --no-log
    gpufan -p --log-dir /var/log/gpufan

Fan and clock Set calls need root. Reads (-p) work as any user, but the
remediation step of -p sets fans and will fail without root.
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import datetime
from pathlib import Path

from gpufan import __version__

LOG_DIR_ENV = "GPUFAN_LOG_DIR"


# ── Logging tee ─────────────────────────────────────────────────────────────
class _Tee:
    """Write to both a file and the original stream."""
    def __init__(self, stream, log_file):
        self._stream = stream
        self._log = log_file

    def write(self, data):
        self._stream.write(data)
        self._log.write(data)

    def flush(self):
        self._stream.flush()
        self._log.flush()

    def __getattr__(self, name):
        return getattr(self._stream, name)


def resolve_log_dir(cli_value: str | None) -> Path:
    """--log-dir wins, then $GPUFAN_LOG_DIR, then ~/.gpufan/logs."""
    if cli_value:
        return Path(cli_value).expanduser()
    env = os.environ.get(LOG_DIR_ENV)
    if env:
        return Path(env).expanduser()
    # Resolved per call; Path.home() raises RuntimeError when HOME is unset
    # and the uid has no passwd entry.
    return Path.home() / ".gpufan" / "logs"


def _init_log(log_dir: Path):
    """Set up file logging. Returns (log path, open file).

    Writes to <log_dir>/gpufan_<timestamp>.log.
    All print() output goes to both console and log file until _close_log().
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = log_dir / f"gpufan_{stamp}.log"
    log_file = open(log_path, "w", encoding="utf-8")
    sys.stdout = _Tee(sys.stdout, log_file)
    sys.stderr = _Tee(sys.stderr, log_file)
    return log_path, log_file


def _close_log(saved_streams, log_file) -> None:
    sys.stdout.flush()
    sys.stderr.flush()
    sys.stdout, sys.stderr = saved_streams
    log_file.close()


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    # No uid concept on Windows; let NVML decide
    return geteuid is None or geteuid() == 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    The five short flags are the whole control surface; the long options
    only affect logging and the root check.
    """
    p = argparse.ArgumentParser(
        prog="gpufan",
        description="NVIDIA GPU fan control and PCIe link check via NVML",
    )
    p.add_argument("-r", dest="reset", action="store_true",
                   help="Reset locked clocks and fan speed to default")
    p.add_argument("-i", dest="gpu", type=int, default=-1,
                   help="GPU index (default: -1 = all GPUs)")
    p.add_argument("-m", dest="mini_fan", action="store_true",
                   help="Set all fans to 0%%")
    p.add_argument("-f", dest="fan", type=int, default=100,
                   help="Fan speed (%%), range 0 to 100 (default: 100)")
    p.add_argument("-p", dest="pcie", action="store_true",
                   help="Show PCIe width and generation; max fans on degraded links")

    # ── Ambient options ──
    p.add_argument("--log-dir", default=None, metavar="PATH",
                   help=f"Run log directory (default: ${LOG_DIR_ENV} or ~/.gpufan/logs)")
    p.add_argument("--no-log", action="store_true", help="Don't write a run log")
    p.add_argument("--require-root", action="store_true",
                   help="Refuse to run unless started as root")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def main(argv: list[str] | None = None) -> int:
    """Parse args and run. Returns 0 on a completed run, 1 if it ended early.

    Called from the console_scripts entry point defined in pyproject.toml.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    saved_streams = (sys.stdout, sys.stderr)
    log_file = None
    if not args.no_log:
        try:
            log_path, log_file = _init_log(resolve_log_dir(args.log_dir))
        except (OSError, RuntimeError) as e:
            print(f"Run log disabled: {e}")
        else:
            ts = datetime.now().strftime("[%Y-%m-%d %H:%M:%S]")
            print(f"{ts} gpufan log: {log_path}")

    try:
        if args.require_root and not _is_root():
            print("Please run as root.")
            return 1

        # Deferred import: pynvml is only loaded once the flags are valid
        from gpufan.cli.fanctl import cmd_fanctl
        return cmd_fanctl(args)
    finally:
        if log_file is not None:
            _close_log(saved_streams, log_file)


if __name__ == "__main__":
    sys.exit(main())
