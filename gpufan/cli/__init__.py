"""gpufan.cli: command-line interface modules.

main.py   = Entry point + argument parsing + run log
fanctl.py = Mode selection + per-GPU loop + PCIe report
"""
