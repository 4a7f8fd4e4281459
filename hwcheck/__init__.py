"""
hwcheck - workstation hardware validation and inventory

Two entry points share one core:

    hwcheck.inventory                 Non-destructive inventory and burn-in.
                                      Writes system_inventory_<host>_<ts>.csv
    hwcheck.destructive.drive_tests   Destructive per-disk surface/verify/SMART
                                      run. Writes drive_health_<host>_<ts>.csv

Components:
    - core/tools.py: one-shot probe of the external diagnostic binaries
    - core/sink.py: exclusive-create, fsync-per-row CSV writer
    - core/commands.py: bounded command execution with process-group kill
    - core/background.py: registry that reaps stress-ng / gpu_burn
    - core/config.py: defaults <- YAML <- environment <- CLI
    - parsers.py: pure text parsers for every tool's output
    - runners/: one class of checks per hardware area
    - destructive/guard.py: block-device safety gate and confirmation

Usage:
    # Safe inventory run
    python -m hwcheck.inventory
    python -m hwcheck.inventory --no-extra --output-dir /srv/reports
    CPU_STRESS_DURATION=120 IPERF_SERVER=10.0.0.5 python -m hwcheck.inventory

    # Destructive drive test (erases the listed disks)
    TARGET_DISKS="/dev/sdb /dev/nvme1n1" python -m hwcheck.destructive.drive_tests
    python -m hwcheck.destructive.drive_tests /dev/sdb --force
"""

__version__ = "1.0.0"
