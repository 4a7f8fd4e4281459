"""
storage.py

Non-destructive disk checks: inventory with health and read speed, a full
SMART dump, short self-tests and a scratch-directory fio run.
"""

import logging
import os
import tempfile
from typing import Dict, List, Optional

from hwcheck.parsers import (
    lsblk_disks,
    parse_dd_rate,
    parse_fio_bandwidth,
    parse_hdparm_read,
    parse_lsblk_json,
    parse_smart_health,
)
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)


def is_nvme(device: str) -> bool:
    return os.path.basename(device).startswith("nvme")


def smartctl_argv(device: str, *options: str) -> List[str]:
    """smartctl command line, selecting the NVMe device type where needed."""
    argv = ["smartctl", *options]
    if is_nvme(device):
        argv += ["-d", "nvme"]
    return argv + [device]


class StorageChecks:
    """Disk list is read once and shared by every storage row."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx
        self._disks: Optional[List[Dict[str, str]]] = None

    def disks(self) -> List[Dict[str, str]]:
        if self._disks is None:
            self._disks = []
            if self.ctx.has("lsblk"):
                result = self.ctx.run(["lsblk", "-J", "-d", "-o", "NAME,TYPE,MODEL,SIZE"], timeout=30)
                self._disks = lsblk_disks(parse_lsblk_json(result.stdout))
        return self._disks

    def devices(self) -> List[str]:
        return [f"/dev/{d['name']}" for d in self.disks() if d.get("name")]

    def inventory(self):
        ctx = self.ctx
        if not ctx.has("lsblk"):
            ctx.row("Storage", "lsblk not available", "N/A", "N/A")
            return
        disks = self.disks()
        if not disks:
            ctx.row("Storage", "No block devices found", "N/A", "N/A")
            return

        for index, disk in enumerate(disks, start=1):
            device = f"/dev/{disk.get('name')}"
            model = (disk.get("model") or "").strip() or "Unknown-Model"
            size = (disk.get("size") or "").strip() or "Unknown-Size"
            log.info(f"  -> {device}: {model} ({size})")
            ctx.row(
                f"Storage_{index}",
                f"{model} ({size})",
                "SMART/Throughput",
                f"Health: {self.health(device)} / Speed: {self.read_speed(device)}",
            )

    def health(self, device: str) -> str:
        if not self.ctx.has("smartctl"):
            return "Unknown"
        # smartctl's exit status is a bit mask; the verdict line is what counts.
        result = self.ctx.run(smartctl_argv(device, "-H"), timeout=60)
        return parse_smart_health(result.stdout) or "Unknown"

    def read_speed(self, device: str) -> str:
        ctx = self.ctx
        speed = None
        if ctx.has("hdparm"):
            speed = parse_hdparm_read(ctx.run(["hdparm", "-t", device], timeout=120).output)
        if not speed and ctx.has("dd"):
            result = ctx.run(
                ["dd", f"if={device}", "of=/dev/null", "bs=256M", "count=1", "iflag=direct"],
                timeout=120,
            )
            speed = parse_dd_rate(result.output)
        return speed or "N/A"

    def smart_snapshot(self):
        """Full ``smartctl -a`` of every disk into one evidence file."""
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("smartctl"):
            ctx.skipped("Storage_SMART_Snapshot", "smartctl -a", "smartctl not available")
            return

        path = ctx.artifact("smart_snapshot", ".txt")
        with open(path, "w") as f:
            for device in self.devices():
                result = ctx.run(smartctl_argv(device, "-a"), timeout=120)
                f.write(f"===== {device} =====\n")
                f.write(result.stdout or result.describe())
                f.write("\n\n")
        ctx.row("Storage_SMART_Snapshot", str(path), "smartctl -a", "Saved",
                f"{len(self.devices())} device(s)")

    def smart_self_test(self):
        """Fire-and-forget short self-test; results land in the drive's log."""
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("smartctl"):
            ctx.skipped("Storage_SMART_SelfTest", "smartctl -t short", "smartctl not available")
            return

        devices = self.devices()
        accepted = sum(
            1 for device in devices
            if ctx.run(smartctl_argv(device, "-t", "short"), timeout=60).ok
        )
        ctx.row("Storage_SMART_SelfTest", "Short tests initiated", "smartctl -t short",
                "Started", f"{accepted}/{len(devices)} accepted")

    def fs_microbench(self):
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("fio"):
            ctx.skipped("Storage_FS", "fio", "fio not available")
            return

        seconds = int(ctx.config.fio_seconds)
        log_path = ctx.artifact("fio_meta", ".log")
        log.info(f"  -> fio psync 4k for {seconds}s")
        with tempfile.TemporaryDirectory(prefix="hwcheck_fio_", dir=ctx.config.scratch_dir) as scratch:
            result = ctx.runner.run(
                ["fio", "--name=meta", "--rw=readwrite", "--ioengine=psync", "--bs=4k",
                 "--size=64M", "--numjobs=1", "--iodepth=1", f"--runtime={seconds}",
                 "--time_based", "--group_reporting", f"--directory={scratch}"],
                timeout=seconds + 120,
                cwd=scratch,
                log_path=log_path,
            )

        bandwidth = parse_fio_bandwidth(_read(log_path))
        if bandwidth:
            verdict = "; ".join(bandwidth)
        else:
            verdict = "Ran" if result.ok else result.describe()
        ctx.row("Storage_FS", f"psync 4k 64M ({seconds}s)", "fio", verdict, str(log_path))


def _read(path) -> str:
    try:
        with open(path, errors="replace") as f:
            return f.read()
    except OSError:
        return ""
