"""
guard.py

Safety gate in front of the destructive drive test.

Every target must resolve to a block device, have nothing mounted on it or
its partitions, and not back the root or /boot filesystem. The check is
all-or-nothing: one bad target rejects the whole batch before any disk is
touched. Only read-only queries are made here.
"""

import logging
import os
import re
import stat
from typing import Callable, List, Optional, Sequence

from hwcheck.core.commands import CommandRunner
from hwcheck.core.errors import (
    ConfirmationDeclined,
    DeviceIsSystemDisk,
    DeviceMounted,
    NotABlockDevice,
    TargetsMissing,
)
from hwcheck.parsers import lsblk_mountpoints, parse_first_line, parse_lsblk_json

log = logging.getLogger(__name__)

CONFIRMATION_TOKEN = "YES"
SYSTEM_MOUNTPOINTS = ("/", "/boot")


class BlockDevices:
    """Read-only view of the host's block devices."""

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    def resolve(self, path: str) -> str:
        return os.path.realpath(path)

    def is_block_device(self, path: str) -> bool:
        try:
            return stat.S_ISBLK(os.stat(path).st_mode)
        except OSError:
            return False

    def mountpoints(self, path: str) -> List[str]:
        """Mountpoints of ``path`` and everything stacked on it."""
        result = self.runner.run(["lsblk", "-J", "-o", "NAME,MOUNTPOINT", path], timeout=30)
        if not result.ok:
            raise DeviceMounted(path, "mount state could not be determined", [result.describe()])
        return lsblk_mountpoints(parse_lsblk_json(result.stdout))

    def filesystem_source(self, mountpoint: str) -> Optional[str]:
        """Backing device of a mounted filesystem, without any [subvolume] suffix."""
        result = self.runner.run(["findmnt", "-no", "SOURCE", mountpoint], timeout=30)
        source = parse_first_line(result.stdout) if result.ok else None
        if not source:
            return None
        return re.sub(r"\[.*\]$", "", source)


class SafetyGuard:
    def __init__(
        self,
        devices: BlockDevices,
        force: bool = False,
        prompt: Callable[[str], str] = input,
    ):
        self.devices = devices
        self.force = force
        self.prompt = prompt

    def system_sources(self) -> List[str]:
        sources = []
        for mountpoint in SYSTEM_MOUNTPOINTS:
            source = self.devices.filesystem_source(mountpoint)
            if source:
                sources.append(self.devices.resolve(source))
        return sources

    def check(self, target: str, system_sources: Sequence[str]) -> str:
        """Canonical path of ``target``; raises DeviceUnsafe if it must not be touched."""
        device = self.devices.resolve(target)
        if not self.devices.is_block_device(device):
            raise NotABlockDevice(device, "not a block device")

        mounted = self.devices.mountpoints(device)
        if mounted:
            raise DeviceMounted(device, "is mounted; unmount all its partitions first", mounted)

        # /dev/sda also matches its partition /dev/sda2 backing /.
        for source in system_sources:
            if source.startswith(device):
                raise DeviceIsSystemDisk(device, "backs the root or boot filesystem", [source])
        return device

    def validate(self, targets: Sequence[str]) -> List[str]:
        """Check every target; the first failure rejects the whole batch."""
        if not targets:
            raise TargetsMissing('No target disks. Set TARGET_DISKS="/dev/sdX /dev/nvmeYnZ"')

        sources = self.system_sources()
        log.debug(f"System filesystem sources: {', '.join(sources) or 'none found'}")

        approved: List[str] = []
        for target in targets:
            device = self.check(target, sources)
            if device not in approved:
                approved.append(device)
            log.info(f"{device}: passed safety checks")
        return approved

    def confirm(self, devices: Sequence[str]) -> None:
        if self.force:
            log.warning("FORCE set; skipping confirmation")
            return
        try:
            answer = self.prompt(f"ALL DATA on {' '.join(devices)} will be destroyed. "
                                 f"Type {CONFIRMATION_TOKEN} to proceed: ")
        except EOFError:
            answer = ""
        if answer != CONFIRMATION_TOKEN:
            raise ConfirmationDeclined("Confirmation not given; no device was touched")
