"""
tools.py

One-shot probe of the external diagnostic binaries on this host.
"""

import shutil
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional

# Tools whose absence is summarised on the first inventory row.
CORE_TOOLS = (
    "sensors", "stress-ng", "dmidecode", "lsblk", "smartctl", "hdparm",
    "nvidia-smi", "ip", "dd", "lspci", "ethtool",
)

# Used when present, skipped with a note otherwise.
OPTIONAL_TOOLS = (
    "lscpu", "turbostat", "dmesg", "ras-mc-ctl", "memtester",
    "rocm-smi", "fio", "iperf3", "lsusb", "gpu_burn",
)

DRIVE_TEST_TOOLS = (
    "smartctl", "badblocks", "fio", "lsblk", "nvme", "blkdiscard", "findmnt",
)

# Tools the drive test summary row reports on, in the original order.
DRIVE_TEST_SUMMARY_TOOLS = ("smartctl", "badblocks", "fio", "lsblk", "nvme")


@dataclass(frozen=True)
class ToolAvailability:
    """Read-only presence map, computed once at run start."""
    present: Mapping[str, Optional[str]] = field(default_factory=dict)

    def has(self, name: str) -> bool:
        return bool(self.present.get(name))

    def path(self, name: str) -> Optional[str]:
        return self.present.get(name)

    def missing(self, names: Optional[Iterable[str]] = None) -> List[str]:
        """Names (in probe order) that were not found."""
        names = self.present.keys() if names is None else names
        return [n for n in names if not self.has(n)]


def probe_tools(
    names: Iterable[str],
    which: Callable[[str], Optional[str]] = shutil.which,
    extra: Optional[Dict[str, Optional[str]]] = None,
) -> ToolAvailability:
    """Resolve each tool on PATH. ``extra`` supplies pre-resolved paths (e.g. gpu_burn)."""
    present: Dict[str, Optional[str]] = {}
    for name in names:
        if name not in present:
            present[name] = which(name)
    for name, resolved in (extra or {}).items():
        if resolved:
            present[name] = resolved
    return ToolAvailability(present)


def missing_tools_note(tools: ToolAvailability, names: Iterable[str] = CORE_TOOLS) -> str:
    missing = tools.missing(names)
    if missing:
        return f"Missing tools: {' '.join(missing)}"
    return "All core tools present"
