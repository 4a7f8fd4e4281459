"""
parsers.py

Text extraction rules for diagnostic tool output.

Every parser is a pure function of the captured text. A parser that does
not find what it is looking for returns None (or an empty list); it never
raises, so a format change in one tool degrades a single row to "Unknown".
"""

import json
import re
import statistics
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

UNKNOWN = "Unknown"


def _first(pattern: str, text: str, flags: int = re.MULTILINE) -> Optional[str]:
    match = re.search(pattern, text or "", flags)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def _squash(line: str) -> str:
    return re.sub(r"\s+", " ", line).strip()


def join_lines(text: str, sep: str = "; ") -> str:
    """Non-empty lines of ``text`` joined on one line."""
    return sep.join(_squash(l) for l in (text or "").splitlines() if l.strip())


def _to_float(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# System / CPU
# =============================================================================

def parse_os_release(text: str) -> Optional[str]:
    """PRETTY_NAME from /etc/os-release."""
    value = _first(r"^PRETTY_NAME=(.*)$", text)
    return value.strip("\"'") if value else None


def parse_lscpu_model(text: str) -> Optional[str]:
    return _first(r"^Model name:\s*(.+)$", text)


def parse_cpuinfo_model(text: str) -> Optional[str]:
    return _first(r"^model name\s*:\s*(.+)$", text)


_TEMP_RE = re.compile(r"([+-]?\d+(?:\.\d+)?)\s*°C")


def parse_sensor_temperatures(text: str) -> List[float]:
    """Current readings from ``sensors`` output.

    Only the first value on each line counts; the high/crit limits that
    follow it in parentheses are thresholds, not observations.
    """
    temps = []
    for line in (text or "").splitlines():
        match = _TEMP_RE.search(line)
        if not match or "(" in line[:match.start()]:
            continue
        value = _to_float(match.group(1))
        if value is not None:
            temps.append(value)
    return temps


def max_temperature(samples: List[float]) -> Optional[float]:
    return max(samples) if samples else None


def format_temperature(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    if float(value).is_integer():
        return f"{int(value)}°C"
    return f"{value:.1f}°C"


@dataclass
class TurbostatSummary:
    package_joules: Optional[float] = None
    busy_percent: Optional[float] = None
    samples: int = 0

    def details(self) -> str:
        joules = f"{self.package_joules:.1f}" if self.package_joules is not None else UNKNOWN
        busy = f"{self.busy_percent:.2f}" if self.busy_percent is not None else UNKNOWN
        return f"PkgJoules:{joules}; Busy%:{busy}"


def parse_turbostat(text: str) -> TurbostatSummary:
    """Sum Pkg_J and average Busy% over the summary rows of ``turbostat --Joules``."""
    header: Optional[List[str]] = None
    joules: List[float] = []
    busy: List[float] = []

    for line in (text or "").splitlines():
        cols = line.split()
        if not cols:
            continue
        if "Busy%" in cols:
            header = cols
            continue
        if header is None or len(cols) != len(header):
            continue
        row = dict(zip(header, cols))
        b = _to_float(row.get("Busy%", ""))
        if b is None:
            continue
        busy.append(b)
        j = _to_float(row.get("Pkg_J", ""))
        if j is not None:
            joules.append(j)

    return TurbostatSummary(
        package_joules=sum(joules) if joules else None,
        busy_percent=statistics.mean(busy) if busy else None,
        samples=len(busy),
    )


_THROTTLE_RE = re.compile(r"throttl|TCC|PROCHOT", re.IGNORECASE)


def find_throttle_events(text: str) -> List[str]:
    """Kernel log lines mentioning throttling or the thermal control circuit."""
    return [l.strip() for l in (text or "").splitlines() if _THROTTLE_RE.search(l)]


# =============================================================================
# Memory
# =============================================================================

@dataclass
class MemoryModule:
    size: str
    speed: str = ""
    type: str = ""
    locator: str = ""
    manufacturer: str = ""
    serial: str = ""

    def details(self) -> str:
        parts = [
            ("Size", self.size), ("Speed", self.speed), ("Type", self.type),
            ("Locator", self.locator), ("Manufacturer", self.manufacturer),
            ("Serial", self.serial),
        ]
        return "; ".join(f"{label}: {value or UNKNOWN}" for label, value in parts)


_INSTALLED_SIZE = re.compile(r"^\s*Size:\s*\d+\s*[KMGT]B\b", re.MULTILINE)


def parse_memory_devices(text: str) -> List[MemoryModule]:
    """Installed modules from ``dmidecode -t memory``, in encounter order."""
    modules = []
    for block in re.split(r"^Memory Device\s*$", text or "", flags=re.MULTILINE)[1:]:
        if "No Module Installed" in block or not _INSTALLED_SIZE.search(block):
            continue
        modules.append(MemoryModule(
            size=_first(r"^\s*Size:\s*(.+)$", block) or "",
            speed=_first(r"^\s*Speed:\s*(.+)$", block) or "",
            type=_first(r"^\s*Type:\s*(.+)$", block) or "",
            locator=_first(r"^\s*Locator:\s*(.+)$", block) or "",
            manufacturer=_first(r"^\s*Manufacturer:\s*(.+)$", block) or "",
            serial=_first(r"^\s*Serial Number:\s*(.+)$", block) or "",
        ))
    return modules


def memtest_size_mb(meminfo: str, floor_mb: int = 256) -> int:
    """A quarter of MemAvailable, never below ``floor_mb``."""
    kb = _first(r"^MemAvailable:\s*(\d+)\s*kB", meminfo)
    if kb is None:
        return floor_mb
    return max(int(kb) // 1024 // 4, floor_mb)


# =============================================================================
# GPU
# =============================================================================

def parse_gpu_list(text: str) -> List[str]:
    """Device lines of ``nvidia-smi --list-gpus``."""
    return [l.strip() for l in (text or "").splitlines() if l.strip().startswith("GPU ")]


def parse_int_value(text: str) -> Optional[int]:
    """First line as an integer (``nvidia-smi --format=csv,noheader`` values)."""
    first = (text or "").strip().splitlines()
    if not first:
        return None
    match = re.match(r"^\s*(\d+)\s*$", first[0])
    return int(match.group(1)) if match else None


def parse_first_line(text: str) -> Optional[str]:
    lines = [l.strip() for l in (text or "").splitlines() if l.strip()]
    return lines[0] if lines else None


def parse_persistence_mode(text: str) -> Optional[str]:
    return _first(r"^\s*Persistence Mode\s*:\s*(\S+)", text)


def parse_gpu_temperatures(text: str) -> Dict[int, float]:
    """``index, temperature.gpu`` rows (csv,noheader,nounits) keyed by index."""
    temps = {}
    for line in (text or "").splitlines():
        match = re.match(r"^\s*(\d+)\s*,\s*(\d+(?:\.\d+)?)\s*$", line)
        if match:
            temps[int(match.group(1))] = float(match.group(2))
    return temps


def parse_gpu_burn_verdicts(text: str) -> Dict[int, str]:
    """Final per-GPU verdicts printed by gpu_burn (``GPU 0: OK``)."""
    verdicts = {}
    for match in re.finditer(r"^\s*GPU\s+(\d+):\s*(OK|FAULTY)\b", text or "", re.MULTILINE):
        verdicts[int(match.group(1))] = match.group(2)
    return verdicts


# =============================================================================
# Storage
# =============================================================================

def parse_lsblk_json(text: str) -> List[Dict[str, str]]:
    """``blockdevices`` from ``lsblk -J``; empty list on malformed output."""
    try:
        data = json.loads(text or "")
    except ValueError:
        return []
    devices = data.get("blockdevices") if isinstance(data, dict) else None
    return devices if isinstance(devices, list) else []


def lsblk_disks(devices: List[Dict[str, str]]) -> List[Dict[str, str]]:
    return [d for d in devices if d.get("type") == "disk"]


def lsblk_mountpoints(devices: List[Dict]) -> List[str]:
    """All mountpoints of a device tree, including partitions and holders."""
    found = []
    for dev in devices:
        points = dev.get("mountpoints")
        if points is None:
            points = [dev.get("mountpoint")]
        found.extend(p for p in points if p)
        found.extend(lsblk_mountpoints(dev.get("children") or []))
    return found


def parse_smart_health(text: str) -> Optional[str]:
    """ATA/NVMe overall-health verdict, or the SCSI health status."""
    return (
        _first(r"overall-health[^:]*:\s*(.+)$", text)
        or _first(r"^SMART Health Status:\s*(.+)$", text)
    )


def parse_hdparm_read(text: str) -> Optional[str]:
    """``Timing buffered disk reads: ... = 170.47 MB/sec`` -> ``170.47 MB/sec``."""
    return _first(r"reads:.*=\s*([\d.]+\s*\S+/sec)", text)


def parse_dd_rate(text: str) -> Optional[str]:
    """Throughput from dd's final ``copied`` line."""
    return _first(r"copied,[^,]*,\s*([\d.,]+\s*\S+/s)\s*$", text)


def parse_fio_bandwidth(text: str) -> List[str]:
    """Run-status bandwidth of each direction, e.g. ``READ bw=120MiB/s (126MB/s)``."""
    return [
        f"{m.group(1)} bw={m.group(2).strip()}"
        for m in re.finditer(r"^\s*(READ|WRITE):\s*bw=([^,]+)", text or "", re.MULTILINE)
    ]


_SMART_KEY_RE = re.compile(
    r"Model|Device Model|Serial Number|Firmware|Power_On_Hours|Power On Hours|"
    r"Reallocated|Media_Wearout|Percent_Lifetime|Percentage Used|"
    r"Media and Data Integrity Errors|CRC_Error_Count|Temperature"
)


def smart_key_lines(text: str) -> List[str]:
    """Identity, wear and error lines of ``smartctl -a``."""
    return [_squash(l) for l in (text or "").splitlines() if _SMART_KEY_RE.search(l)]


def self_test_in_progress(text: str) -> bool:
    """True while ``smartctl -c`` reports a self-test still running."""
    for line in (text or "").splitlines():
        lower = line.lower()
        if "self-test" in lower and "in progress" in lower:
            return True
    return False


def self_test_log_excerpt(text: str, limit: int = 10) -> Optional[str]:
    lines = [
        _squash(l) for l in (text or "").splitlines()
        if re.search(r"Self-test execution status|Self-test Log|# 1 ", l)
    ]
    return "; ".join(lines[:limit]) or None


_NVME_KEYS = (
    "critical_warning", "temperature", "percentage_used", "media_errors",
    "num_err_log_entries", "power_on_hours",
)


def parse_nvme_smart_log(text: str) -> List[str]:
    picked = []
    for line in (text or "").splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip().lower() in _NVME_KEYS:
            picked.append(f"{key.strip()}:{_squash(value)}")
    return picked


def count_nvme_errors(text: str) -> int:
    """Entries in ``nvme error-log`` with a non-zero error_count."""
    return sum(1 for v in re.findall(r"error_count\s*:\s*(\d+)", text or "") if int(v) > 0)


# =============================================================================
# Network / PCIe / platform
# =============================================================================

def parse_ethtool_link(text: str) -> Tuple[Optional[str], Optional[str]]:
    """(speed, duplex); link-down placeholders count as unknown."""
    speed = _first(r"^\s*Speed:\s*(.+)$", text)
    duplex = _first(r"^\s*Duplex:\s*(.+)$", text)
    if speed and speed.lower().startswith("unknown"):
        speed = None
    if duplex and duplex.lower().startswith("unknown"):
        duplex = None
    return speed, duplex


def parse_iperf_json(text: str) -> Optional[str]:
    """Aggregate receiver throughput of ``iperf3 -J``."""
    try:
        data = json.loads(text or "")
        bps = float(data["end"]["sum_received"]["bits_per_second"])
    except (ValueError, KeyError, TypeError):
        return None
    return f"{bps / 1e6:.0f} Mbits/sec"


_PCIE_CLASS_RE = re.compile(
    r"VGA|3D|Display|Processing accelerators|NVMe|Non-Volatile memory|Ethernet", re.IGNORECASE
)


def select_pcie_devices(text: str) -> List[Tuple[str, str]]:
    """(slot, description) of display, accelerator, NVMe and Ethernet devices in ``lspci``."""
    found = []
    for line in (text or "").splitlines():
        if line.strip() and _PCIE_CLASS_RE.search(line):
            found.append((line.split()[0], line.strip()))
    return found


def parse_link_status(text: str) -> Optional[str]:
    """Negotiated speed and width from the LnkSta line of ``lspci -vv``."""
    line = _first(r"^\s*LnkSta:\s*(.+)$", text)
    if not line:
        return None
    speed = _first(r"Speed\s+([^\s,]+)", line, 0)
    width = _first(r"Width\s+(x\d+)", line, 0)
    parts = [f"Speed {speed}" if speed else None, f"Width {width}" if width else None]
    summary = ", ".join(p for p in parts if p)
    if not summary:
        return None
    if "downgraded" in line:
        summary += " (downgraded)"
    return summary


def parse_fan_lines(text: str) -> List[str]:
    return [_squash(l) for l in (text or "").splitlines() if re.match(r"^fan\d+:", l)]


def parse_secure_boot_var(data: bytes) -> Optional[bool]:
    """EFI variable payload: 4 attribute bytes followed by the value byte."""
    if not data:
        return None
    return data[-1] == 1
