"""
system.py

Host identity rows: OS/kernel/BIOS, machine-check summary and motherboard.
"""

import logging
import platform
from typing import Optional

from hwcheck.core.tools import missing_tools_note
from hwcheck.parsers import join_lines, parse_first_line, parse_os_release
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)


class SystemChecks:
    """Reads firmware and OS identity through dmidecode and /etc/os-release."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def _dmi(self, keyword: str) -> Optional[str]:
        """Single ``dmidecode -s`` string, without comment lines."""
        if not self.ctx.has("dmidecode"):
            return None
        result = self.ctx.run(["dmidecode", "-s", keyword], timeout=30)
        if not result.ok:
            return None
        lines = "\n".join(l for l in result.stdout.splitlines() if not l.startswith("#"))
        return parse_first_line(lines)

    def system_info(self):
        ctx = self.ctx
        os_name = parse_os_release(ctx.read_text("/etc/os-release") or "") or platform.system()
        kernel = platform.release() or "Unknown"
        bios_version = self._dmi("bios-version") or "N/A"
        bios_date = self._dmi("bios-release-date") or "N/A"

        ctx.row(
            "System",
            f"OS: {os_name}; Kernel: {kernel}; BIOS: {bios_version} ({bios_date})",
            "N/A",
            "N/A",
            missing_tools_note(ctx.tools),
        )

    def mce(self):
        """EDAC / machine-check error summary from rasdaemon's ras-mc-ctl."""
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("ras-mc-ctl"):
            ctx.skipped("MCE", "ras-mc-ctl", "ras-mc-ctl not available")
            return

        result = ctx.run(["ras-mc-ctl", "--summary"], timeout=60)
        summary = join_lines(result.stdout)
        if result.ok and summary:
            ctx.row("MCE", "EDAC summary", "ras-mc-ctl --summary", "Collected", summary)
        else:
            ctx.row("MCE", "EDAC summary", "ras-mc-ctl --summary", "N/A", result.describe())

    def motherboard(self):
        ctx = self.ctx
        vendor = self._dmi("baseboard-manufacturer") or "Unknown-Vendor"
        model = self._dmi("baseboard-product-name") or "Unknown-Model"
        notes = "" if ctx.has("dmidecode") else "dmidecode not available"
        ctx.row("Motherboard", f"{vendor} {model}", "N/A", "Pass", notes)
