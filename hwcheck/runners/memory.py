"""
memory.py

Installed DIMM inventory and a short memtester pass.
"""

import logging

from hwcheck.parsers import memtest_size_mb, parse_memory_devices
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)

MANUAL_MEMTEST = "MemTest86+ (8h, manual)"


class MemoryChecks:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def inventory(self):
        """One RAM_<n> row per populated slot."""
        ctx = self.ctx
        if not ctx.has("dmidecode"):
            ctx.row("RAM", "dmidecode not available", "N/A", "N/A")
            return

        result = ctx.run(["dmidecode", "-t", "memory"], timeout=60)
        modules = parse_memory_devices(result.stdout)
        if not modules:
            ctx.row("RAM", "No installed memory modules reported", "dmidecode", "Unknown",
                    "" if result.ok else result.describe())
            return

        log.info(f"  -> {len(modules)} memory module(s)")
        for index, module in enumerate(modules, start=1):
            ctx.row(f"RAM_{index}", module.details(), MANUAL_MEMTEST, "")

    def quick_test(self):
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("memtester"):
            ctx.skipped("Memory_Test", "memtester", "memtester not available")
            return

        size_mb = memtest_size_mb(ctx.read_text("/proc/meminfo") or "", ctx.config.memtest_min_mb)
        log_path = ctx.artifact("memtester", ".log")
        log.info(f"  -> memtester {size_mb}M, 1 pass")
        result = ctx.runner.run(["memtester", f"{size_mb}M", "1"], log_path=log_path)
        ctx.row("Memory_Test", f"~{size_mb}MB (1 pass)", "memtester",
                "Pass" if result.ok else "Errors", f"See {log_path}")
