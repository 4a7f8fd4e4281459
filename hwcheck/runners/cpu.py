"""
cpu.py

CPU load test with temperature tracking, and the throttling/power check.
"""

import logging
import tempfile
from typing import List

from hwcheck.core.background import poll_while_running
from hwcheck.parsers import (
    find_throttle_events,
    format_temperature,
    max_temperature,
    parse_cpuinfo_model,
    parse_lscpu_model,
    parse_sensor_temperatures,
    parse_turbostat,
)
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)

# stress-ng enforces its own --timeout; this is the wall-clock slack on top.
STRESS_DEADLINE_MARGIN = 60.0


class CPUChecks:
    """stress-ng under sensors sampling, then turbostat and dmesg."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def model(self) -> str:
        ctx = self.ctx
        if ctx.has("lscpu"):
            model = parse_lscpu_model(ctx.run(["lscpu"], timeout=30).stdout)
            if model:
                return model
        return parse_cpuinfo_model(ctx.read_text("/proc/cpuinfo") or "") or "Unknown CPU"

    def stress(self):
        ctx = self.ctx
        model = self.model()
        missing = [t for t in ("sensors", "stress-ng") if not ctx.has(t)]
        if missing:
            ctx.row("CPU", model, "N/A", "Max Temp: N/A",
                    f"Skipping stress/temp: missing {' '.join(missing)}")
            return

        seconds = int(ctx.config.cpu_stress_seconds)
        temps: List[float] = []

        def sample():
            temps.extend(parse_sensor_temperatures(ctx.run(["sensors"], timeout=10).stdout))

        log.info(f"  -> stress-ng for {seconds}s, sampling sensors every {ctx.config.sensors_interval:g}s")
        with tempfile.TemporaryDirectory(prefix="hwcheck_stress_", dir=ctx.config.scratch_dir) as scratch:
            handle = ctx.processes.spawn(
                "stress-ng",
                ["stress-ng", "--cpu", "0", "--io", "4", "--vm", "2", "--hdd", "1",
                 "--temp-path", scratch, "--metrics-brief", "--timeout", f"{seconds}s"],
                log_path=ctx.artifact("stress_ng", ".log"),
                cwd=scratch,
            )
            finished = poll_while_running(
                handle, sample, ctx.config.sensors_interval,
                deadline=seconds + STRESS_DEADLINE_MARGIN, sleep=ctx.sleep,
            )
            if finished:
                returncode = ctx.processes.wait(handle)
            else:
                log.warning("stress-ng overran its timeout, stopping it")
                returncode = ctx.processes.release(handle)

        if not finished:
            notes = "stress-ng timed out"
        elif returncode != 0:
            notes = f"stress-ng non-zero ({returncode})"
        else:
            notes = ""
        ctx.row("CPU", model, "stress-ng",
                f"Max Temp: {format_temperature(max_temperature(temps))}", notes)

    def throttling(self):
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("turbostat"):
            ctx.skipped("CPU_Throttling", "turbostat", "turbostat not available")
            return

        seconds = int(ctx.config.turbostat_seconds)
        log.info(f"  -> turbostat for {seconds}s")
        result = ctx.run(
            ["turbostat", "--Summary", "--quiet", "--Joules", "--interval", "1",
             "--num_iterations", str(seconds)],
            timeout=seconds + 30,
        )
        summary = parse_turbostat(result.output)
        events = self.throttle_events()

        if events:
            verdict, notes = "Throttle events", events[-1]
        else:
            verdict, notes = "No throttle", "" if result.ok else result.describe()
        ctx.row("CPU_Throttling", summary.details(), f"turbostat({seconds}s)", verdict, notes)

    def throttle_events(self) -> List[str]:
        ctx = self.ctx
        if not ctx.has("dmesg"):
            return []
        result = ctx.run(["dmesg", "--since", ctx.config.dmesg_since], timeout=30)
        return find_throttle_events(result.stdout)
