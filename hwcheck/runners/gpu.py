"""
gpu.py

NVIDIA burn-in with per-GPU temperature tracking, and the AMD ROCm snapshot.

gpu_burn is started once for all GPUs as a registered background process.
While it runs, one ``nvidia-smi --query-gpu`` call per interval samples
every GPU, so each GPU_<n> row carries the maximum seen under load.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional

from hwcheck.core.background import BackgroundProcess, poll_while_running
from hwcheck.parsers import (
    format_temperature,
    parse_first_line,
    parse_gpu_burn_verdicts,
    parse_gpu_list,
    parse_gpu_temperatures,
    parse_persistence_mode,
)
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)

# gpu_burn takes a few seconds to compile its kernels before the timer starts.
BURN_DEADLINE_MARGIN = 120.0


def gpu_notes(single_bit: Optional[str], double_bit: Optional[str],
              persistence: Optional[str], verdict: Optional[str] = None,
              extra: str = "") -> str:
    parts = [
        f"ECC retired SBE:{single_bit or 'N/A'} DBE:{double_bit or 'N/A'}",
        f"Persistence:{persistence or 'Unknown'}",
    ]
    if verdict:
        parts.append(f"Burn:{verdict}")
    if extra:
        parts.append(extra)
    return "; ".join(parts)


def resolve_gpu_burn(
    configured: str,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> Optional[str]:
    """Absolute path of an executable gpu_burn, from config or PATH."""
    candidate = Path(configured).expanduser()
    if candidate.is_file() and os.access(candidate, os.X_OK):
        return str(candidate.resolve())
    return which("gpu_burn")


class GPUChecks:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    # -------------------------------------------------------------------------
    # NVIDIA
    # -------------------------------------------------------------------------

    def nvidia(self):
        ctx = self.ctx
        if not ctx.has("nvidia-smi"):
            ctx.row("GPU_1", "N/A (nvidia-smi not found)", "N/A", "N/A")
            return

        listing = ctx.run(["nvidia-smi", "--list-gpus"], timeout=30)
        gpus = parse_gpu_list(listing.stdout) if listing.ok else []
        if not gpus:
            ctx.row("GPU_1", "No NVIDIA GPUs detected", "N/A", "N/A",
                    "" if listing.ok else listing.describe())
            return

        log.info(f"  -> {len(gpus)} NVIDIA GPU(s)")
        max_temps: Dict[int, float] = {}
        burn = self._start_burn()
        burn_note = ""
        verdicts: Dict[int, str] = {}

        if burn is None:
            self._sample_temperatures(max_temps)
            test = "snapshot (no load)"
        else:
            test = "gpu-burn"
            finished = poll_while_running(
                burn,
                lambda: self._sample_temperatures(max_temps),
                ctx.config.gpu_poll_interval,
                deadline=ctx.config.gpu_stress_seconds + BURN_DEADLINE_MARGIN,
                sleep=ctx.sleep,
            )
            if finished:
                returncode = ctx.processes.wait(burn)
            else:
                log.warning("gpu_burn overran its duration, stopping it")
                returncode = ctx.processes.release(burn)
            burn_note = self._burn_note(finished, returncode, burn)
            verdicts = self._read_verdicts(burn)

        for index in range(len(gpus)):
            name = self._query(index, "name") or "Unknown-GPU"
            notes = gpu_notes(
                single_bit=self._query(index, "retired_pages.single_bit_ecc.count"),
                double_bit=self._query(index, "retired_pages.double_bit.count"),
                persistence=self._persistence(index),
                verdict=verdicts.get(index),
                extra=burn_note,
            )
            ctx.row(f"GPU_{index + 1}", name, test,
                    f"Max Temp: {format_temperature(max_temps.get(index))}", notes)

    def _start_burn(self) -> Optional[BackgroundProcess]:
        ctx = self.ctx
        binary = ctx.tools.path("gpu_burn")
        if not binary:
            log.warning("gpu_burn not found; reporting temperatures without load")
            return None
        seconds = int(ctx.config.gpu_stress_seconds)
        log.info(f"  -> gpu_burn for {seconds}s")
        return ctx.processes.spawn(
            "gpu_burn",
            [binary, str(seconds)],
            log_path=ctx.artifact("gpu_burn", ".log"),
            cwd=Path(binary).parent,
        )

    def _sample_temperatures(self, max_temps: Dict[int, float]):
        result = self.ctx.run(
            ["nvidia-smi", "--query-gpu=index,temperature.gpu", "--format=csv,noheader,nounits"],
            timeout=30,
        )
        for index, temp in parse_gpu_temperatures(result.stdout).items():
            if temp > max_temps.get(index, float("-inf")):
                max_temps[index] = temp

    def _query(self, index: int, field: str) -> Optional[str]:
        result = self.ctx.run(
            ["nvidia-smi", "-i", str(index), f"--query-gpu={field}", "--format=csv,noheader"],
            timeout=30,
        )
        return parse_first_line(result.stdout) if result.ok else None

    def _persistence(self, index: int) -> Optional[str]:
        result = self.ctx.run(["nvidia-smi", "-i", str(index), "-q"], timeout=30)
        return parse_persistence_mode(result.stdout)

    @staticmethod
    def _burn_note(finished: bool, returncode: Optional[int], burn: BackgroundProcess) -> str:
        if not finished:
            status = "gpu_burn timed out"
        elif returncode != 0:
            status = f"gpu_burn non-zero ({returncode})"
        else:
            status = "gpu_burn ok"
        return f"{status}; log {burn.log_path}" if burn.log_path else status

    @staticmethod
    def _read_verdicts(burn: BackgroundProcess) -> Dict[int, str]:
        if burn.log_path is None:
            return {}
        try:
            return parse_gpu_burn_verdicts(Path(burn.log_path).read_text(errors="replace"))
        except OSError as e:
            log.debug(f"Cannot read {burn.log_path}: {e}")
            return {}

    # -------------------------------------------------------------------------
    # AMD
    # -------------------------------------------------------------------------

    def amd(self):
        ctx = self.ctx
        if not ctx.config.extra_tests or not ctx.has("rocm-smi"):
            return

        result = ctx.run(
            ["rocm-smi", "--showproductname", "--showtemp", "--showclocks",
             "--showvoltage", "--json"],
            timeout=60,
        )
        path = ctx.save_artifact("rocm", ".json", result.stdout)
        ctx.row("GPU_AMD", str(path), "rocm-smi",
                "Collected" if result.ok else "N/A",
                "" if result.ok else result.describe())
