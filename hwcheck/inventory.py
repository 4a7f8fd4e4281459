#!/usr/bin/env python3
"""
inventory.py

Non-destructive hardware inventory and burn-in run.

Runs every capability check in a fixed order, writing one CSV row per
observation to ``<prefix>_<host>_<timestamp>.csv``. Individual test
failures are recorded as data; only an unusable output file, a bad
config or an interruption end the run early.

Usage:
    python -m hwcheck.inventory
    python -m hwcheck.inventory --config config/hwcheck.yaml --output-dir /srv/reports
    EXTRA_TESTS=0 CPU_STRESS_DURATION=60 python -m hwcheck.inventory
    python -m hwcheck.inventory --iperf-server 10.0.0.5 --verbose
"""

import argparse
import logging
import os
import shutil
import sys
import time
import traceback
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from hwcheck import __version__
from hwcheck.core.background import ProcessRegistry, interrupt_on_sigterm
from hwcheck.core.commands import CommandRunner
from hwcheck.core.config import InventoryConfig
from hwcheck.core.errors import ConfigError, FatalError, RunInterrupted
from hwcheck.core.logging_setup import Colors, colorize, setup_logging
from hwcheck.core.sink import INVENTORY_HEADER, CsvSink, hostname, run_timestamp
from hwcheck.core.tools import CORE_TOOLS, OPTIONAL_TOOLS, ToolAvailability, probe_tools
from hwcheck.runners.context import RunContext
from hwcheck.runners.cpu import CPUChecks
from hwcheck.runners.gpu import GPUChecks, resolve_gpu_burn
from hwcheck.runners.memory import MemoryChecks
from hwcheck.runners.network import NetworkChecks
from hwcheck.runners.peripherals import PeripheralChecks
from hwcheck.runners.storage import StorageChecks
from hwcheck.runners.system import SystemChecks

log = logging.getLogger(__name__)

Step = Tuple[str, Callable[[], None]]


class InventoryRun:
    """Drives the capability checks in order against one CSV sink."""

    def __init__(
        self,
        config: InventoryConfig,
        runner: Optional[CommandRunner] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        root: Path = Path("/"),
        host: Optional[str] = None,
        timestamp: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.runner = runner or CommandRunner(config.kill_grace_seconds)
        self.which = which
        self.root = Path(root)
        self.host = host or hostname()
        self.timestamp = timestamp or run_timestamp()
        self.sleep = sleep

    def probe(self) -> ToolAvailability:
        gpu_burn = resolve_gpu_burn(self.config.gpu_burn_path, self.which)
        tools = probe_tools(CORE_TOOLS + OPTIONAL_TOOLS, self.which, extra={"gpu_burn": gpu_burn})
        missing = tools.missing(CORE_TOOLS)
        if missing:
            log.warning(f"Missing tools: {' '.join(missing)}")
        return tools

    def open_sink(self) -> CsvSink:
        return CsvSink.create(
            self.config.output_dir, self.config.csv_prefix, INVENTORY_HEADER,
            host=self.host, timestamp=self.timestamp,
        )

    def steps(self, ctx: RunContext) -> List[Step]:
        system = SystemChecks(ctx)
        cpu = CPUChecks(ctx)
        memory = MemoryChecks(ctx)
        gpu = GPUChecks(ctx)
        storage = StorageChecks(ctx)
        network = NetworkChecks(ctx)
        peripherals = PeripheralChecks(ctx)
        return [
            ("System", system.system_info),
            ("CPU", cpu.stress),
            ("CPU_Throttling", cpu.throttling),
            ("MCE", system.mce),
            ("Motherboard", system.motherboard),
            ("RAM", memory.inventory),
            ("Memory_Test", memory.quick_test),
            ("GPU", gpu.nvidia),
            ("GPU_AMD", gpu.amd),
            ("Storage", storage.inventory),
            ("Storage_SMART_Snapshot", storage.smart_snapshot),
            ("Storage_SMART_SelfTest", storage.smart_self_test),
            ("Storage_FS", storage.fs_microbench),
            ("Network", network.inventory),
            ("Net_Link", network.link),
            ("Net_Throughput", network.throughput),
            ("PCIe", peripherals.pcie),
            ("Cooling", peripherals.cooling),
            ("Security", peripherals.security),
            ("USB", peripherals.usb),
            ("Placeholders", peripherals.placeholders),
        ]

    def execute(self, sink: Optional[CsvSink] = None) -> CsvSink:
        """Run every step. Background processes are reaped however this exits."""
        tools = self.probe()
        sink = sink or self.open_sink()
        log.info(f"Writing {sink.path}")

        with sink, ProcessRegistry(self.config.kill_grace_seconds) as processes:
            ctx = RunContext(
                config=self.config,
                tools=tools,
                sink=sink,
                processes=processes,
                runner=self.runner,
                host=self.host,
                timestamp=self.timestamp,
                root=self.root,
                sleep=self.sleep,
            )
            for section, step in self.steps(ctx):
                self._run_step(ctx, section, step)
        return sink

    @staticmethod
    def _run_step(ctx: RunContext, section: str, step: Callable[[], None]):
        log.info(f"{section}...")
        start = time.monotonic()
        try:
            step()
        except (FatalError, RunInterrupted):
            raise
        except Exception as e:
            log.error(f"{section} check failed: {e}")
            log.debug(traceback.format_exc())
            ctx.row(section, "N/A", "N/A", "Error", f"{type(e).__name__}: {e}")
        log.debug(f"{section} done in {time.monotonic() - start:.1f}s")


def print_summary(sink: CsvSink):
    print("")
    print("=" * 70)
    print(colorize("  INVENTORY COMPLETE", Colors.BOLD + Colors.GREEN))
    print("=" * 70)
    print(f"  Rows written: {sink.rows_written}")
    print(f"  CSV:          {sink.path}")
    print(f"  Run log:      {sink.path.with_suffix('.log')}")
    print("")
    print("  Fill in Part_ID, the RAM MemTest86+ results and the PSU/Chassis")
    print("  rows by hand before filing the report.")
    print("=" * 70)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""
    parser = argparse.ArgumentParser(
        description="Workstation hardware inventory and burn-in (non-destructive)"
    )
    parser.add_argument("--config", type=Path,
                        help="YAML config file (default: $HWCHECK_CONFIG)")
    parser.add_argument("--output-dir", type=Path,
                        help="Directory for the CSV and evidence files")
    parser.add_argument("--iperf-server",
                        help="iperf3 peer for the network throughput test")
    parser.add_argument("--no-extra", action="store_true",
                        help="Skip the extended tests (turbostat, memtester, fio, ...)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug output on the console")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    try:
        config = InventoryConfig.load(
            args.config,
            output_dir=args.output_dir,
            iperf_server=args.iperf_server,
            extra_tests=False if args.no_extra else None,
        )
    except ConfigError as e:
        log.error(str(e))
        return e.exit_code

    print("")
    print("=" * 70)
    print(colorize(f"  hwcheck inventory v{__version__}", Colors.BOLD))
    print("=" * 70)
    print("")

    if hasattr(os, "geteuid") and os.geteuid() != 0:
        log.warning("Not running as root; SMART, dmidecode and turbostat will mostly report N/A")

    try:
        with interrupt_on_sigterm():
            run = InventoryRun(config)
            sink = run.open_sink()
            setup_logging(args.verbose, log_file=sink.path.with_suffix(".log"))
            run.execute(sink)
    except FatalError as e:
        log.error(str(e))
        return e.exit_code
    except (KeyboardInterrupt, RunInterrupted) as e:
        log.error(f"Interrupted ({str(e) or 'Ctrl+C'}); background processes stopped")
        return RunInterrupted.exit_code

    print_summary(sink)
    return 0


if __name__ == "__main__":
    sys.exit(main())
