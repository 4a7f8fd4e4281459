"""
context.py

Shared state handed to every capability check during an inventory run.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from hwcheck.core.background import ProcessRegistry
from hwcheck.core.commands import CommandResult, CommandRunner
from hwcheck.core.config import InventoryConfig
from hwcheck.core.sink import CsvSink, InventoryRow
from hwcheck.core.tools import ToolAvailability

log = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything a check needs: config, tools, the sink and a command runner.

    ``root`` is prepended to absolute host paths (``/proc``, ``/sys``,
    ``/etc``, ``/dev``) so tests can point the checks at a fake tree.
    """
    config: InventoryConfig
    tools: ToolAvailability
    sink: CsvSink
    processes: ProcessRegistry
    runner: CommandRunner
    host: str
    timestamp: str
    root: Path = Path("/")
    sleep: Callable[[float], None] = field(default=time.sleep)

    @property
    def output_dir(self) -> Path:
        return self.sink.path.parent

    def has(self, tool: str) -> bool:
        return self.tools.has(tool)

    def run(self, argv: Sequence[str], timeout: Optional[float] = None,
            cwd: Optional[Union[str, Path]] = None) -> CommandResult:
        return self.runner.run(argv, timeout=timeout, cwd=cwd)

    def row(self, component: str, details: str = "", test: str = "",
            result: str = "", notes: str = "", part_id: str = "") -> None:
        """Append one inventory row for this host."""
        self.sink.write(InventoryRow(
            system_identifier=self.host,
            component_type=component,
            part_id=part_id,
            details=details,
            test_performed=test,
            result_score=result,
            notes=notes,
        ))

    def skipped(self, component: str, test: str, reason: str) -> None:
        self.row(component, "N/A", test, "Skipped", reason)

    # -------------------------------------------------------------------------
    # Host filesystem
    # -------------------------------------------------------------------------

    def host_path(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def exists(self, path: str) -> bool:
        return self.host_path(path).exists()

    def read_text(self, path: str) -> Optional[str]:
        try:
            return self.host_path(path).read_text(errors="replace")
        except OSError as e:
            log.debug(f"Cannot read {path}: {e}")
            return None

    def read_bytes(self, path: str) -> Optional[bytes]:
        try:
            return self.host_path(path).read_bytes()
        except OSError as e:
            log.debug(f"Cannot read {path}: {e}")
            return None

    # -------------------------------------------------------------------------
    # Evidence files
    # -------------------------------------------------------------------------

    def artifact(self, stem: str, suffix: str) -> Path:
        """``<output_dir>/<stem>_<timestamp><suffix>`` for auxiliary output."""
        return self.output_dir / f"{stem}_{self.timestamp}{suffix}"

    def save_artifact(self, stem: str, suffix: str, text: str) -> Path:
        path = self.artifact(stem, suffix)
        path.write_text(text or "")
        log.debug(f"Saved {path}")
        return path
