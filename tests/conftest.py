import csv
import subprocess
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from hwcheck.core.background import ProcessRegistry
from hwcheck.core.commands import CommandResult
from hwcheck.core.config import InventoryConfig
from hwcheck.core.sink import INVENTORY_HEADER, CsvSink
from hwcheck.core.tools import CORE_TOOLS, OPTIONAL_TOOLS, ToolAvailability, probe_tools
from hwcheck.runners.context import RunContext

HOST = "testhost"
TIMESTAMP = "2024-01-01_000000"


class FakeRunner:
    """Stands in for CommandRunner; replies are looked up by argv prefix.

    A list of replies is consumed in order and its last entry repeats.
    Unscripted commands succeed with empty output.
    """

    def __init__(self):
        self.calls: List[List[str]] = []
        self._replies: Dict[Tuple[str, ...], List[dict]] = {}

    def add(self, *prefix: str, stdout: str = "", stderr: str = "", returncode: int = 0,
            timed_out: bool = False):
        self._replies.setdefault(tuple(prefix), []).append(dict(
            stdout=stdout, stderr=stderr, returncode=returncode, timed_out=timed_out,
        ))

    def run(self, argv: Sequence[str], timeout: Optional[float] = None, cwd=None,
            log_path: Optional[Path] = None) -> CommandResult:
        argv = [str(a) for a in argv]
        self.calls.append(argv)

        reply = {"stdout": "", "stderr": "", "returncode": 0, "timed_out": False}
        matches = [p for p in self._replies if tuple(argv[:len(p)]) == p]
        if matches:
            queue = self._replies[max(matches, key=len)]
            reply = queue.pop(0) if len(queue) > 1 else queue[0]

        if log_path is not None:
            Path(log_path).write_text(reply["stdout"] + reply["stderr"])
            return CommandResult(argv, reply["returncode"], timed_out=reply["timed_out"])
        return CommandResult(argv, reply["returncode"], reply["stdout"], reply["stderr"],
                             timed_out=reply["timed_out"])

    def called(self, *prefix: str) -> List[List[str]]:
        return [c for c in self.calls if tuple(c[:len(prefix)]) == prefix]


class FakeBlockDevices:
    """In-memory device layer. It has no way to write anything."""

    def __init__(
        self,
        block=("/dev/sda", "/dev/sdb", "/dev/sdc"),
        mounts: Optional[Dict[str, List[str]]] = None,
        sources: Optional[Dict[str, str]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ):
        self.block = set(block)
        self.mounts = mounts or {}
        self.sources = {"/": "/dev/sda2", "/boot": "/dev/sda1"} if sources is None else sources
        self.aliases = aliases or {}
        self.queried: List[str] = []

    def resolve(self, path):
        return self.aliases.get(path, path)

    def is_block_device(self, path):
        return path in self.block

    def mountpoints(self, path):
        self.queried.append(path)
        return self.mounts.get(path, [])

    def filesystem_source(self, mountpoint):
        return self.sources.get(mountpoint)


def which_from(*present: str):
    def which(name: str) -> Optional[str]:
        return f"/usr/bin/{name}" if name in present else None
    return which


def sleeper_popen(seconds: float):
    """Popen replacement that runs a short Python sleep whatever argv says."""
    def popen(argv, **kwargs):
        return subprocess.Popen([sys.executable, "-c", f"import time; time.sleep({seconds})"], **kwargs)
    return popen


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def make_ctx(tmp_path: Path, host_root: Path, fake_runner: FakeRunner):
    """Build a RunContext over a fresh sink in tmp_path/out."""
    opened: List[Tuple[CsvSink, ProcessRegistry]] = []

    def factory(*present: str, config: Optional[InventoryConfig] = None,
                tools: Optional[ToolAvailability] = None,
                processes: Optional[ProcessRegistry] = None,
                sleep=lambda seconds: None) -> RunContext:
        config = config or InventoryConfig(output_dir=tmp_path / "out")
        sink = CsvSink.create(tmp_path / "out", "inv", INVENTORY_HEADER, host=HOST, timestamp=TIMESTAMP)
        processes = processes or ProcessRegistry(kill_grace=2)
        opened.append((sink, processes))
        return RunContext(
            config=config,
            tools=tools or probe_tools(CORE_TOOLS + OPTIONAL_TOOLS, which_from(*present)),
            sink=sink,
            processes=processes,
            runner=fake_runner,
            host=HOST,
            timestamp=TIMESTAMP,
            root=host_root,
            sleep=sleep,
        )

    yield factory
    for sink, processes in opened:
        processes.cleanup()
        sink.close()


def read_rows(path: Path) -> List[List[str]]:
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))
