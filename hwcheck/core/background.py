"""
background.py

Registry of detached load generators (stress-ng, gpu_burn).

The orchestrator owns one ProcessRegistry for the whole run and uses it as
a context manager, so every process spawned through it is signalled and
reaped on normal exit, on error and on interruption.
"""

import logging
import signal
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

from hwcheck.core.commands import DEFAULT_KILL_GRACE, terminate_process_group
from hwcheck.core.errors import RunInterrupted

log = logging.getLogger(__name__)


@dataclass
class BackgroundProcess:
    """Handle for one detached process."""
    name: str
    argv: List[str]
    proc: subprocess.Popen
    log_path: Optional[Path] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.proc.returncode

    def is_running(self) -> bool:
        return self.proc.poll() is None

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


class ProcessRegistry:
    """Tracks live background processes and guarantees their cleanup."""

    def __init__(
        self,
        kill_grace: float = DEFAULT_KILL_GRACE,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.kill_grace = kill_grace
        self._popen = popen
        self._live: List[BackgroundProcess] = []

    def __enter__(self) -> "ProcessRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    @property
    def live(self) -> List[BackgroundProcess]:
        return list(self._live)

    def spawn(
        self,
        name: str,
        argv: Sequence[str],
        log_path: Optional[Path] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> BackgroundProcess:
        """Start ``argv`` detached and register it before returning."""
        argv = [str(a) for a in argv]
        log.debug(f"spawn {name}: {' '.join(argv)}")

        if log_path is not None:
            with open(log_path, "w") as out:
                proc = self._popen(
                    argv,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    cwd=cwd,
                    start_new_session=True,
                )
        else:
            proc = self._popen(
                argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
                cwd=cwd,
                start_new_session=True,
            )

        handle = BackgroundProcess(name=name, argv=argv, proc=proc, log_path=log_path)
        self._live.append(handle)
        return handle

    def wait(self, handle: BackgroundProcess, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for natural exit; on timeout terminate. Deregisters either way."""
        try:
            return handle.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            log.warning(f"{handle.name} still running after {timeout:.0f}s, terminating")
            return self.release(handle)
        finally:
            if handle.proc.returncode is not None:
                self._forget(handle)

    def release(self, handle: BackgroundProcess) -> Optional[int]:
        """Terminate (if needed), reap and deregister ``handle``."""
        try:
            if handle.is_running():
                log.debug(f"terminating {handle.name} (pid {handle.pid})")
            return terminate_process_group(handle.proc, self.kill_grace)
        finally:
            self._forget(handle)

    def cleanup(self) -> None:
        """Terminate and reap everything still registered."""
        for handle in reversed(self.live):
            try:
                self.release(handle)
            except OSError as e:
                log.warning(f"Failed to stop {handle.name} (pid {handle.pid}): {e}")
                self._forget(handle)

    def _forget(self, handle: BackgroundProcess) -> None:
        if handle in self._live:
            self._live.remove(handle)


def poll_while_running(
    handle: BackgroundProcess,
    sample: Callable[[], None],
    interval: float,
    deadline: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call ``sample`` every ``interval`` seconds until ``handle`` exits.

    Returns False if ``deadline`` (seconds since spawn) passed first; the
    caller is then expected to release the handle.
    """
    while handle.is_running():
        if deadline is not None and handle.elapsed() > deadline:
            return False
        sample()
        sleep(interval)
    return True


@contextmanager
def interrupt_on_sigterm():
    """Make SIGTERM unwind like Ctrl+C so registries and sinks get closed."""

    def handler(signum, frame):
        raise RunInterrupted(f"Received {signal.Signals(signum).name}")

    previous = signal.signal(signal.SIGTERM, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)
