"""
commands.py

Blocking execution of external diagnostic commands.

Every invocation returns a CommandResult; nothing here raises for a
missing binary, a non-zero exit or an expired time budget. Callers decide
whether to degrade or abort.
"""

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

log = logging.getLogger(__name__)

DEFAULT_KILL_GRACE = 10.0


@dataclass
class CommandResult:
    """Outcome of one external command."""
    argv: List[str]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    missing: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.missing

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    def describe(self) -> str:
        """Short human readable status, used in row notes."""
        name = self.argv[0] if self.argv else "command"
        if self.missing:
            return f"{name} not found"
        if self.timed_out:
            return f"{name} timed out"
        if self.returncode != 0:
            return f"{name} non-zero ({self.returncode})"
        return f"{name} ok"


def terminate_process_group(proc: subprocess.Popen, grace: float = DEFAULT_KILL_GRACE) -> Optional[int]:
    """SIGTERM the process group, wait up to ``grace``, then SIGKILL. Always reaps."""
    if proc.poll() is not None:
        return proc.returncode

    for sig in (signal.SIGTERM, signal.SIGKILL):
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            proc.send_signal(sig)
        try:
            return proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            log.warning(f"PID {proc.pid} ignored {signal.Signals(sig).name}")

    return proc.wait()


class CommandRunner:
    """Runs commands in their own session so a timeout can kill the whole tree."""

    def __init__(self, kill_grace: float = DEFAULT_KILL_GRACE):
        self.kill_grace = kill_grace

    def run(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        cwd: Optional[Union[str, Path]] = None,
        log_path: Optional[Path] = None,
    ) -> CommandResult:
        """Run ``argv`` to completion (or until ``timeout``) and capture output.

        With ``log_path`` the combined output is streamed to that file instead
        of being kept in memory; the result then carries empty stdout/stderr.
        """
        argv = [str(a) for a in argv]
        log.debug(f"exec: {' '.join(argv)}" + (f" (timeout {timeout:.0f}s)" if timeout else ""))

        if log_path is not None:
            with open(log_path, "w") as out:
                return self._run(argv, timeout, cwd, stdout=out, stderr=subprocess.STDOUT)
        return self._run(argv, timeout, cwd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    def _run(self, argv: List[str], timeout, cwd, stdout, stderr) -> CommandResult:
        try:
            proc = subprocess.Popen(
                argv,
                stdout=stdout,
                stderr=stderr,
                stdin=subprocess.DEVNULL,
                cwd=cwd,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except FileNotFoundError:
            return CommandResult(argv, None, missing=True)
        except PermissionError as e:
            return CommandResult(argv, None, stderr=str(e))

        try:
            out, err = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            terminate_process_group(proc, self.kill_grace)
            out, err = proc.communicate()
            log.warning(f"{argv[0]} exceeded {timeout:.0f}s and was stopped")
            return CommandResult(argv, proc.returncode, out or "", err or "", timed_out=True)
        except BaseException:
            terminate_process_group(proc, self.kill_grace)
            raise

        if proc.returncode != 0:
            log.debug(f"{argv[0]} exited with {proc.returncode}")
        return CommandResult(argv, proc.returncode, out or "", err or "")
