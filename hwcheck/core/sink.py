"""
sink.py

Append-only CSV sink for inventory and drive-health rows.

The file is created exclusively (an existing file is never reused), the
header is written once, and every row is flushed and fsync'ed on its own
so a crash loses at most the row being written.
"""

import csv
import logging
import os
import re
import socket
from dataclasses import astuple, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

from hwcheck.core.errors import SinkUnavailable

log = logging.getLogger(__name__)

INVENTORY_HEADER = (
    "System_Identifier", "Component_Type", "Part_ID", "Details",
    "Test_Performed", "Result_Score", "Notes",
)

DRIVE_HEALTH_HEADER = (
    "System_Identifier", "Device", "Phase", "Details", "Test", "Result", "Notes",
)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"

_LINE_BREAKS = re.compile(r"\s*[\r\n]+\s*")


@dataclass(frozen=True)
class InventoryRow:
    """One observation in the system inventory."""
    system_identifier: str
    component_type: str
    part_id: str = ""
    details: str = ""
    test_performed: str = ""
    result_score: str = ""
    notes: str = ""


@dataclass(frozen=True)
class DriveHealthRow:
    """One phase outcome of the destructive drive test."""
    system_identifier: str
    device: str
    phase: str
    details: str = ""
    test: str = ""
    result: str = ""
    notes: str = ""


def hostname() -> str:
    return socket.gethostname() or "unknown-host"


def run_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def clean_field(value: Any) -> str:
    """Collapse line breaks so each record stays on one physical line."""
    if value is None:
        return ""
    return _LINE_BREAKS.sub(" ", str(value)).strip()


class CsvSink:
    """Exclusive-create, append-only CSV writer with a fixed header."""

    def __init__(self, path: Path, header: Sequence[str]):
        self.path = Path(path)
        self.header = tuple(header)
        self.rows_written = 0
        self._file: Optional[TextIO] = None
        self._writer = None

    @classmethod
    def create(cls, directory: Path, prefix: str, header: Sequence[str],
               host: Optional[str] = None, timestamp: Optional[str] = None) -> "CsvSink":
        """Open ``<prefix>_<host>_<timestamp>.csv`` in ``directory``, adding a
        numeric suffix if a run in the same second already claimed the name."""
        host = host or hostname()
        timestamp = timestamp or run_timestamp()
        stem = f"{prefix}_{host}_{timestamp}"

        for attempt in range(100):
            name = f"{stem}.csv" if attempt == 0 else f"{stem}-{attempt}.csv"
            sink = cls(Path(directory) / name, header)
            try:
                sink.open()
                return sink
            except FileExistsError:
                continue
        raise SinkUnavailable(f"Could not find a free file name for {stem}.csv in {directory}")

    def open(self) -> "CsvSink":
        """Create the file and write the header. FileExistsError is left to the caller."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "x", newline="", encoding="utf-8")
        except FileExistsError:
            raise
        except OSError as e:
            raise SinkUnavailable(f"Cannot create {self.path}: {e}") from e

        self._writer = csv.writer(self._file, quoting=csv.QUOTE_ALL, lineterminator="\n")
        self._write(self.header)
        return self

    def append(self, *values: Any) -> None:
        """Write one record. The field count must match the header."""
        if len(values) != len(self.header):
            raise ValueError(f"Expected {len(self.header)} fields, got {len(values)}")
        self._write([clean_field(v) for v in values])
        self.rows_written += 1

    def write(self, row) -> None:
        """Write an InventoryRow or DriveHealthRow."""
        self.append(*astuple(row))

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None

    def __enter__(self) -> "CsvSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _write(self, values: Sequence[str]) -> None:
        if self._file is None:
            raise SinkUnavailable(f"{self.path} is not open")
        try:
            self._writer.writerow(values)
            self._file.flush()
            os.fsync(self._file.fileno())
        except OSError as e:
            raise SinkUnavailable(f"Write to {self.path} failed: {e}") from e
