import csv

import pytest

from conftest import read_rows
from hwcheck.core.errors import SinkUnavailable
from hwcheck.core.sink import (
    DRIVE_HEALTH_HEADER,
    INVENTORY_HEADER,
    CsvSink,
    DriveHealthRow,
    InventoryRow,
    clean_field,
)


def test_header_written_once_before_rows(tmp_path):
    with CsvSink.create(tmp_path, "inv", INVENTORY_HEADER, host="h", timestamp="t") as sink:
        sink.write(InventoryRow("h", "CPU", details="x"))
        sink.write(InventoryRow("h", "RAM_1", details="y"))

    rows = read_rows(sink.path)
    assert rows[0] == list(INVENTORY_HEADER)
    assert [r[1] for r in rows[1:]] == ["CPU", "RAM_1"]
    assert sum(1 for r in rows if r == list(INVENTORY_HEADER)) == 1
    assert sink.rows_written == 2


def test_file_name_embeds_host_and_timestamp(tmp_path):
    sink = CsvSink.create(tmp_path, "system_inventory", INVENTORY_HEADER,
                          host="ws01", timestamp="2024-05-01_101500")
    sink.close()
    assert sink.path.name == "system_inventory_ws01_2024-05-01_101500.csv"


def test_hostile_text_survives_reparse(tmp_path):
    nasty = 'Model "X", rev 2\nline two\r\nMax 62°C'
    with CsvSink.create(tmp_path, "inv", INVENTORY_HEADER, host="h", timestamp="t") as sink:
        sink.append("h", "GPU_1", "", nasty, "N/A", "N/A", 'a,"b"')

    with open(sink.path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert len(rows) == 2
    assert rows[1][3] == 'Model "X", rev 2 line two Max 62°C'
    assert rows[1][6] == 'a,"b"'
    assert len(sink.path.read_text(encoding="utf-8").splitlines()) == 2


def test_field_count_is_enforced(tmp_path):
    with CsvSink.create(tmp_path, "inv", INVENTORY_HEADER, host="h", timestamp="t") as sink:
        with pytest.raises(ValueError):
            sink.append("too", "few")
    assert sink.rows_written == 0


def test_existing_file_is_never_reused(tmp_path):
    first = CsvSink.create(tmp_path, "inv", INVENTORY_HEADER, host="h", timestamp="t")
    second = CsvSink.create(tmp_path, "inv", INVENTORY_HEADER, host="h", timestamp="t")
    first.close()
    second.close()
    assert first.path.name == "inv_h_t.csv"
    assert second.path.name == "inv_h_t-1.csv"


def test_unwritable_directory_is_fatal(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    with pytest.raises(SinkUnavailable):
        CsvSink.create(blocker / "out", "inv", INVENTORY_HEADER, host="h", timestamp="t")


def test_write_after_close_is_fatal(tmp_path):
    sink = CsvSink.create(tmp_path, "inv", INVENTORY_HEADER, host="h", timestamp="t")
    sink.close()
    with pytest.raises(SinkUnavailable):
        sink.write(InventoryRow("h", "CPU"))


def test_drive_health_rows(tmp_path):
    with CsvSink.create(tmp_path, "drive_health", DRIVE_HEALTH_HEADER, host="h", timestamp="t") as sink:
        sink.write(DriveHealthRow("h", "/dev/sdb", "Surface", "scan", "badblocks", "Pass"))
    rows = read_rows(sink.path)
    assert rows[0] == list(DRIVE_HEALTH_HEADER)
    assert rows[1] == ["h", "/dev/sdb", "Surface", "scan", "badblocks", "Pass", ""]


def test_clean_field():
    assert clean_field(None) == ""
    assert clean_field("a\n  b\r\nc") == "a b c"
    assert clean_field(42) == "42"
