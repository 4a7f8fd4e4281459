import json

from hwcheck import parsers

DMIDECODE_MEMORY = """\
# dmidecode 3.3
Getting SMBIOS data from sysfs.
SMBIOS 3.2.0 present.

Handle 0x0040, DMI type 17, 40 bytes
Memory Device
	Array Handle: 0x003F
	Total Width: 64 bits
	Size: 16 GB
	Locator: DIMM_A1
	Bank Locator: BANK 0
	Type: DDR4
	Speed: 3200 MT/s
	Manufacturer: Samsung
	Serial Number: 0001AAAA

Handle 0x0041, DMI type 17, 40 bytes
Memory Device
	Array Handle: 0x003F
	Size: No Module Installed
	Locator: DIMM_A2
	Type: Unknown
	Speed: Unknown

Handle 0x0042, DMI type 17, 40 bytes
Memory Device
	Size: 16 GB
	Locator: DIMM_B1
	Type: DDR4
	Speed: 3200 MT/s
	Manufacturer: Samsung
	Serial Number: 0001BBBB

Handle 0x0043, DMI type 17, 40 bytes
Memory Device
	Size: No Module Installed
	Locator: DIMM_B2

Handle 0x0044, DMI type 17, 40 bytes
Memory Device
	Size: 32768 MB
	Locator: DIMM_C1
	Type: DDR4
	Speed: 2933 MT/s
	Manufacturer: Micron
	Serial Number: 0001CCCC
"""

SENSORS = """\
coretemp-isa-0000
Adapter: ISA adapter
Package id 0:  +62.0°C  (high = +80.0°C, crit = +100.0°C)
Core 0:        +58.5°C  (high = +80.0°C, crit = +100.0°C)
Core 1:        +61.0°C  (high = +80.0°C, crit = +100.0°C)

nct6798-isa-0290
fan1:         1250 RPM  (min =    0 RPM)
fan2:            0 RPM  (min =    0 RPM)
SYSTIN:                 +33.0°C  (high = +80.0°C, hyst = +75.0°C)  sensor = thermistor
"""

TURBOSTAT = """\
Busy%\tBzy_MHz\tPkg_J\tPkgWatt
99.50\t4200\t110.25\t110.2
98.50\t4150\t108.75\t108.7
"""

LSPCI_VV = """\
01:00.0 VGA compatible controller: NVIDIA Corporation GA104GL [RTX A4000] (rev a1)
	Capabilities: [78] Express (v2) Legacy Endpoint, MSI 00
		LnkCap:	Port #0, Speed 16GT/s, Width x16, ASPM L0s L1
		LnkSta:	Speed 8GT/s (downgraded), Width x16
"""


def test_memory_parser_counts_installed_modules_only():
    modules = parsers.parse_memory_devices(DMIDECODE_MEMORY)
    assert [m.locator for m in modules] == ["DIMM_A1", "DIMM_B1", "DIMM_C1"]
    assert modules[0].details() == (
        "Size: 16 GB; Speed: 3200 MT/s; Type: DDR4; Locator: DIMM_A1; "
        "Manufacturer: Samsung; Serial: 0001AAAA"
    )
    assert modules[2].size == "32768 MB"


def test_memory_parser_empty_input():
    assert parsers.parse_memory_devices("") == []
    assert parsers.parse_memory_devices("Memory Device\n\tSize: No Module Installed\n") == []


def test_memtest_size_is_a_quarter_of_available_with_floor():
    assert parsers.memtest_size_mb("MemAvailable:   16777216 kB\n") == 4096
    assert parsers.memtest_size_mb("MemAvailable:   524288 kB\n") == 256
    assert parsers.memtest_size_mb("") == 256


def test_sensor_temperatures_ignore_thresholds():
    temps = parsers.parse_sensor_temperatures(SENSORS)
    assert temps == [62.0, 58.5, 61.0, 33.0]
    assert parsers.max_temperature(temps) == 62.0
    assert parsers.max_temperature([]) is None


def test_format_temperature():
    assert parsers.format_temperature(62.0) == "62°C"
    assert parsers.format_temperature(62.5) == "62.5°C"
    assert parsers.format_temperature(None) == "N/A"


def test_turbostat_summary():
    summary = parsers.parse_turbostat(TURBOSTAT)
    assert summary.samples == 2
    assert summary.details() == "PkgJoules:219.0; Busy%:99.00"
    assert parsers.parse_turbostat("garbage").details() == "PkgJoules:Unknown; Busy%:Unknown"


def test_throttle_events():
    dmesg = (
        "[ 10.0] usb 1-1: new device\n"
        "[ 99.1] CPU0: Core temperature above threshold, cpu clock throttled\n"
        "[ 99.2] mce: CPU0: Package temperature/speed normal\n"
    )
    assert parsers.find_throttle_events(dmesg) == [
        "[ 99.1] CPU0: Core temperature above threshold, cpu clock throttled"
    ]


def test_lsblk_mountpoints_walks_children():
    text = json.dumps({"blockdevices": [{
        "name": "sda", "mountpoint": None,
        "children": [
            {"name": "sda1", "mountpoint": "/boot/efi"},
            {"name": "sda2", "mountpoint": None,
             "children": [{"name": "vg-root", "mountpoints": ["/", None]}]},
        ],
    }]})
    assert parsers.lsblk_mountpoints(parsers.parse_lsblk_json(text)) == ["/boot/efi", "/"]
    assert parsers.parse_lsblk_json("not json") == []


def test_lsblk_disks_filter():
    devices = [{"name": "sda", "type": "disk"}, {"name": "loop0", "type": "loop"}]
    assert parsers.lsblk_disks(devices) == [{"name": "sda", "type": "disk"}]


def test_smart_health_variants():
    assert parsers.parse_smart_health(
        "SMART overall-health self-assessment test result: PASSED\n") == "PASSED"
    assert parsers.parse_smart_health("SMART Health Status: OK\n") == "OK"
    assert parsers.parse_smart_health("Permission denied") is None


def test_throughput_parsers():
    assert parsers.parse_hdparm_read(
        " Timing buffered disk reads: 1536 MB in  3.00 seconds = 511.75 MB/sec\n") == "511.75 MB/sec"
    assert parsers.parse_dd_rate(
        "1+0 records in\n1+0 records out\n"
        "268435456 bytes (268 MB, 256 MiB) copied, 0.512 s, 524 MB/s\n") == "524 MB/s"
    fio = (
        "Run status group 0 (all jobs):\n"
        "   READ: bw=120MiB/s (126MB/s), 120MiB/s-120MiB/s, io=3600MiB\n"
        "  WRITE: bw=119MiB/s (125MB/s), 119MiB/s-119MiB/s, io=3570MiB\n"
    )
    assert parsers.parse_fio_bandwidth(fio) == ["READ bw=120MiB/s (126MB/s)", "WRITE bw=119MiB/s (125MB/s)"]


def test_self_test_status():
    running = "Self-test execution status:      ( 249)\tSelf-test routine in progress...\n"
    assert parsers.self_test_in_progress(running)
    assert not parsers.self_test_in_progress(
        "Self-test execution status:      (   0)\tThe previous self-test routine completed\n")

    report = (
        "Self-test execution status:      (   0)\tThe previous self-test routine completed\n"
        "SMART Self-test log structure revision number 1\n"
        "# 1  Extended offline    Completed without error       00%      1234         -\n"
    )
    excerpt = parsers.self_test_log_excerpt(report)
    assert "Completed without error" in excerpt
    assert parsers.self_test_log_excerpt("") is None


def test_smart_key_lines():
    text = (
        "Device Model:     Samsung SSD 870 EVO 1TB\n"
        "Serial Number:    S1234\n"
        "  9 Power_On_Hours          0x0032   099   099   000    Old_age   Always       -       1234\n"
        "Unrelated line\n"
    )
    lines = parsers.smart_key_lines(text)
    assert len(lines) == 3
    assert lines[0] == "Device Model: Samsung SSD 870 EVO 1TB"


def test_nvme_logs():
    smart_log = (
        "Smart Log for NVME device:nvme0n1 namespace-id:ffffffff\n"
        "critical_warning                        : 0\n"
        "temperature                             : 38 C\n"
        "percentage_used                         : 2%\n"
        "media_errors                            : 0\n"
        "data_units_read                         : 1,234\n"
    )
    assert parsers.parse_nvme_smart_log(smart_log) == [
        "critical_warning:0", "temperature:38 C", "percentage_used:2%", "media_errors:0",
    ]
    error_log = "error_count : 0\nerror_count : 3\nerror_count : 1\n"
    assert parsers.count_nvme_errors(error_log) == 2


def test_ethtool_link():
    up = "Settings for eno1:\n\tSpeed: 1000Mb/s\n\tDuplex: Full\n"
    down = "Settings for eno2:\n\tSpeed: Unknown!\n\tDuplex: Unknown! (255)\n"
    assert parsers.parse_ethtool_link(up) == ("1000Mb/s", "Full")
    assert parsers.parse_ethtool_link(down) == (None, None)


def test_iperf_json():
    payload = json.dumps({"end": {"sum_received": {"bits_per_second": 9.41e9}}})
    assert parsers.parse_iperf_json(payload) == "9410 Mbits/sec"
    assert parsers.parse_iperf_json('{"error": "unable to connect"}') is None


def test_pcie_selection_and_link_status():
    lspci = (
        "00:14.0 USB controller: Intel Corporation Device 43ed\n"
        "01:00.0 VGA compatible controller: NVIDIA Corporation GA104GL\n"
        "02:00.0 Non-Volatile memory controller: Samsung Electronics NVMe SSD\n"
        "03:00.0 Ethernet controller: Intel Corporation I210\n"
    )
    slots = [slot for slot, _ in parsers.select_pcie_devices(lspci)]
    assert slots == ["01:00.0", "02:00.0", "03:00.0"]
    assert parsers.parse_link_status(LSPCI_VV) == "Speed 8GT/s, Width x16 (downgraded)"
    assert parsers.parse_link_status("no capabilities") is None


def test_pcie_selection_includes_display_and_accelerators():
    lspci = (
        "00:02.0 Display controller: Intel Corporation Alder Lake-S GT1\n"
        "00:1f.3 Audio device: Intel Corporation Device 7ad0\n"
        "41:00.0 Processing accelerators: Habana Labs Ltd. Gaudi2\n"
    )
    slots = [slot for slot, _ in parsers.select_pcie_devices(lspci)]
    assert slots == ["00:02.0", "41:00.0"]


def test_fan_lines():
    assert parsers.parse_fan_lines(SENSORS) == ["fan1: 1250 RPM (min = 0 RPM)", "fan2: 0 RPM (min = 0 RPM)"]


def test_secure_boot_var():
    assert parsers.parse_secure_boot_var(b"\x06\x00\x00\x00\x01") is True
    assert parsers.parse_secure_boot_var(b"\x06\x00\x00\x00\x00") is False
    assert parsers.parse_secure_boot_var(b"") is None


def test_gpu_parsers():
    listing = (
        "GPU 0: NVIDIA RTX A4000 (UUID: GPU-1111)\n"
        "GPU 1: NVIDIA RTX A4000 (UUID: GPU-2222)\n"
    )
    assert len(parsers.parse_gpu_list(listing)) == 2
    assert parsers.parse_gpu_temperatures("0, 45\n1, 71\n[N/A]\n") == {0: 45.0, 1: 71.0}
    burn_log = "Tested 2 GPUs:\n\tGPU 0: OK\n\tGPU 1: FAULTY\n"
    assert parsers.parse_gpu_burn_verdicts(burn_log) == {0: "OK", 1: "FAULTY"}
    assert parsers.parse_persistence_mode("    Persistence Mode                  : Enabled\n") == "Enabled"


def test_os_release_and_cpu_model():
    assert parsers.parse_os_release('NAME="Ubuntu"\nPRETTY_NAME="Ubuntu 22.04.4 LTS"\n') == "Ubuntu 22.04.4 LTS"
    assert parsers.parse_lscpu_model("Model name:            AMD Ryzen 9 7950X\n") == "AMD Ryzen 9 7950X"
    assert parsers.parse_cpuinfo_model("model name\t: Intel(R) Xeon(R) W-2245\n") == "Intel(R) Xeon(R) W-2245"
