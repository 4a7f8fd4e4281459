"""
peripherals.py

PCIe link state, fans, Secure Boot/TPM, USB devices and the manual rows
that close every inventory.
"""

import logging
from typing import Optional

from hwcheck.parsers import (
    join_lines,
    parse_fan_lines,
    parse_link_status,
    parse_secure_boot_var,
    select_pcie_devices,
)
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)

EFI_GLOBAL_GUID = "8be4df61-93ca-11d2-aa0d-00e098032b8c"
EFIVARS = "/sys/firmware/efi/efivars"
TPM_NODES = ("/dev/tpmrm0", "/dev/tpm0")

MANUAL_ROWS = ("PSU", "Chassis")


class PeripheralChecks:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def pcie(self):
        ctx = self.ctx
        if not ctx.has("lspci"):
            ctx.skipped("PCIe", "lspci -vv", "lspci not available")
            return

        listing = ctx.run(["lspci"], timeout=30)
        for slot, description in select_pcie_devices(listing.stdout):
            verbose = ctx.run(["lspci", "-s", slot, "-vv"], timeout=30)
            ctx.row("PCIe", description, "lspci -vv", parse_link_status(verbose.stdout) or "Unknown")

    def cooling(self):
        ctx = self.ctx
        if not ctx.has("sensors"):
            ctx.skipped("Cooling", "sensors", "sensors not available")
            return
        fans = parse_fan_lines(ctx.run(["sensors"], timeout=30).stdout)
        ctx.row("Cooling", "; ".join(fans) or "No fan tachometer data", "sensors", "Collected")

    def secure_boot(self) -> str:
        """Enabled/Disabled from the EFI global SecureBoot variable."""
        ctx = self.ctx
        name = f"{EFIVARS}/SecureBoot-{EFI_GLOBAL_GUID}"
        if not ctx.exists(name):
            efivars = ctx.host_path(EFIVARS)
            matches = sorted(efivars.glob("SecureBoot-*")) if efivars.is_dir() else []
            if not matches:
                return "Unknown"
            name = f"{EFIVARS}/{matches[0].name}"

        enabled: Optional[bool] = parse_secure_boot_var(ctx.read_bytes(name) or b"")
        if enabled is None:
            return "Unknown"
        return "Enabled" if enabled else "Disabled"

    def security(self):
        ctx = self.ctx
        tpm = "Present" if any(ctx.exists(node) for node in TPM_NODES) else "Absent"
        ctx.row("Security", f"SecureBoot:{self.secure_boot()}; TPM:{tpm}", "sysfs", "Collected")

    def usb(self):
        ctx = self.ctx
        if not ctx.config.extra_tests:
            return
        if not ctx.has("lsusb"):
            ctx.skipped("USB", "lsusb", "lsusb not available")
            return
        result = ctx.run(["lsusb"], timeout=30)
        ctx.row("USB", join_lines(result.stdout) or "No USB devices listed", "lsusb",
                "Collected" if result.ok else "N/A")

    def placeholders(self):
        """Rows the technician completes by hand."""
        for component in MANUAL_ROWS:
            self.ctx.row(component, "N/A", "Visual Inspection", "Pass", "Enter model/serial manually")
