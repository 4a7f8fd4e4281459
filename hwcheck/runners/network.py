"""
network.py

Interface inventory from sysfs, ethtool link negotiation and an optional
iperf3 throughput run against a configured peer.
"""

import logging
from dataclasses import dataclass
from typing import List

from hwcheck.parsers import parse_ethtool_link, parse_iperf_json
from hwcheck.runners.context import RunContext

log = logging.getLogger(__name__)

NULL_MAC = "00:00:00:00:00:00"


@dataclass
class Interface:
    name: str
    mac: str
    state: str


class NetworkChecks:
    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def interfaces(self) -> List[Interface]:
        """Physical-looking interfaces: no loopback, no all-zero address."""
        ctx = self.ctx
        net = ctx.host_path("/sys/class/net")
        if not net.is_dir():
            return []

        found = []
        for entry in sorted(net.iterdir()):
            if entry.name == "lo":
                continue
            mac = (ctx.read_text(f"/sys/class/net/{entry.name}/address") or "").strip()
            if not mac or mac == NULL_MAC:
                continue
            state = (ctx.read_text(f"/sys/class/net/{entry.name}/operstate") or "").strip()
            found.append(Interface(entry.name, mac, state or "unknown"))
        return found

    def inventory(self):
        ctx = self.ctx
        interfaces = self.interfaces()
        if not interfaces:
            ctx.row("Network", "No network interfaces found", "N/A", "N/A")
            return

        for index, iface in enumerate(interfaces, start=1):
            if iface.state == "up":
                verdict = "Pass"
            elif iface.state == "unknown":
                verdict = "Unknown"
            else:
                verdict = "No link"
            ctx.row(f"Network_{index}",
                    f"IFACE: {iface.name}; MAC: {iface.mac}; State: {iface.state}",
                    "link state", verdict)

    def link(self):
        ctx = self.ctx
        if not ctx.has("ethtool"):
            ctx.skipped("Net_Link", "ethtool", "ethtool not available")
            return

        for iface in self.interfaces():
            result = ctx.run(["ethtool", iface.name], timeout=30)
            speed, duplex = parse_ethtool_link(result.stdout)
            ctx.row("Net_Link",
                    f"{iface.name} Speed:{speed or 'Unknown'} Duplex:{duplex or 'Unknown'}",
                    "ethtool", "OK" if speed else "N/A")

    def throughput(self):
        ctx = self.ctx
        server = ctx.config.iperf_server
        if not server or not ctx.config.extra_tests:
            return
        if not ctx.has("iperf3"):
            ctx.skipped("Net_Throughput", "iperf3", "iperf3 not available")
            return

        seconds = int(ctx.config.iperf_seconds)
        streams = ctx.config.iperf_streams
        log.info(f"  -> iperf3 to {server}, {streams} streams for {seconds}s")
        result = ctx.run(
            ["iperf3", "-c", server, "-t", str(seconds), "-P", str(streams), "-J"],
            timeout=seconds + 60,
        )
        rate = parse_iperf_json(result.stdout)
        ctx.row("Net_Throughput", f"to {server}", f"iperf3 -P{streams} -t{seconds}",
                rate or "N/A", "" if rate else result.describe())
