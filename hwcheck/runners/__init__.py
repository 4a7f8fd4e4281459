"""
Capability checks for the inventory run.

Each module holds one class per hardware area. A check method takes no
arguments, reads the shared RunContext and appends its rows to the sink:

    system.SystemChecks     System, MCE, Motherboard
    cpu.CPUChecks           CPU stress/temperature, CPU_Throttling
    memory.MemoryChecks     RAM_n, Memory_Test
    gpu.GPUChecks           GPU_n, GPU_AMD
    storage.StorageChecks   Storage_n, SMART snapshot/self-test, Storage_FS
    network.NetworkChecks   Network_n, Net_Link, Net_Throughput
    peripherals.PeripheralChecks  PCIe, Cooling, Security, USB, PSU, Chassis
"""

from hwcheck.runners.context import RunContext

__all__ = ["RunContext"]
