"""
Windows probe — memory via PowerShell CIM, everything else conservative.

Windows hosts get no huge-page reservation, no NUMA pinning and no
io_uring: the server runs with portable defaults there.
"""

from __future__ import annotations

import logging

from provisioner.core.models.host import HostCapabilities, OSFamily
from provisioner.core.services.probe.base import PlatformProbe

logger = logging.getLogger(__name__)

_MEMORY_QUERY = "(Get-CimInstance Win32_ComputerSystem).TotalPhysicalMemory"
_CPU_QUERY = "(Get-CimInstance Win32_Processor | Select-Object -First 1).Name"


class WindowsProbe(PlatformProbe):
    os_family = OSFamily.WINDOWS

    def _powershell(self, query: str) -> str | None:
        shell = "pwsh" if self.adapter.has_tool("pwsh") else "powershell"
        receipt = self.adapter.run([shell, "-NoProfile", "-Command", query], timeout=30)
        if not receipt.ok:
            return None
        return receipt.output.strip() or None

    def probe(self) -> HostCapabilities:
        self._warnings = []
        arch = self.detect_arch()

        total_memory = 0
        raw = self._powershell(_MEMORY_QUERY)
        if raw is not None and raw.isdigit():
            total_memory = int(raw)
        else:
            self.degrade("cannot read total physical memory")

        caps = HostCapabilities(
            os_family=self.os_family,
            arch=arch,
            total_memory=total_memory,
            numa_nodes=1,
            huge_pages_available=False,
            cpu_count=max(self._cpu_count, 1),
            io_uring_supported=False,
            distro="windows",
            cpu_model=self._powershell(_CPU_QUERY) or "",
            probe_warnings=self.warnings,
        )
        logger.info(
            "Host: windows/%s, %d MB RAM", caps.arch.value, caps.total_memory // (1024 * 1024),
        )
        return caps
