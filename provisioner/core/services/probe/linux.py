"""
Linux probes — /proc, /sys and os-release readers.

Read-only probes: /proc/meminfo, /proc/cpuinfo, /etc/os-release,
/sys/devices/system/node, /proc/sys/vm/nr_hugepages, numactl.

``GenericLinuxProbe`` counts NUMA nodes from sysfs. ``NumaLinuxProbe``
is used on NUMA-optimized distributions (openEuler) and asks numactl,
installing it through the package manager when it is missing.
"""

from __future__ import annotations

import logging
import platform
import re
from dataclasses import dataclass
from pathlib import Path

import distro

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.host import HostCapabilities, OSFamily
from provisioner.core.services.probe.base import PlatformProbe

logger = logging.getLogger(__name__)

# os-release IDs that get the NUMA-optimized flow
NUMA_OPTIMIZED_DISTROS = frozenset({"openeuler"})

# Package managers tried, in order, to install detection helpers
_PACKAGE_MANAGERS: tuple[tuple[str, list[str]], ...] = (
    ("dnf", ["dnf", "install", "-y"]),
    ("yum", ["yum", "install", "-y"]),
    ("apt-get", ["apt-get", "install", "-y"]),
    ("zypper", ["zypper", "--non-interactive", "install"]),
)


@dataclass(frozen=True)
class HostPaths:
    """Filesystem locations the Linux probes read, relative to ``root``."""

    root: Path = Path("/")

    @property
    def meminfo(self) -> Path:
        return self.root / "proc" / "meminfo"

    @property
    def cpuinfo(self) -> Path:
        return self.root / "proc" / "cpuinfo"

    @property
    def os_release(self) -> Path:
        return self.root / "etc" / "os-release"

    @property
    def numa_nodes(self) -> Path:
        return self.root / "sys" / "devices" / "system" / "node"

    @property
    def nr_hugepages(self) -> Path:
        return self.root / "proc" / "sys" / "vm" / "nr_hugepages"


# ── Readers ─────────────────────────────────────────────────────


def read_meminfo(paths: HostPaths) -> dict[str, int] | None:
    """Parse /proc/meminfo into ``{key: value}`` (kB for sized keys)."""
    try:
        text = paths.meminfo.read_text(encoding="utf-8")
    except (OSError, ValueError):
        return None
    info: dict[str, int] = {}
    for line in text.splitlines():
        key, _, rest = line.partition(":")
        parts = rest.split()
        if parts and parts[0].isdecimal():
            info[key.strip()] = int(parts[0])
    return info


def read_os_release(paths: HostPaths) -> dict[str, str]:
    """os-release fields with lowercase keys (``id``, ``id_like``, ``name``); empty if unreadable."""
    info = distro.LinuxDistribution(root_dir=str(paths.root))
    return info.os_release_info()


def is_numa_optimized_distro(os_release: dict[str, str]) -> bool:
    ids = {os_release.get("id", "").lower()}
    ids.update(os_release.get("id_like", "").lower().split())
    name = os_release.get("name", "").lower()
    return bool(ids & NUMA_OPTIMIZED_DISTROS) or any(d in name for d in NUMA_OPTIMIZED_DISTROS)


def read_cpu_model(paths: HostPaths) -> str:
    """CPU model name from /proc/cpuinfo ("" if unknown)."""
    try:
        with paths.cpuinfo.open(encoding="utf-8") as f:
            for line in f:
                # x86 uses "model name"; aarch64 kernels may only expose "CPU implementer"
                if line.startswith("model name") or line.startswith("Model name"):
                    return line.split(":", 1)[1].strip()
    except (OSError, ValueError, IndexError):
        pass
    return ""


def count_sysfs_numa_nodes(paths: HostPaths) -> int | None:
    """Number of ``nodeN`` entries under /sys/devices/system/node."""
    try:
        nodes = [p for p in paths.numa_nodes.iterdir() if re.fullmatch(r"node\d+", p.name)]
    except OSError:
        return None
    return len(nodes) or None


def parse_numactl_hardware(output: str) -> int | None:
    """Extract the node count from ``numactl --hardware`` output."""
    m = re.search(r"available:\s*(\d+)\s+nodes?", output)
    return int(m.group(1)) if m else None


def kernel_supports_io_uring(release: str) -> bool | None:
    """io_uring landed in Linux 5.1. None if the release string is unparseable."""
    m = re.match(r"(\d+)\.(\d+)", release or "")
    if not m:
        return None
    major, minor = int(m.group(1)), int(m.group(2))
    return (major, minor) >= (5, 1)


# ── Probes ──────────────────────────────────────────────────────


class GenericLinuxProbe(PlatformProbe):
    """Probe for any Linux distribution."""

    os_family = OSFamily.GENERIC_LINUX

    def __init__(
        self,
        adapter: HostAdapter,
        *,
        paths: HostPaths | None = None,
        machine: str | None = None,
        cpu_count: int | None = None,
        kernel_release: str | None = None,
    ):
        super().__init__(adapter, machine=machine, cpu_count=cpu_count)
        self.paths = paths or HostPaths()
        self._release = kernel_release if kernel_release is not None else platform.release()

    def probe(self) -> HostCapabilities:
        self._warnings = []
        arch = self.detect_arch()
        os_release = read_os_release(self.paths)
        if not os_release:
            self.degrade(f"cannot read {self.paths.os_release}; distribution unknown")

        total_memory = 0
        huge_pages = False
        meminfo = read_meminfo(self.paths)
        if meminfo is None or "MemTotal" not in meminfo:
            self.degrade(f"cannot read total memory from {self.paths.meminfo}")
        else:
            total_memory = meminfo["MemTotal"] * 1024
            huge_pages = "Hugepagesize" in meminfo and self.paths.nr_hugepages.exists()

        io_uring = kernel_supports_io_uring(self._release)
        if io_uring is None:
            self.degrade(f"cannot parse kernel release {self._release!r}; io_uring support unknown")

        caps = HostCapabilities(
            os_family=self.os_family,
            arch=arch,
            total_memory=total_memory,
            numa_nodes=self.detect_numa_nodes(),
            huge_pages_available=huge_pages,
            cpu_count=max(self._cpu_count, 1),
            io_uring_supported=io_uring,
            distro=os_release.get("id", ""),
            cpu_model=read_cpu_model(self.paths),
            probe_warnings=self.warnings,
        )
        logger.info(
            "Host: %s/%s, %d MB RAM, %d NUMA node(s), huge pages %s, io_uring %s",
            caps.os_family.value, caps.arch.value, caps.total_memory // (1024 * 1024),
            caps.numa_nodes, "yes" if caps.huge_pages_available else "no",
            {True: "yes", False: "no"}.get(caps.io_uring_supported, "unknown"),
        )
        return caps

    def detect_numa_nodes(self) -> int:
        nodes = count_sysfs_numa_nodes(self.paths)
        if nodes is None:
            self.degrade("NUMA topology unavailable; assuming a single node")
            return 1
        return nodes


class NumaLinuxProbe(GenericLinuxProbe):
    """Probe for NUMA-optimized distributions, backed by numactl."""

    os_family = OSFamily.NUMA_LINUX

    def __init__(self, adapter: HostAdapter, *, install_helpers: bool = True, **kwargs):
        super().__init__(adapter, **kwargs)
        self.install_helpers = install_helpers

    def detect_numa_nodes(self) -> int:
        if not self.adapter.has_tool("numactl") and self.install_helpers:
            self._install_numactl()

        if self.adapter.has_tool("numactl"):
            receipt = self.adapter.run(["numactl", "--hardware"], timeout=10)
            nodes = parse_numactl_hardware(receipt.output) if receipt.ok else None
            if nodes:
                return nodes
            self.degrade("numactl --hardware gave no node count; falling back to sysfs")
        else:
            self.degrade("numactl not available; NUMA topology read from sysfs")

        return super().detect_numa_nodes()

    def _install_numactl(self) -> None:
        """Install numactl as a detection helper (idempotent, logged)."""
        for tool, cmd in _PACKAGE_MANAGERS:
            if not self.adapter.has_tool(tool):
                continue
            logger.warning("numactl not found, installing it with %s", tool)
            receipt = self.adapter.run([*cmd, "numactl"], timeout=300)
            if receipt.ok:
                logger.info("Installed numactl with %s", tool)
            else:
                self.degrade(f"installing numactl with {tool} failed: {receipt.error}")
            return
        self.degrade("no supported package manager found to install numactl")
