"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.core.config.units import GB
from provisioner.core.models.host import Architecture, HostCapabilities, OSFamily
from provisioner.core.models.target import InstallTarget
from provisioner.core.services.probe.linux import HostPaths
from provisioner.core.services.registrar import SystemdRegistrar

MEMINFO_16G = """\
MemTotal:       16777216 kB
MemFree:         8000000 kB
HugePages_Total:       0
Hugepagesize:       2048 kB
"""

OS_RELEASE_UBUNTU = 'NAME="Ubuntu"\nID=ubuntu\nVERSION_ID="22.04"\n'
OS_RELEASE_OPENEULER = 'NAME="openEuler"\nID="openEuler"\nVERSION_ID="22.03"\n'


def make_host_tree(
    root: Path,
    *,
    meminfo: str | None = MEMINFO_16G,
    os_release: str | None = OS_RELEASE_UBUNTU,
    numa_nodes: int = 1,
    hugepages: str | None = "0",
    cpuinfo: str = "processor\t: 0\nmodel name\t: Test CPU @ 3.00GHz\n",
) -> HostPaths:
    """Build a fake /proc, /sys and /etc tree under ``root``."""
    paths = HostPaths(root=root)
    paths.meminfo.parent.mkdir(parents=True, exist_ok=True)
    paths.cpuinfo.write_text(cpuinfo)
    if meminfo is not None:
        paths.meminfo.write_text(meminfo)
    if os_release is not None:
        paths.os_release.parent.mkdir(parents=True, exist_ok=True)
        paths.os_release.write_text(os_release)
    paths.numa_nodes.mkdir(parents=True, exist_ok=True)
    for i in range(numa_nodes):
        (paths.numa_nodes / f"node{i}").mkdir()
    (paths.numa_nodes / "possible").write_text(f"0-{max(numa_nodes - 1, 0)}\n")
    if hugepages is not None:
        paths.nr_hugepages.parent.mkdir(parents=True, exist_ok=True)
        paths.nr_hugepages.write_text(hugepages + "\n")
    return paths


@pytest.fixture
def target(tmp_path: Path) -> InstallTarget:
    """An install target rooted in a temporary directory."""
    return InstallTarget(
        install_dir=tmp_path / "bin",
        data_dir=tmp_path / "var" / "mikudb",
        config_dir=tmp_path / "etc" / "mikudb",
        windows=False,
    )


@pytest.fixture
def adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def unit_dir(tmp_path: Path) -> Path:
    return tmp_path / "systemd"


@pytest.fixture
def registrar(adapter: MockAdapter, unit_dir: Path) -> SystemdRegistrar:
    return SystemdRegistrar(adapter, unit_dir=unit_dir)


@pytest.fixture
def numa_caps() -> HostCapabilities:
    """A 4-node aarch64 server with huge pages and io_uring."""
    return HostCapabilities(
        os_family=OSFamily.NUMA_LINUX,
        arch=Architecture.AARCH64,
        total_memory=16 * GB,
        numa_nodes=4,
        huge_pages_available=True,
        cpu_count=8,
        io_uring_supported=True,
    )


@pytest.fixture
def generic_caps() -> HostCapabilities:
    """A single-node x86_64 host without huge pages."""
    return HostCapabilities(
        os_family=OSFamily.GENERIC_LINUX,
        arch=Architecture.X86_64,
        total_memory=8 * GB,
        numa_nodes=1,
        huge_pages_available=False,
        cpu_count=4,
        io_uring_supported=True,
    )


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    """Fake build output with both binaries."""
    out = tmp_path / "target" / "release"
    out.mkdir(parents=True)
    (out / "mikudb-server").write_text("#!/bin/sh\necho 'mikudb-server 0.1.0'\n")
    (out / "mikudb-cli").write_text("#!/bin/sh\n")
    return out


@pytest.fixture
def host_tree(tmp_path: Path):
    """Factory for a fake host filesystem (see ``make_host_tree``)."""

    def factory(**kwargs) -> HostPaths:
        return make_host_tree(tmp_path / "host", **kwargs)

    return factory
