"""
Platform probe — collect HostCapabilities for the current machine.

``probe()`` picks the OS-family adapter and never raises: anything it
cannot detect becomes a conservative default plus a warning.
"""

from __future__ import annotations

import logging
import sys

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.host import HostCapabilities
from provisioner.core.services.probe.base import PlatformProbe
from provisioner.core.services.probe.linux import (
    GenericLinuxProbe,
    HostPaths,
    NumaLinuxProbe,
    is_numa_optimized_distro,
    read_os_release,
)
from provisioner.core.services.probe.windows import WindowsProbe

logger = logging.getLogger(__name__)

__all__ = [
    "GenericLinuxProbe",
    "HostPaths",
    "NumaLinuxProbe",
    "PlatformProbe",
    "WindowsProbe",
    "probe",
    "select_probe",
]


def select_probe(
    adapter: HostAdapter,
    *,
    system: str | None = None,
    paths: HostPaths | None = None,
    install_helpers: bool = True,
    machine: str | None = None,
    cpu_count: int | None = None,
    release: str | None = None,
) -> PlatformProbe:
    """Pick the probe for this host's OS family."""
    system = system if system is not None else sys.platform
    if system.startswith("win"):
        return WindowsProbe(adapter, machine=machine, cpu_count=cpu_count)

    paths = paths or HostPaths()
    kwargs = dict(paths=paths, machine=machine, cpu_count=cpu_count, kernel_release=release)
    if not system.startswith("linux"):
        logger.warning("Unsupported platform %r, probing as generic Linux", system)
        return GenericLinuxProbe(adapter, **kwargs)

    if is_numa_optimized_distro(read_os_release(paths)):
        return NumaLinuxProbe(adapter, install_helpers=install_helpers, **kwargs)
    return GenericLinuxProbe(adapter, **kwargs)


def probe(adapter: HostAdapter, **kwargs) -> HostCapabilities:
    """Probe the host. See ``select_probe`` for the accepted overrides."""
    selected = select_probe(adapter, **kwargs)
    logger.debug("Probing with %r", selected)
    return selected.probe()
