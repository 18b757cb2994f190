"""
Platform probe contract — one adapter per OS family.

Probes READ host state and never fail: any fact they cannot determine
degrades to a conservative default plus a warning on the result.
"""

from __future__ import annotations

import logging
import os
import platform
from abc import ABC, abstractmethod

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.host import Architecture, HostCapabilities, OSFamily

logger = logging.getLogger(__name__)


class PlatformProbe(ABC):
    """Base class for per-OS probes."""

    os_family: OSFamily

    def __init__(
        self,
        adapter: HostAdapter,
        *,
        machine: str | None = None,
        cpu_count: int | None = None,
    ):
        self.adapter = adapter
        self._machine = machine if machine is not None else platform.machine()
        self._cpu_count = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        self._warnings: list[str] = []

    def degrade(self, message: str) -> None:
        """Record a detection that fell back to a conservative default."""
        logger.warning("Detection degraded: %s", message)
        self._warnings.append(message)

    def detect_arch(self) -> Architecture:
        arch = Architecture.from_machine(self._machine)
        if arch is Architecture.OTHER:
            self.degrade(
                f"unrecognized architecture {self._machine or 'unknown'!r}; "
                "architecture-specific optimizations disabled"
            )
        return arch

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(self._warnings)

    @abstractmethod
    def probe(self) -> HostCapabilities:
        """Collect host facts. MUST never raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} os_family={self.os_family.value!r}>"
