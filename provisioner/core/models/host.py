"""
HostCapabilities — facts about the machine being provisioned.

Produced once per run by the platform probe, read-only afterwards.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OSFamily(str, Enum):
    GENERIC_LINUX = "generic-linux"
    NUMA_LINUX = "numa-linux"
    WINDOWS = "windows"

    @property
    def is_linux(self) -> bool:
        return self in (OSFamily.GENERIC_LINUX, OSFamily.NUMA_LINUX)


class Architecture(str, Enum):
    X86_64 = "x86_64"
    AARCH64 = "aarch64"
    OTHER = "other"

    @classmethod
    def from_machine(cls, machine: str) -> Architecture:
        """Normalize a ``platform.machine()`` string."""
        value = (machine or "").strip().lower()
        if value in ("x86_64", "amd64", "x64"):
            return cls.X86_64
        if value in ("aarch64", "arm64", "armv8l"):
            return cls.AARCH64
        return cls.OTHER


class HostCapabilities(BaseModel):
    """Host facts consumed by the feature resolver and config generator."""

    model_config = ConfigDict(frozen=True)

    os_family: OSFamily
    arch: Architecture
    total_memory: int = Field(default=0, ge=0)  # bytes, 0 = unknown
    numa_nodes: int = Field(default=1, ge=1)
    huge_pages_available: bool = False
    cpu_count: int = Field(default=1, ge=1)
    io_uring_supported: bool | None = None  # None = kernel version not known
    distro: str = ""
    cpu_model: str = ""

    # DetectionDegraded notes from the probe
    probe_warnings: tuple[str, ...] = ()
