"""
Feature resolver — map host capabilities plus user overrides to flags.

Pure and deterministic: no I/O, no logging side effects beyond the
forced-flag notices. Resolution order per flag:

    1. explicit disable   → off, silently
    2. explicit enable    → on, recorded in ``forced`` with a warning
                            (whether or not the host supports it)
    3. auto               → on iff the capability predicate holds,
                            otherwise off with a warning
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from provisioner.core.models.features import FeatureFlags, FeatureOverrides
from provisioner.core.models.host import Architecture, HostCapabilities

logger = logging.getLogger(__name__)


# ── Capability predicates ───────────────────────────────────────


def _huge_pages_supported(caps: HostCapabilities) -> bool:
    return caps.huge_pages_available and caps.arch is not Architecture.OTHER


def _numa_supported(caps: HostCapabilities) -> bool:
    return caps.numa_nodes > 1 and caps.arch is not Architecture.OTHER


def _async_io_supported(caps: HostCapabilities) -> bool:
    # an unknown kernel version counts as supported; only a known-old kernel rules it out
    return caps.os_family.is_linux and caps.io_uring_supported is not False


def _tcp_tuning_supported(caps: HostCapabilities) -> bool:
    return caps.os_family.is_linux


# flag name → (override field, predicate, reason shown when unavailable)
_FLAGS: dict[str, tuple[str, Callable[[HostCapabilities], bool], str]] = {
    "enable_huge_pages": ("huge_pages", _huge_pages_supported, "huge pages unavailable on this host"),
    "enable_numa": ("numa", _numa_supported, "host has a single NUMA node"),
    "enable_async_io": ("async_io", _async_io_supported, "kernel lacks io_uring (needs Linux 5.1+)"),
    "tcp_tuning": ("tcp_tuning", _tcp_tuning_supported, "TCP tuning is Linux-only"),
}

_LINUX_ONLY = frozenset({"enable_async_io", "tcp_tuning"})

_LABELS = {
    "enable_huge_pages": "huge pages",
    "enable_numa": "NUMA binding",
    "enable_async_io": "async IO",
    "tcp_tuning": "TCP tuning",
}


def _unavailable_reason(flag: str, caps: HostCapabilities, default: str) -> str:
    if flag in ("enable_huge_pages", "enable_numa") and caps.arch is Architecture.OTHER:
        return "architecture not recognized"
    return default


def resolve(caps: HostCapabilities, overrides: FeatureOverrides | None = None) -> FeatureFlags:
    """Resolve the feature flags for one provisioning run."""
    overrides = overrides or FeatureOverrides()
    values: dict[str, bool] = {}
    forced: list[str] = []
    warnings: list[str] = []

    for flag, (field, predicate, reason) in _FLAGS.items():
        requested = getattr(overrides, field)
        supported = predicate(caps)
        label = _LABELS[flag]

        if requested is False:
            values[flag] = False
        elif requested is True:
            values[flag] = True
            forced.append(flag)
            msg = f"{label} forced on"
            if not supported:
                msg += f" ({_unavailable_reason(flag, caps, reason)})"
            logger.warning("Feature %s", msg)
            warnings.append(msg)
        elif supported:
            values[flag] = True
        else:
            values[flag] = False
            # Linux-only features on Windows are expected off, not a degradation
            if flag in _LINUX_ONLY and not caps.os_family.is_linux:
                continue
            warnings.append(f"{label} disabled: {_unavailable_reason(flag, caps, reason)}")

    numa_node: int | None = None
    if values["enable_numa"]:
        numa_node = overrides.numa_node if overrides.numa_node is not None else 0
        if numa_node >= caps.numa_nodes:
            warnings.append(
                f"NUMA node {numa_node} out of range (host has {caps.numa_nodes}); keeping it"
            )

    cpu_affinity: tuple[int, ...] = ()
    if overrides.cpu_affinity:
        cpu_affinity = tuple(dict.fromkeys(overrides.cpu_affinity))
        forced.append("cpu_affinity")
        msg = f"CPU affinity forced to {','.join(map(str, cpu_affinity))}"
        logger.warning("Feature %s", msg)
        warnings.append(msg)
        beyond = [core for core in cpu_affinity if core >= caps.cpu_count]
        if beyond:
            warnings.append(
                f"CPU affinity lists core(s) {','.join(map(str, beyond))} "
                f"beyond the {caps.cpu_count} detected CPU(s)"
            )

    return FeatureFlags(
        enable_huge_pages=values["enable_huge_pages"],
        enable_numa=values["enable_numa"],
        numa_node=numa_node,
        enable_async_io=values["enable_async_io"],
        cpu_affinity=cpu_affinity,
        tcp_tuning=values["tcp_tuning"],
        forced=tuple(forced),
        warnings=tuple(warnings),
    )
