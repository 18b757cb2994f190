"""
Host tuning — huge-page reservation and TCP sysctls.

Settings go into one drop-in file, ``<sysctl_dir>/99-<service>.conf``,
so they survive reboots and uninstall can remove exactly what install
added.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.features import FeatureFlags
from provisioner.core.models.target import InstallTarget
from provisioner.core.services.probe.linux import HostPaths

logger = logging.getLogger(__name__)

SYSCTL_DIR = Path("/etc/sysctl.d")

# 2 MB pages
HUGE_PAGES_COUNT = 1024

TCP_SYSCTLS: dict[str, str] = {
    "net.ipv4.tcp_tw_reuse": "1",
    "net.ipv4.tcp_fin_timeout": "30",
    "net.core.somaxconn": "4096",
    "net.ipv4.tcp_max_syn_backlog": "8192",
    "net.core.netdev_max_backlog": "5000",
    "net.ipv4.tcp_keepalive_time": "600",
    "net.ipv4.tcp_keepalive_intvl": "30",
    "net.ipv4.tcp_keepalive_probes": "3",
}


@dataclass
class TuningOutcome:
    """What ``apply_tuning`` changed on the host."""

    path: Path | None = None
    params: dict[str, str] = field(default_factory=dict)
    huge_pages_reserved: int | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def huge_pages_short(self) -> bool:
        """Fewer huge pages than requested were actually reserved."""
        return (
            "vm.nr_hugepages" in self.params
            and (self.huge_pages_reserved or 0) < HUGE_PAGES_COUNT
        )


def dropin_path(target: InstallTarget, sysctl_dir: Path = SYSCTL_DIR) -> Path:
    return Path(sysctl_dir) / f"99-{target.service_name}.conf"


def tuning_params(flags: FeatureFlags) -> dict[str, str]:
    params: dict[str, str] = {}
    if flags.enable_huge_pages:
        params["vm.nr_hugepages"] = str(HUGE_PAGES_COUNT)
    if flags.tcp_tuning:
        params.update(TCP_SYSCTLS)
    return params


def render_dropin(target: InstallTarget, params: dict[str, str]) -> str:
    lines = [f"# {target.service_name} kernel tuning, managed by mikudb-provision"]
    lines += [f"{key} = {value}" for key, value in params.items()]
    return "\n".join(lines) + "\n"


def read_reserved_huge_pages(paths: HostPaths) -> int | None:
    try:
        return int(paths.nr_hugepages.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def apply_tuning(
    target: InstallTarget,
    flags: FeatureFlags,
    *,
    adapter: HostAdapter,
    sysctl_dir: Path = SYSCTL_DIR,
    paths: HostPaths | None = None,
) -> TuningOutcome:
    """Write the sysctl drop-in and load it.

    Returns an empty outcome when no tuning flag is set. Failures to
    load values are warnings; failing to write the drop-in raises OSError.
    """
    params = tuning_params(flags)
    outcome = TuningOutcome(params=params)
    if not params:
        logger.debug("No kernel tuning requested")
        return outcome

    path = dropin_path(target, sysctl_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(render_dropin(target, params), encoding="utf-8")
    os.replace(tmp, path)
    outcome.path = path
    logger.info("Wrote kernel tuning to %s", path)

    loaded = adapter.run(["sysctl", "-p", str(path)], timeout=30)
    if not loaded.ok:
        outcome.warnings.append(f"sysctl -p {path} failed: {loaded.error}")

    if "vm.nr_hugepages" in params:
        outcome.huge_pages_reserved = read_reserved_huge_pages(paths or HostPaths())
        if outcome.huge_pages_short:
            outcome.warnings.append(
                f"only {outcome.huge_pages_reserved or 0} of {HUGE_PAGES_COUNT} "
                "huge pages could be reserved"
            )
        else:
            logger.info("Reserved %d huge pages", outcome.huge_pages_reserved)
    return outcome


def remove_tuning(
    target: InstallTarget,
    *,
    adapter: HostAdapter,
    sysctl_dir: Path = SYSCTL_DIR,
) -> list[str]:
    """Remove the drop-in and release reserved huge pages. Returns warnings."""
    path = dropin_path(target, sysctl_dir)
    if not path.exists():
        return []

    warnings: list[str] = []
    had_huge_pages = "vm.nr_hugepages" in path.read_text(encoding="utf-8")
    path.unlink()
    logger.info("Removed kernel tuning %s", path)

    if had_huge_pages:
        released = adapter.run(["sysctl", "-w", "vm.nr_hugepages=0"], timeout=30)
        if not released.ok:
            warnings.append(f"cannot release huge pages: {released.error}")
    return warnings
