"""
Service registrar — create, replace and remove the supervisor unit.

Two implementations behind one contract:

    SystemdRegistrar         unit file + systemctl (Linux)
    WindowsServiceRegistrar  sc.exe (Windows Service Control Manager)

Registration is idempotent: an existing registration of the same name
is replaced without ever leaving the supervisor pointing at a
half-written definition. Deregistration refuses to remove a service
whose process is not confirmed stopped.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from provisioner.adapters.base import HostAdapter
from provisioner.core.errors import DeregistrationFailure, RegistrationFailure
from provisioner.core.models.features import FeatureFlags
from provisioner.core.models.host import HostCapabilities, OSFamily
from provisioner.core.models.receipt import Receipt
from provisioner.core.models.target import InstallTarget

logger = logging.getLogger(__name__)

SYSTEMD_UNIT_DIR = Path("/etc/systemd/system")

# ``systemctl is-active`` states that mean the main process is gone
_SYSTEMD_STOPPED = frozenset({"inactive", "failed"})


@dataclass(frozen=True)
class ServiceProfile:
    """Resource limits and scheduling for the supervisor unit."""

    description: str = "MikuDB Database Server"
    open_files: int = 65536
    max_processes: str | None = None
    realtime_io: bool = False


def service_profile(caps: HostCapabilities) -> ServiceProfile:
    """Pick the unit profile for the probed host."""
    if caps.os_family is OSFamily.NUMA_LINUX:
        return ServiceProfile(
            description="MikuDB Database Server (NUMA optimized)",
            open_files=1048576,
            max_processes="unlimited",
            realtime_io=True,
        )
    return ServiceProfile()


def build_exec_args(
    target: InstallTarget,
    flags: FeatureFlags,
    numactl: str = "/usr/bin/numactl",
) -> list[str]:
    """Command line the supervisor launches: ``[numactl ...] server --config path``."""
    args: list[str] = []
    if flags.enable_numa and not target.windows:
        node = flags.numa_node or 0
        args += [numactl, f"--cpunodebind={node}", f"--membind={node}"]
    args += [str(target.server_binary), "--config", str(target.config_file)]
    return args


class ServiceRegistrar(ABC):
    """Host supervisor contract.

    The query methods never raise. ``register`` raises
    RegistrationFailure and ``deregister`` raises DeregistrationFailure;
    anything non-fatal comes back as warnings on the returned Receipt.
    ``deregister`` removes nothing until ``confirmed_stopped`` holds.
    """

    name: str = "supervisor"

    def __init__(self, adapter: HostAdapter):
        self.adapter = adapter

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this supervisor can be driven on the host."""

    @abstractmethod
    def exists(self, service_name: str) -> bool:
        """Whether a registration with this name exists."""

    @abstractmethod
    def is_running(self, service_name: str) -> bool:
        """Whether the registered service's process is running."""

    @abstractmethod
    def confirmed_stopped(self, service_name: str) -> bool:
        """Whether the supervisor positively reports the service as stopped.

        Not the same as ``not is_running``: a transitional state or a
        failed query is neither running nor confirmed stopped.
        """

    @abstractmethod
    def register(
        self,
        target: InstallTarget,
        binary_args: list[str],
        *,
        profile: ServiceProfile | None = None,
    ) -> Receipt:
        """Create or atomically replace the registration, then start it."""

    @abstractmethod
    def deregister(self, target: InstallTarget) -> Receipt:
        """Stop and remove the registration."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} adapter={self.adapter.name!r}>"


# ── systemd ─────────────────────────────────────────────────────


def render_unit(
    target: InstallTarget,
    binary_args: list[str],
    profile: ServiceProfile | None = None,
) -> str:
    """Render the systemd unit file text."""
    profile = profile or ServiceProfile()
    service_lines = [
        "Type=simple",
        f"User={target.service_user}",
        f"Group={target.service_user}",
        f"ExecStart={shlex.join(binary_args)}",
        "Restart=on-failure",
        "RestartSec=10",
        f"LimitNOFILE={profile.open_files}",
    ]
    if profile.max_processes:
        service_lines.append(f"LimitNPROC={profile.max_processes}")
    if profile.realtime_io:
        service_lines += [
            "",
            "# Performance settings",
            "Nice=-10",
            "IOSchedulingClass=realtime",
            "IOSchedulingPriority=0",
        ]
    service_lines += [
        "",
        "# Security settings",
        "ProtectSystem=full",
        "ProtectHome=true",
        "NoNewPrivileges=true",
    ]
    service_block = "\n".join(service_lines)

    return f"""\
[Unit]
Description={profile.description}
After=network.target

[Service]
{service_block}

[Install]
WantedBy=multi-user.target
"""


class SystemdRegistrar(ServiceRegistrar):
    """Register the service as a systemd unit."""

    name = "systemd"

    def __init__(self, adapter: HostAdapter, unit_dir: Path = SYSTEMD_UNIT_DIR):
        super().__init__(adapter)
        self.unit_dir = Path(unit_dir)

    def unit_path(self, service_name: str) -> Path:
        return self.unit_dir / f"{service_name}.service"

    def _systemctl(self, *args: str, timeout: int = 60) -> Receipt:
        return self.adapter.run(["systemctl", *args], timeout=timeout)

    def is_available(self) -> bool:
        return self.adapter.is_available() and self.adapter.has_tool("systemctl")

    def exists(self, service_name: str) -> bool:
        if self.unit_path(service_name).exists():
            return True
        receipt = self._systemctl("list-unit-files", "--no-legend", f"{service_name}.service")
        return receipt.ok and f"{service_name}.service" in receipt.output

    def active_state(self, service_name: str) -> str:
        """``is-active`` state, or "" if the query printed nothing."""
        # ``is-active`` prints the state even when it exits non-zero
        return self._systemctl("is-active", service_name).output.strip()

    def is_running(self, service_name: str) -> bool:
        return self.active_state(service_name) == "active"

    def confirmed_stopped(self, service_name: str) -> bool:
        return self.active_state(service_name) in _SYSTEMD_STOPPED

    def register(
        self,
        target: InstallTarget,
        binary_args: list[str],
        *,
        profile: ServiceProfile | None = None,
    ) -> Receipt:
        name = target.service_name
        unit = self.unit_path(name)
        receipt = Receipt.success(operation=f"register {name}", metadata={"unit": str(unit)})

        if self.is_running(name):
            logger.info("Stopping running %s before replacing its unit", name)
            stopped = self._systemctl("stop", name)
            if not stopped.ok:
                receipt.warnings.append(f"stop {name} failed: {stopped.error}")

        content = render_unit(target, binary_args, profile)
        tmp = unit.with_name(unit.name + ".tmp")
        try:
            self.unit_dir.mkdir(parents=True, exist_ok=True)
            tmp.write_text(content, encoding="utf-8")
            os.replace(tmp, unit)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise RegistrationFailure(f"Cannot write {unit}: {e}") from e
        logger.info("Wrote systemd unit %s", unit)

        for step in (("daemon-reload",), ("enable", name)):
            result = self._systemctl(*step)
            if not result.ok:
                raise RegistrationFailure(
                    f"systemctl {' '.join(step)} failed: {result.error or result.output}"
                )

        started = self._systemctl("start", name)
        if not started.ok:
            receipt.warnings.append(
                f"systemctl start {name} failed: {started.error}; "
                f"check 'journalctl -u {name} -n 50'"
            )
        else:
            logger.info("Started %s", name)
        return receipt

    def deregister(self, target: InstallTarget) -> Receipt:
        name = target.service_name
        unit = self.unit_path(name)
        receipt = Receipt.success(operation=f"deregister {name}", metadata={"unit": str(unit)})

        if not self.confirmed_stopped(name):
            stopped = self._systemctl("stop", name)
            if not stopped.ok:
                msg = f"stop {name} failed: {stopped.error}"
                logger.warning(msg)
                receipt.warnings.append(msg)
            state = self.active_state(name)
            if state not in _SYSTEMD_STOPPED:
                raise DeregistrationFailure(
                    f"{name} is still running (state: {state or 'unknown'}); "
                    f"refusing to remove its registration"
                )
            logger.info("Stopped %s", name)

        disabled = self._systemctl("disable", name)
        if not disabled.ok:
            receipt.warnings.append(f"disable {name} failed: {disabled.error}")

        try:
            unit.unlink(missing_ok=True)
        except OSError as e:
            raise DeregistrationFailure(f"Cannot remove {unit}: {e}") from e
        logger.info("Removed systemd unit %s", unit)

        reloaded = self._systemctl("daemon-reload")
        if not reloaded.ok:
            receipt.warnings.append(f"daemon-reload failed: {reloaded.error}")
        return receipt


# ── Windows SCM ─────────────────────────────────────────────────


class WindowsServiceRegistrar(ServiceRegistrar):
    """Register the service with the Windows Service Control Manager."""

    name = "windows-scm"

    def _sc(self, *args: str) -> Receipt:
        return self.adapter.run(["sc.exe", *args], timeout=60)

    def is_available(self) -> bool:
        return self.adapter.is_available() and self.adapter.has_tool("sc.exe")

    def exists(self, service_name: str) -> bool:
        return self._sc("query", service_name).ok

    def is_running(self, service_name: str) -> bool:
        receipt = self._sc("query", service_name)
        return receipt.ok and "RUNNING" in receipt.output

    def confirmed_stopped(self, service_name: str) -> bool:
        receipt = self._sc("query", service_name)
        return receipt.ok and "STOPPED" in receipt.output

    def _stop_and_delete(self, name: str, receipt: Receipt, *, strict: bool) -> None:
        if not self.confirmed_stopped(name):
            stopped = self._sc("stop", name)
            if not stopped.ok:
                msg = f"stop {name} failed: {stopped.error}"
                logger.warning(msg)
                receipt.warnings.append(msg)
            if strict and not self.confirmed_stopped(name):
                raise DeregistrationFailure(
                    f"{name} is still running; refusing to remove its registration"
                )
        deleted = self._sc("delete", name)
        if not deleted.ok:
            error = f"sc.exe delete {name} failed: {deleted.error}"
            if strict:
                raise DeregistrationFailure(error)
            raise RegistrationFailure(error)

    def register(
        self,
        target: InstallTarget,
        binary_args: list[str],
        *,
        profile: ServiceProfile | None = None,
    ) -> Receipt:
        profile = profile or ServiceProfile()
        name = target.service_name
        receipt = Receipt.success(operation=f"register {name}")

        if self.exists(name):
            logger.info("Replacing existing service %s", name)
            self._stop_and_delete(name, receipt, strict=False)

        created = self._sc(
            "create", name,
            "binPath=", subprocess.list2cmdline(binary_args),
            "start=", "auto",
            "DisplayName=", profile.description,
        )
        if not created.ok:
            raise RegistrationFailure(f"sc.exe create {name} failed: {created.error}")

        policy = self._sc("failure", name, "reset=", "86400", "actions=", "restart/10000")
        if not policy.ok:
            receipt.warnings.append(f"cannot set restart policy on {name}: {policy.error}")

        started = self._sc("start", name)
        if not started.ok:
            receipt.warnings.append(f"sc.exe start {name} failed: {started.error}")
        return receipt

    def deregister(self, target: InstallTarget) -> Receipt:
        name = target.service_name
        receipt = Receipt.success(operation=f"deregister {name}")
        if self.exists(name):
            self._stop_and_delete(name, receipt, strict=True)
            logger.info("Deleted service %s", name)
        return receipt


def default_registrar(
    adapter: HostAdapter,
    *,
    system: str | None = None,
    unit_dir: Path = SYSTEMD_UNIT_DIR,
) -> ServiceRegistrar:
    """The registrar for the current OS."""
    system = system if system is not None else sys.platform
    if system.startswith("win"):
        return WindowsServiceRegistrar(adapter)
    return SystemdRegistrar(adapter, unit_dir=unit_dir)
