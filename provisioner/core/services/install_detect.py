"""
Existing-install detector — what did a previous run leave behind?

Each component is checked independently; a partial install (e.g. a
binary without a config) is a valid result. Read-only apart from
asking an existing binary for ``--version``, which is display-only.
"""

from __future__ import annotations

import logging

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.install_state import ComponentState, ExistingInstallState
from provisioner.core.models.target import InstallTarget
from provisioner.core.services.registrar import ServiceRegistrar

logger = logging.getLogger(__name__)


def binary_version(adapter: HostAdapter, target: InstallTarget) -> str | None:
    """First line of ``mikudb-server --version``, or None."""
    receipt = adapter.run([str(target.server_binary), "--version"], timeout=10)
    if not receipt.ok:
        logger.debug("--version failed: %s", receipt.error)
        return None
    first = receipt.output.strip().splitlines()
    return first[0].strip() if first else None


def detect(
    target: InstallTarget,
    *,
    supervisor: ServiceRegistrar,
    adapter: HostAdapter | None = None,
) -> ExistingInstallState:
    """Inspect the host for a prior installation of ``target``."""
    adapter = adapter or supervisor.adapter
    name = target.service_name

    service = ComponentState.ABSENT
    running = False
    if supervisor.is_available() and supervisor.exists(name):
        running = supervisor.is_running(name)
        service = ComponentState.RUNNING if running else ComponentState.STOPPED

    binary = ComponentState.ABSENT
    version = None
    if target.server_binary.exists():
        binary = ComponentState.RUNNING if running else ComponentState.STOPPED
        version = binary_version(adapter, target)

    config = ComponentState.STOPPED if target.config_file.exists() else ComponentState.ABSENT

    state = ExistingInstallState(
        service=service, binary=binary, config=config, binary_version=version,
    )
    if state.is_clean:
        logger.info("No existing installation of %s found", name)
    else:
        logger.info(
            "Existing installation of %s: service=%s binary=%s config=%s",
            name, service.value, binary.value, config.value,
        )
    return state
