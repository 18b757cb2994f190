"""
Uninstall use case — remove MikuDB from the host.

Removes the service registration, the binaries, the config directory
and the kernel-tuning drop-in. The data directory is always kept.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from provisioner.adapters.base import HostAdapter
from provisioner.core.errors import PrerequisiteMissing, ProvisionError
from provisioner.core.models.install_state import ExistingInstallState
from provisioner.core.models.target import InstallTarget
from provisioner.core.services.artifacts import remove_binaries, remove_config
from provisioner.core.services.host_tuning import SYSCTL_DIR, remove_tuning
from provisioner.core.services.install_detect import detect
from provisioner.core.services.registrar import ServiceRegistrar
from provisioner.core.use_cases.prerequisites import is_privileged, require_privilege
from provisioner.core.use_cases.result import EXIT_PREREQUISITE, ProvisionResult

logger = logging.getLogger(__name__)

Confirm = Callable[[ExistingInstallState], bool]


@dataclass
class UninstallOptions:
    target: InstallTarget
    assume_yes: bool = False
    sysctl_dir: Path = SYSCTL_DIR


def remove_installation(
    target: InstallTarget,
    *,
    registrar: ServiceRegistrar,
    adapter: HostAdapter,
    sysctl_dir: Path = SYSCTL_DIR,
) -> list[str]:
    """Tear down an installation. Returns warnings.

    Raises:
        DeregistrationFailure: If the service cannot be stopped. Nothing
            else has been removed at that point.
    """
    warnings: list[str] = []
    name = target.service_name

    if registrar.is_available() and registrar.exists(name):
        receipt = registrar.deregister(target)
        warnings.extend(receipt.warnings)

    remove_binaries(target)
    warnings.extend(remove_config(target))
    if not target.windows:
        warnings.extend(remove_tuning(target, adapter=adapter, sysctl_dir=sysctl_dir))

    logger.info("Data directory preserved: %s", target.data_dir)
    return warnings


def run_uninstall(
    options: UninstallOptions,
    *,
    adapter: HostAdapter,
    registrar: ServiceRegistrar,
    confirm: Confirm | None = None,
    privileged: Callable[[], bool] = is_privileged,
) -> ProvisionResult:
    """Detect and remove an existing installation.

    Without ``assume_yes`` the removal needs ``confirm`` to return True;
    a missing or declining ``confirm`` cancels with nothing changed.
    """
    target = options.target
    result = ProvisionResult()
    result.enter("start")

    result.enter("detect-existing")
    existing = detect(target, supervisor=registrar, adapter=adapter)
    result.existing = existing

    if existing.is_clean:
        result.warn(f"no installation of {target.service_name} found")
        result.enter("done")
        return result

    if not options.assume_yes:
        result.enter("await-confirmation")
        if confirm is None or not confirm(existing):
            logger.warning("Uninstall cancelled; nothing changed")
            return result.cancel()

    try:
        result.enter("prerequisites")
        require_privilege(privileged)

        result.enter("uninstalling")
        result.warn(*remove_installation(
            target, registrar=registrar, adapter=adapter, sysctl_dir=options.sysctl_dir,
        ))
    except PrerequisiteMissing as e:
        logger.error("Prerequisite missing: %s", e)
        return result.fail(str(e), EXIT_PREREQUISITE)
    except ProvisionError as e:
        logger.error("Uninstall failed: %s", e)
        return result.fail(str(e))
    except OSError as e:
        logger.error("Uninstall failed: %s", e)
        return result.fail(f"filesystem error: {e}")

    result.enter("done")
    logger.info("Uninstalled %s", target.service_name)
    return result
