"""
Install use case — the provisioning orchestrator.

Sequences every step from detection to verification:

    start → detect-existing → clean | await-confirmation → prerequisites
          → [uninstalling → clean] → probing → resolving → tuning
          → generating → placing → registering → verifying → done

Nothing on the host changes before the confirmation gate and the
prerequisite checks have passed. Warnings accumulate on the result in
the order they occur; fatal errors end the run with status ``failed``
but never roll back what was already written.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.adapters.base import HostAdapter
from provisioner.core.errors import PrerequisiteMissing, ProvisionError
from provisioner.core.models.features import FeatureOverrides
from provisioner.core.models.host import HostCapabilities
from provisioner.core.models.target import InstallTarget
from provisioner.core.reliability.backoff import poll_until
from provisioner.core.services.artifacts import (
    ensure_service_user,
    place_binaries,
    prepare_directories,
)
from provisioner.core.services.config_generate import generate, platform_profile, render_toml
from provisioner.core.services.features import resolve
from provisioner.core.services.host_tuning import SYSCTL_DIR, apply_tuning
from provisioner.core.services.install_detect import binary_version, detect
from provisioner.core.services.probe import HostPaths, probe
from provisioner.core.services.registrar import (
    ServiceRegistrar,
    build_exec_args,
    service_profile,
)
from provisioner.core.use_cases.prerequisites import check_install_prerequisites, is_privileged
from provisioner.core.use_cases.result import EXIT_PREREQUISITE, ProvisionResult
from provisioner.core.use_cases.uninstall import Confirm, remove_installation

logger = logging.getLogger(__name__)

VERIFY_ATTEMPTS = 3


@dataclass
class InstallOptions:
    """Everything an install run needs besides its collaborators."""

    target: InstallTarget
    overrides: FeatureOverrides = field(default_factory=FeatureOverrides)
    artifact_dir: Path = Path("target/release")
    skip_service: bool = False
    strict_verify: bool = False
    install_helpers: bool = True
    sysctl_dir: Path = SYSCTL_DIR
    host_paths: HostPaths | None = None


def write_config(path: Path, text: str) -> None:
    """Write the config file via a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("Wrote configuration %s", path)


def _log_hint(target: InstallTarget) -> str:
    if target.windows:
        return "check the Windows Event Log (Application)"
    return f"check 'journalctl -u {target.service_name} -n 50'"


def run_install(
    options: InstallOptions,
    *,
    adapter: HostAdapter,
    registrar: ServiceRegistrar,
    confirm: Confirm,
    privileged: Callable[[], bool] = is_privileged,
    prober: Callable[[], HostCapabilities] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProvisionResult:
    """Install (or reinstall) MikuDB on the host.

    Args:
        options: Target layout, feature overrides and run switches.
        adapter: Host command adapter.
        registrar: Supervisor implementation for this host.
        confirm: Asked only when a previous installation exists;
            returning False cancels the run with nothing changed.
        privileged: Privilege check (injectable for tests).
        prober: Host probe; defaults to ``probe()`` for this machine.
        sleep: Used between verification checks.

    Returns:
        ProvisionResult; ``exit_code`` is ready for ``sys.exit``.
    """
    target = options.target
    result = ProvisionResult()
    result.enter("start")

    # ── Existing installation ────────────────────────────────────
    result.enter("detect-existing")
    existing = detect(target, supervisor=registrar, adapter=adapter)
    result.existing = existing

    if existing.is_clean:
        result.enter("clean")
    else:
        result.enter("await-confirmation")
        if not confirm(existing):
            logger.warning("Installation cancelled; nothing changed")
            return result.cancel()

    try:
        # ── Prerequisites (no mutation before this passes) ──────
        result.enter("prerequisites")
        check_install_prerequisites(
            target,
            options.artifact_dir,
            registrar=registrar,
            skip_service=options.skip_service,
            privileged=privileged,
        )

        if not existing.is_clean:
            result.enter("uninstalling")
            result.warn(*remove_installation(
                target, registrar=registrar, adapter=adapter, sysctl_dir=options.sysctl_dir,
            ))
            result.enter("clean")

        # ── Host facts → flags ───────────────────────────────────
        result.enter("probing")
        if prober is None:
            caps = probe(
                adapter, install_helpers=options.install_helpers, paths=options.host_paths,
            )
        else:
            caps = prober()
        result.capabilities = caps
        result.warn(*caps.probe_warnings)

        result.enter("resolving")
        flags = resolve(caps, options.overrides)
        result.warn(*flags.warnings)

        # ── Kernel tuning ────────────────────────────────────────
        result.enter("tuning")
        if caps.os_family.is_linux and (flags.enable_huge_pages or flags.tcp_tuning):
            try:
                tuning = apply_tuning(
                    target, flags,
                    adapter=adapter, sysctl_dir=options.sysctl_dir, paths=options.host_paths,
                )
                result.warn(*tuning.warnings)
                short = tuning.huge_pages_short
            except OSError as e:
                result.warn(f"kernel tuning not applied: {e}")
                short = flags.enable_huge_pages
            if short and "enable_huge_pages" not in flags.forced:
                flags = flags.model_copy(update={"enable_huge_pages": False})
                result.warn("huge pages disabled: reservation failed")
        result.flags = flags

        # ── Configuration ────────────────────────────────────────
        result.enter("generating")
        config = generate(target, caps, flags)
        text = render_toml(config, title=platform_profile(caps.os_family).title)
        result.config = config

        # ── Files on disk ────────────────────────────────────────
        result.enter("placing")
        if not target.windows:
            account = ensure_service_user(adapter, target.service_user)
            if account.failed:
                raise ProvisionError(
                    f"cannot create service user {target.service_user}: {account.error}"
                )
        result.warn(*prepare_directories(target, adapter=adapter))
        write_config(target.config_file, text)
        result.config_path = target.config_file
        place_binaries(options.artifact_dir, target)

        if options.skip_service:
            result.warn("service registration skipped (--skip-service)")
            result.enter("done")
            return result

        # ── Supervisor ───────────────────────────────────────────
        result.enter("registering")
        args = build_exec_args(
            target, flags, numactl=adapter.which("numactl") or "/usr/bin/numactl",
        )
        receipt = registrar.register(target, args, profile=service_profile(caps))
        result.warn(*receipt.warnings)

    except PrerequisiteMissing as e:
        logger.error("Prerequisite missing: %s", e)
        return result.fail(str(e), EXIT_PREREQUISITE)
    except ProvisionError as e:
        logger.error("Install failed: %s", e)
        return result.fail(str(e))
    except OSError as e:
        logger.error("Install failed: %s", e)
        return result.fail(f"filesystem error: {e}")

    # ── Verification ─────────────────────────────────────────────
    result.enter("verifying")
    name = target.service_name
    outcome = poll_until(
        lambda: registrar.is_running(name),
        attempts=VERIFY_ATTEMPTS,
        sleep=sleep,
        label=f"{name} running",
    )
    result.verified = outcome.ok
    result.server_version = binary_version(adapter, target)

    if not outcome.ok:
        msg = (
            f"{name} not running after {outcome.attempts} checks "
            f"({outcome.waited:.0f}s); {_log_hint(target)}"
        )
        result.warn(msg)
        if options.strict_verify:
            return result.fail(msg)

    result.enter("done")
    logger.info("Installed %s (%s)", name, result.server_version or "version unknown")
    return result
