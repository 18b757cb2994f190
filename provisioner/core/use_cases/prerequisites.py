"""
Prerequisite checks — run before the host is touched.
"""

from __future__ import annotations

import ctypes
import logging
import os
from pathlib import Path

from provisioner.core.errors import PrerequisiteMissing
from provisioner.core.models.target import InstallTarget
from provisioner.core.services.artifacts import artifact_paths
from provisioner.core.services.registrar import ServiceRegistrar

logger = logging.getLogger(__name__)


def is_privileged() -> bool:
    """root on POSIX, an elevated administrator on Windows."""
    if hasattr(os, "geteuid"):
        return os.geteuid() == 0
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def require_privilege(check=is_privileged) -> None:
    if not check():
        raise PrerequisiteMissing("root (administrator) privileges are required")


def check_install_prerequisites(
    target: InstallTarget,
    artifact_dir: Path,
    *,
    registrar: ServiceRegistrar,
    skip_service: bool = False,
    privileged=is_privileged,
) -> None:
    """Raise PrerequisiteMissing for the first unmet precondition."""
    require_privilege(privileged)

    if not skip_service and not registrar.is_available():
        raise PrerequisiteMissing(
            f"{registrar.name} is not available on this host; "
            "install it or rerun with --skip-service"
        )

    server_src, _ = artifact_paths(artifact_dir, target)
    if not server_src.is_file():
        raise PrerequisiteMissing(
            f"server binary not found at {server_src}; build it first "
            "(cargo build --release) or pass --artifact-dir"
        )
    logger.debug("Prerequisites satisfied")
