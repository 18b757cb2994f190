"""
Artifacts — binaries, service account and directory layout.

Binaries are copied next to their destination and swapped in with
``os.replace``, so a running server never sees a half-copied file.
Nothing here ever deletes the data directory.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.receipt import Receipt
from provisioner.core.models.target import InstallTarget

logger = logging.getLogger(__name__)


def artifact_paths(artifact_dir: Path, target: InstallTarget) -> tuple[Path, Path]:
    """Build outputs for the server and CLI binaries."""
    return (
        Path(artifact_dir) / target.server_binary.name,
        Path(artifact_dir) / target.cli_binary.name,
    )


def _copy_atomic(src: Path, dest: Path) -> None:
    tmp = dest.with_name(f".{dest.name}.tmp")
    try:
        shutil.copy2(src, tmp)
        os.chmod(tmp, 0o755)
        os.replace(tmp, dest)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def place_binaries(artifact_dir: Path, target: InstallTarget) -> list[Path]:
    """Install the server (required) and CLI (optional) binaries.

    Raises:
        FileNotFoundError: If the server artifact is missing.
    """
    server_src, cli_src = artifact_paths(artifact_dir, target)
    if not server_src.is_file():
        raise FileNotFoundError(f"Server binary not found: {server_src}")

    target.install_dir.mkdir(parents=True, exist_ok=True)
    placed = []
    for src, dest in ((server_src, target.server_binary), (cli_src, target.cli_binary)):
        if not src.is_file():
            logger.warning("Optional binary %s not built, skipping", src.name)
            continue
        _copy_atomic(src, dest)
        logger.info("Installed %s", dest)
        placed.append(dest)
    return placed


def remove_binaries(target: InstallTarget) -> list[Path]:
    removed = []
    for path in (target.server_binary, target.cli_binary):
        if path.exists():
            path.unlink()
            logger.info("Removed %s", path)
            removed.append(path)
    return removed


def remove_config(target: InstallTarget) -> list[str]:
    """Delete the config directory. Returns warnings.

    If the data directory lives inside the config directory, only the
    config file is removed.
    """
    config_dir = target.config_dir
    if not config_dir.exists():
        return []

    data_dir = target.data_dir.resolve()
    if data_dir == config_dir.resolve() or config_dir.resolve() in data_dir.parents:
        target.config_file.unlink(missing_ok=True)
        msg = f"{config_dir} contains the data directory; removed only {target.config_file.name}"
        logger.warning(msg)
        return [msg]

    shutil.rmtree(config_dir)
    logger.info("Removed %s", config_dir)
    return []


def ensure_service_user(adapter: HostAdapter, user: str) -> Receipt:
    """Create a system account for the service if it does not exist."""
    if adapter.run(["id", "-u", user], timeout=10).ok:
        return Receipt.skip(operation=f"useradd {user}", reason="user exists")

    receipt = adapter.run(["useradd", "-r", "-s", "/bin/false", user], timeout=30)
    if receipt.ok:
        logger.info("Created service user %s", user)
    return receipt


def prepare_directories(target: InstallTarget, *, adapter: HostAdapter) -> list[str]:
    """Create the data/log/config directories and hand the data dir to the service user.

    Returns warnings (ownership is best-effort).
    """
    for path in (target.storage_dir, target.log_dir, target.config_dir):
        path.mkdir(parents=True, exist_ok=True)

    if target.windows:
        return []
    owner = f"{target.service_user}:{target.service_user}"
    receipt = adapter.run(["chown", "-R", owner, str(target.data_dir)], timeout=120)
    if not receipt.ok:
        return [f"cannot chown {target.data_dir} to {owner}: {receipt.error}"]
    return []
