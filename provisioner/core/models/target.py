"""
InstallTarget — where every provisioned artifact goes.

Resolved once per run (defaults < settings file < env < CLI) and never
mutated afterwards.
"""

from __future__ import annotations

import sys
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

SERVER_BINARY = "mikudb-server"
CLI_BINARY = "mikudb-cli"
CONFIG_FILE_NAME = "mikudb.toml"


def _exe(name: str, windows: bool) -> str:
    return f"{name}.exe" if windows else name


class InstallTarget(BaseModel):
    """Immutable description of the install layout."""

    model_config = ConfigDict(frozen=True)

    install_dir: Path = Path("/usr/local/bin")
    data_dir: Path = Path("/var/lib/mikudb")
    config_dir: Path = Path("/etc/mikudb")
    service_name: str = "mikudb"
    service_user: str = "mikudb"
    bind_address: str = "0.0.0.0"
    port: int = Field(default=3939, ge=1, le=65535)
    cache_size: int | None = Field(default=None, gt=0)  # bytes; None = policy
    windows: bool = Field(default_factory=lambda: sys.platform == "win32")

    @field_validator("service_name", "service_user")
    @classmethod
    def _no_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    # ── Derived paths ────────────────────────────────────────────

    @property
    def server_binary(self) -> Path:
        return self.install_dir / _exe(SERVER_BINARY, self.windows)

    @property
    def cli_binary(self) -> Path:
        return self.install_dir / _exe(CLI_BINARY, self.windows)

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def storage_dir(self) -> Path:
        return self.data_dir / "data"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def log_file(self) -> Path:
        return self.log_dir / "mikudb.log"
