"""
ProvisionResult — outcome of an install or uninstall run.

Returned to the caller and rendered by the CLI; never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from provisioner.core.models.features import FeatureFlags
from provisioner.core.models.host import HostCapabilities
from provisioner.core.models.install_state import ExistingInstallState
from provisioner.core.models.server_config import GeneratedConfig

EXIT_OK = 0
EXIT_PREREQUISITE = 1
EXIT_FAILED = 2
EXIT_CANCELLED = 3


class ProvisionStatus(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ProvisionResult:
    """Result of an install or uninstall flow."""

    status: ProvisionStatus = ProvisionStatus.SUCCESS
    warnings: list[str] = field(default_factory=list)
    phases: list[str] = field(default_factory=list)
    existing: ExistingInstallState | None = None
    capabilities: HostCapabilities | None = None
    flags: FeatureFlags | None = None
    config: GeneratedConfig | None = None
    config_path: Path | None = None
    verified: bool | None = None
    server_version: str | None = None
    error: str | None = None
    exit_code: int = EXIT_OK

    def enter(self, phase: str) -> None:
        self.phases.append(phase)

    def warn(self, *messages: str) -> None:
        self.warnings.extend(messages)

    def fail(self, error: str, exit_code: int = EXIT_FAILED) -> ProvisionResult:
        self.status = ProvisionStatus.FAILED
        self.error = error
        self.exit_code = exit_code
        return self

    def cancel(self) -> ProvisionResult:
        self.status = ProvisionStatus.CANCELLED
        self.exit_code = EXIT_CANCELLED
        self.enter("cancelled")
        return self

    @property
    def ok(self) -> bool:
        return self.status is ProvisionStatus.SUCCESS

    def to_dict(self) -> dict:
        result: dict = {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "phases": self.phases,
            "warnings": self.warnings,
        }
        if self.error:
            result["error"] = self.error
        if self.existing is not None:
            result["existing"] = self.existing.model_dump(mode="json")
        if self.capabilities is not None:
            result["capabilities"] = self.capabilities.model_dump(mode="json")
        if self.flags is not None:
            result["flags"] = self.flags.model_dump(mode="json")
        if self.config is not None:
            result["config"] = self.config.model_dump(mode="json")
        if self.config_path is not None:
            result["config_path"] = str(self.config_path)
        if self.verified is not None:
            result["verified"] = self.verified
        if self.server_version:
            result["server_version"] = self.server_version
        return result
