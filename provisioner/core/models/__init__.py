"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import InstallTarget, HostCapabilities, FeatureFlags
"""

from provisioner.core.models.features import FeatureFlags, FeatureOverrides
from provisioner.core.models.host import Architecture, HostCapabilities, OSFamily
from provisioner.core.models.install_state import ComponentState, ExistingInstallState
from provisioner.core.models.receipt import Receipt
from provisioner.core.models.server_config import (
    AuthSection,
    GeneratedConfig,
    LogSection,
    PlatformSection,
    ServerSection,
    StorageSection,
)
from provisioner.core.models.target import InstallTarget

__all__ = [
    "Architecture",
    "AuthSection",
    "ComponentState",
    "ExistingInstallState",
    "FeatureFlags",
    "FeatureOverrides",
    "GeneratedConfig",
    "HostCapabilities",
    "InstallTarget",
    "LogSection",
    "OSFamily",
    "PlatformSection",
    "Receipt",
    "ServerSection",
    "StorageSection",
]
