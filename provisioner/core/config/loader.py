"""
Settings loader — reads provision.yml and resolves the install target.

Layering, lowest to highest precedence:
    built-in defaults  <  provision.yml  <  environment  <  CLI flags

Environment and CLI values arrive together from click (``envvar=``),
so this module only merges "file" and "explicit" layers on top of the
InstallTarget defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from provisioner.core.config.units import parse_cpu_list, parse_size
from provisioner.core.models.features import FeatureOverrides
from provisioner.core.models.target import InstallTarget

logger = logging.getLogger(__name__)

# Default settings filename
SETTINGS_FILE = "provision.yml"

_TRI_STATE = {"auto": None, "true": True, "yes": True, "on": True,
              "false": False, "no": False, "off": False}


class ConfigError(Exception):
    """Raised when provisioning settings are invalid or unreadable."""


def parse_tri_state(value: Any) -> bool | None:
    """Map ``auto``/``true``/``false`` (or a bool/None) to a tri-state."""
    if value is None or isinstance(value, bool):
        return value
    key = str(value).strip().lower()
    if key not in _TRI_STATE:
        raise ValueError(f"expected auto, true or false, got {value!r}")
    return _TRI_STATE[key]


class TargetSettings(BaseModel):
    """InstallTarget fields as they may appear in provision.yml."""

    install_dir: Path | None = None
    data_dir: Path | None = None
    config_dir: Path | None = None
    service_name: str | None = None
    service_user: str | None = None
    bind_address: str | None = None
    port: int | None = None
    cache_size: int | None = None

    @field_validator("cache_size", mode="before")
    @classmethod
    def _size(cls, value: Any) -> Any:
        return parse_size(value) if isinstance(value, str) else value


class FeatureSettings(BaseModel):
    """Feature overrides as they may appear in provision.yml."""

    huge_pages: bool | None = None
    numa: bool | None = None
    async_io: bool | None = None
    tcp_tuning: bool | None = None
    numa_node: int | None = None
    cpu_affinity: list[int] | None = None

    @field_validator("huge_pages", "numa", "async_io", "tcp_tuning", mode="before")
    @classmethod
    def _tri_state(cls, value: Any) -> Any:
        return parse_tri_state(value)

    @field_validator("cpu_affinity", mode="before")
    @classmethod
    def _cpus(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_cpu_list(value) or None
        return value


class ProvisionSettings(BaseModel):
    """Root of provision.yml."""

    target: TargetSettings = Field(default_factory=TargetSettings)
    features: FeatureSettings = Field(default_factory=FeatureSettings)
    artifact_dir: Path | None = None
    skip_service: bool | None = None
    install_helpers: bool | None = None
    lang: str | None = None


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Return ``provision.yml`` in the given directory (default: cwd), if any."""
    candidate = (start_dir or Path.cwd()) / SETTINGS_FILE
    return candidate if candidate.is_file() else None


def load_settings(path: Path | None = None) -> ProvisionSettings:
    """Load and validate provisioning settings.

    Args:
        path: Explicit path to provision.yml. If None, looks in the cwd
            and falls back to empty settings when there is none.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_settings_file()
        if path is None:
            logger.debug("No %s found, using defaults", SETTINGS_FILE)
            return ProvisionSettings()
    elif not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return ProvisionSettings()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provision" key or be flat
    if "provision" in data and isinstance(data["provision"], dict):
        data = data["provision"]

    try:
        settings = ProvisionSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    logger.info("Loaded provisioning settings from %s", path)
    return settings


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def resolve_target(
    settings: ProvisionSettings | None = None,
    **explicit: Any,
) -> InstallTarget:
    """Build the immutable InstallTarget from settings plus explicit values.

    ``explicit`` holds CLI/env values; ``None`` means "not given".

    Raises:
        ConfigError: If the merged values are invalid.
    """
    merged: dict[str, Any] = {}
    if settings is not None:
        merged.update(_drop_none(settings.target.model_dump()))
    merged.update(_drop_none(explicit))

    try:
        return InstallTarget(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid install target: {e}") from e


def resolve_overrides(
    settings: ProvisionSettings | None = None,
    **explicit: Any,
) -> FeatureOverrides:
    """Merge feature overrides from settings and explicit CLI/env values."""
    merged: dict[str, Any] = {}
    if settings is not None:
        merged.update(_drop_none(settings.features.model_dump()))
    merged.update(_drop_none(explicit))

    try:
        return FeatureOverrides(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid feature overrides: {e}") from e
