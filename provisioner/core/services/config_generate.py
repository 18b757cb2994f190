"""
Configuration generator — build and render ``mikudb.toml``.

``generate`` is pure: equal inputs give an equal GeneratedConfig, and
``render_toml`` turns that into byte-identical text. Nothing here
touches the filesystem; the orchestrator writes the rendered text.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from provisioner.core.config.units import MB, format_size
from provisioner.core.models.features import FeatureFlags
from provisioner.core.models.host import HostCapabilities, OSFamily
from provisioner.core.models.server_config import (
    AuthSection,
    GeneratedConfig,
    LogSection,
    PlatformSection,
    ServerSection,
    StorageSection,
)
from provisioner.core.models.target import InstallTarget

MIN_CACHE = 256 * MB

# 1024 reserved pages of 2 MB each
HUGE_PAGES_SIZE_MB = 2048


@dataclass(frozen=True)
class PlatformProfile:
    """Connection limits per OS family."""

    max_connections: int
    timeout_ms: int
    title: str


_DEFAULT_PROFILE = PlatformProfile(10000, 30000, "MikuDB Configuration")
_PROFILES = {
    OSFamily.NUMA_LINUX: PlatformProfile(20000, 60000, "MikuDB NUMA Optimized Configuration"),
}


def platform_profile(os_family: OSFamily) -> PlatformProfile:
    return _PROFILES.get(os_family, _DEFAULT_PROFILE)


def cache_size_for(total_memory: int) -> int:
    """Default cache policy: 25% of RAM, at least 256 MB, at most 50% of RAM.

    Unknown memory (0) gets the 256 MB floor.
    """
    if total_memory <= 0:
        return MIN_CACHE
    return min(max(total_memory // 4, MIN_CACHE), total_memory // 2)


def generate(
    target: InstallTarget,
    caps: HostCapabilities,
    flags: FeatureFlags,
) -> GeneratedConfig:
    """Build the server configuration document in memory."""
    profile = platform_profile(caps.os_family)
    cache_size = target.cache_size or cache_size_for(caps.total_memory)

    return GeneratedConfig(
        server=ServerSection(
            bind=target.bind_address,
            port=target.port,
            data_dir=str(target.storage_dir),
            max_connections=profile.max_connections,
            timeout_ms=profile.timeout_ms,
        ),
        storage=StorageSection(cache_size=cache_size),
        auth=AuthSection(),
        log=LogSection(file=str(target.log_file)),
        openeuler=PlatformSection(
            enable_huge_pages=flags.enable_huge_pages,
            huge_pages_size_mb=HUGE_PAGES_SIZE_MB if flags.enable_huge_pages else 0,
            enable_numa=flags.enable_numa,
            numa_node=flags.numa_node,
            enable_io_uring=flags.enable_async_io,
            cpu_affinity=flags.cpu_affinity,
        ),
    )


# ── TOML rendering ──────────────────────────────────────────────


def _value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_value(v) for v in value) + "]"
    # JSON string escapes are valid TOML basic-string escapes
    return json.dumps(str(value))


def _lines(values: dict[str, object]) -> list[str]:
    return [f"{key} = {_value(value)}" for key, value in values.items() if value is not None]


def render_toml(config: GeneratedConfig, title: str | None = None) -> str:
    """Render the document as TOML text (deterministic key order)."""
    server = config.server
    storage = config.storage.model_dump()
    storage["cache_size"] = format_size(config.storage.cache_size)

    out = [f"# {title or _DEFAULT_PROFILE.title}", ""]
    out += ["# Network settings", *_lines({"bind": server.bind, "port": server.port}), ""]
    out += ["# Data directory", *_lines({"data_dir": server.data_dir}), ""]
    out += [
        "# Connection settings",
        *_lines({"max_connections": server.max_connections, "timeout_ms": server.timeout_ms}),
        "",
    ]
    for comment, name, values in (
        ("Storage settings", "storage", storage),
        ("Authentication", "auth", config.auth.model_dump()),
        ("Logging", "log", config.log.model_dump()),
        ("Platform optimizations", "openeuler", config.openeuler.model_dump()),
    ):
        out += [f"# {comment}", f"[{name}]", *_lines(values), ""]

    return "\n".join(out).rstrip("\n") + "\n"
