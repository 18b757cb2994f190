"""
GeneratedConfig — the MikuDB server configuration document.

Field names follow the keys ``mikudb-server --config`` reads, so the
model can be rendered to TOML section by section.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class ServerSection(_Section):
    bind: str
    port: int
    data_dir: str
    max_connections: int
    timeout_ms: int


class StorageSection(_Section):
    page_size: int = 16384
    cache_size: int          # bytes
    compression: str = "lz4"
    sync_writes: bool = False


class AuthSection(_Section):
    enabled: bool = True
    default_user: str = "root"
    default_password: str = "mikudb_initial_password"


class LogSection(_Section):
    level: str = "info"
    file: str


class PlatformSection(_Section):
    """Host optimizations (the server reads this as ``[openeuler]``)."""

    enable_huge_pages: bool = False
    huge_pages_size_mb: int = 0
    enable_numa: bool = False
    numa_node: int | None = None
    enable_io_uring: bool = False
    cpu_affinity: tuple[int, ...] = ()
    enable_direct_io: bool = False
    tcp_cork: bool = True
    tcp_nodelay: bool = True


class GeneratedConfig(_Section):
    """Complete, in-memory configuration document."""

    server: ServerSection
    storage: StorageSection
    auth: AuthSection
    log: LogSection
    openeuler: PlatformSection

    @property
    def cache_size(self) -> int:
        return self.storage.cache_size
