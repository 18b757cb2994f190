"""
Feature flags — user overrides in, resolved flags out.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeatureOverrides(BaseModel):
    """User-supplied feature settings.

    Tri-state booleans: ``None`` = auto (capability decides),
    ``False`` = hard-disable, ``True`` = force-enable.
    """

    huge_pages: bool | None = None
    numa: bool | None = None
    async_io: bool | None = None
    tcp_tuning: bool | None = None
    numa_node: int | None = Field(default=None, ge=0)
    cpu_affinity: list[int] | None = None

    @field_validator("cpu_affinity")
    @classmethod
    def _non_negative(cls, value: list[int] | None) -> list[int] | None:
        if value is not None and any(core < 0 for core in value):
            raise ValueError("core ids must be non-negative")
        return value


class FeatureFlags(BaseModel):
    """Resolved optimization flags for one provisioning run."""

    model_config = ConfigDict(frozen=True)

    enable_huge_pages: bool = False
    enable_numa: bool = False
    numa_node: int | None = None
    enable_async_io: bool = False
    cpu_affinity: tuple[int, ...] = ()
    tcp_tuning: bool = False

    # Flags that bypassed their capability predicate
    forced: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def summary(self) -> dict:
        """Flag values only, without resolution notes."""
        return self.model_dump(exclude={"forced", "warnings"})
