"""
ExistingInstallState — what a previous installation left on the host.

Computed fresh on every run, never cached.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ComponentState(str, Enum):
    ABSENT = "absent"
    STOPPED = "present-stopped"
    RUNNING = "present-running"

    @property
    def present(self) -> bool:
        return self is not ComponentState.ABSENT


class ExistingInstallState(BaseModel):
    """Per-component state of a prior install.

    Components are detected independently; a partial install
    (e.g. binary present, config absent) is a valid state.
    """

    model_config = ConfigDict(frozen=True)

    service: ComponentState = ComponentState.ABSENT
    binary: ComponentState = ComponentState.ABSENT
    config: ComponentState = ComponentState.ABSENT
    binary_version: str | None = None  # display only

    @property
    def is_clean(self) -> bool:
        return not (self.service.present or self.binary.present or self.config.present)

    @property
    def is_running(self) -> bool:
        return ComponentState.RUNNING in (self.service, self.binary)

    def present_components(self) -> list[str]:
        return [
            name
            for name in ("service", "binary", "config")
            if getattr(self, name).present
        ]
