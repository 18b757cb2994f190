"""
Adapter base — the protocol contract between provisioning logic and the host.

Probes, detectors and registrars never call ``subprocess`` directly.
They go through a HostAdapter so that every host command is logged in
one place and can be scripted in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from provisioner.core.models.receipt import Receipt


class HostAdapter(ABC):
    """Abstract base class for host command adapters.

    Adapters run commands and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the adapter can run commands at all.

        Should be fast and never raise.
        """

    @abstractmethod
    def which(self, tool: str) -> str | None:
        """Resolve a tool on PATH, or None if absent."""

    @abstractmethod
    def run(
        self,
        cmd: list[str],
        *,
        timeout: int = 120,
    ) -> Receipt:
        """Run a command and return a receipt.

        MUST never raise exceptions. Non-zero exit codes, timeouts and
        missing executables are all captured with status='failed'.
        """

    def has_tool(self, tool: str) -> bool:
        return self.which(tool) is not None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
