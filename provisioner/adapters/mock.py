"""
Mock adapter — scripted test double for host commands.

Used in tests and ``--mock`` runs to simulate the host without touching
the supervisor or the package manager. Responses are matched by the
longest command prefix; a list of responses is consumed in order and
the last one repeats.
"""

from __future__ import annotations

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.receipt import Receipt


class MockAdapter(HostAdapter):
    """Universal mock adapter for testing.

    By default, every command succeeds with empty output and every tool
    is on PATH.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        tools: set[str] | None = None,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._tools = tools
        self._default_output = default_output
        self._responses: dict[tuple[str, ...], list[Receipt]] = {}
        self._call_log: list[list[str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[list[str]]:
        """All commands this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def which(self, tool: str) -> str | None:
        if self._tools is None or tool in self._tools:
            return f"/usr/bin/{tool}"
        return None

    def set_tools(self, tools: set[str] | None) -> None:
        """Restrict which tools are on PATH (None = all)."""
        self._tools = tools

    def set_response(self, cmd: list[str], *receipts: Receipt) -> None:
        """Script the response(s) for commands starting with ``cmd``."""
        self._responses[tuple(cmd)] = list(receipts)

    def set_output(self, cmd: list[str], *outputs: str) -> None:
        """Script successful output(s) for ``cmd``."""
        self.set_response(
            cmd, *(Receipt.success(operation=" ".join(cmd), output=o, return_code=0) for o in outputs)
        )

    def set_failure(
        self,
        cmd: list[str],
        error: str = "Mock failure",
        return_code: int = 1,
        output: str = "",
    ) -> None:
        """Configure commands starting with ``cmd`` to fail."""
        self.set_response(
            cmd,
            Receipt.failure(
                operation=" ".join(cmd), error=error, return_code=return_code, output=output,
            ),
        )

    def ran(self, *prefix: str) -> bool:
        """Whether any logged command starts with ``prefix``."""
        return any(tuple(c[: len(prefix)]) == prefix for c in self._call_log)

    def run(
        self,
        cmd: list[str],
        *,
        timeout: int = 120,
    ) -> Receipt:
        self._call_log.append(list(cmd))

        key = self._match(cmd)
        if key is not None:
            queue = self._responses[key]
            return queue.pop(0) if len(queue) > 1 else queue[0]

        return Receipt.success(
            operation=" ".join(cmd),
            output=self._default_output,
            return_code=0,
            metadata={"mock": True},
        )

    def _match(self, cmd: list[str]) -> tuple[str, ...] | None:
        best: tuple[str, ...] | None = None
        for key in self._responses:
            if tuple(cmd[: len(key)]) == key and (best is None or len(key) > len(best)):
                best = key
        return best

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
