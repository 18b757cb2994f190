"""
Receipt model — the host command contract.

Every command the provisioner runs on the host comes back as a Receipt.
Adapters NEVER raise for a failed command: the failure is
captured here and the caller decides whether it is fatal.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of a host operation (command, registration, removal)."""

    operation: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None
    warnings: list[str] = Field(default_factory=list)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the operation failed."""
        return self.status == "failed"

    @classmethod
    def success(cls, operation: str, output: str = "", **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(operation=operation, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, operation: str, error: str, **kwargs: Any) -> Receipt:
        """Create a failure receipt."""
        return cls(operation=operation, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, operation: str, reason: str = "", **kwargs: Any) -> Receipt:
        """Create a skip receipt."""
        return cls(operation=operation, status="skipped", output=reason, **kwargs)
