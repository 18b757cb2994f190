"""
Shell command adapter — the single place host commands are executed.

Commands are always passed as argument lists (never through a shell),
with a timeout, captured output and a receipt.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time

from provisioner.adapters.base import HostAdapter
from provisioner.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

# Keep receipts small; service managers can be chatty
_OUTPUT_TAIL = 4000


class ShellCommandAdapter(HostAdapter):
    """Run host commands with ``subprocess.run``."""

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return True

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def run(
        self,
        cmd: list[str],
        *,
        timeout: int = 120,
    ) -> Receipt:
        command = " ".join(cmd)
        logger.debug("Executing: %s", command)
        start = time.monotonic()

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                stdin=subprocess.DEVNULL,
            )
        except FileNotFoundError:
            return Receipt.failure(
                operation=command,
                error=f"Command not found: {cmd[0]}",
                return_code=127,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                operation=command,
                error=f"Command timed out after {timeout}s",
                metadata={"timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(operation=command, error=f"Command execution error: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = (result.stdout or "").strip()[-_OUTPUT_TAIL:]
        stderr = (result.stderr or "").strip()[-_OUTPUT_TAIL:]

        if result.returncode == 0:
            return Receipt.success(
                operation=command,
                output=output,
                duration_ms=elapsed_ms,
                return_code=0,
                metadata={"stderr": stderr},
            )

        logger.debug("Command failed (exit %d): %s", result.returncode, command)
        return Receipt.failure(
            operation=command,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            return_code=result.returncode,
        )
