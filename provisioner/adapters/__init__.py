"""Adapters — how the provisioner talks to the host.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import HostAdapter
from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.shell.command import ShellCommandAdapter

__all__ = [
    "HostAdapter",
    "MockAdapter",
    "ShellCommandAdapter",
]
