"""
Provisioning errors — the fatal half of the error taxonomy.

Degraded detection, user cancellation and verification timeouts are
NOT exceptions: they surface as warnings or a result status.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for fatal provisioning errors."""


class PrerequisiteMissing(ProvisionError):
    """A precondition failed (privilege, required tool, artifact).

    Always raised before the host is mutated.
    """


class RegistrationFailure(ProvisionError):
    """The host supervisor rejected the service definition."""


class DeregistrationFailure(ProvisionError):
    """The service could not be removed safely (still running)."""
