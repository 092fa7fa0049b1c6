"""
Error taxonomy for a provisioning run.

Only two of these are fatal: ``PreconditionError`` (raised before any
mutation) and ``StepFailure`` for an Install step. ``UserCancelled`` is
a clean exit. Degraded probes are recorded on the ``InstallState``
rather than raised (see ``ProbeDegraded`` in ``core.models.state``).
"""

from __future__ import annotations


class ProvisionerError(Exception):
    """Base class for all provisioner errors."""


class PreconditionError(ProvisionerError):
    """The host cannot be provisioned (wrong OS, arch, privilege, no network)."""

    def __init__(self, check: str, message: str):
        super().__init__(message)
        self.check = check
        self.message = message


class StepFailure(ProvisionerError):
    """A plan step failed.

    Only raised for Install steps; the executor converts it into an
    aborted report carrying the external tool's exit status.
    """

    def __init__(
        self,
        kind: str,
        step_name: str,
        message: str,
        exit_status: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.step_name = step_name
        self.message = message
        self.exit_status = exit_status

    def __str__(self) -> str:
        status = f" (exit {self.exit_status})" if self.exit_status is not None else ""
        return f"{self.kind} step '{self.step_name}' failed{status}: {self.message}"


class UserCancelled(ProvisionerError):
    """The operator declined to proceed. Not an error: exit code 0."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason
