"""
Exception taxonomy for proxlite.

Errors are split by where they originate and whether the step runner may
retry them:
- SpecValidationError: malformed desired state, raised before any change
- ClusterError: hypervisor control plane failures
- ExecError: guest command or file transfer failures
- NetworkTimeout / ServiceDidNotStart: bounded waits that ran out
- ReconcileCancelled: operator abort, not a failure
"""

from typing import List, NamedTuple, Optional


class ProxliteError(Exception):
    """Base exception for proxlite."""
    pass


class ConfigError(ProxliteError):
    """Configuration file missing, unreadable or invalid."""
    pass


class ValidationIssue(NamedTuple):
    """A single violated constraint on the desired state."""
    field: str
    message: str


class SpecValidationError(ProxliteError):
    """Desired state failed validation.

    Carries every violated constraint, not just the first one found.
    """

    def __init__(self, issues: List[ValidationIssue]):
        self.issues = list(issues)
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in self.issues)
        super().__init__(f"Invalid deployment spec: {summary}")

    @property
    def fields(self) -> List[str]:
        """Names of the fields that failed validation."""
        return [issue.field for issue in self.issues]


class ClusterError(ProxliteError):
    """Hypervisor-layer operation failed."""
    pass


class ExecError(ProxliteError):
    """Guest command execution or file transfer failed."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class WaitExhausted(ProxliteError):
    """A bounded polling wait gave up."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class NetworkTimeout(WaitExhausted):
    """Container never reported a network address."""
    pass


class ServiceDidNotStart(WaitExhausted):
    """Guest service never reported itself active."""
    pass


class ReconcileCancelled(ProxliteError):
    """Operator asked the run to stop."""
    pass
