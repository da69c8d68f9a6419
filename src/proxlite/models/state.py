"""Observed state, plan steps and run results."""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class Step(Enum):
    """Provisioning steps, declared in execution order."""
    ALLOCATE_CONTAINER = "allocate_container"
    CREATE_CONTAINER = "create_container"
    START_CONTAINER = "start_container"
    WAIT_FOR_NETWORK = "wait_for_network"
    PUSH_INSTALLER = "push_installer"
    RUN_INSTALLER = "run_installer"
    VERIFY_SERVICE = "verify_service"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()


class Outcome(Enum):
    """Outcome of a single step."""
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"
    CANCELLED = "cancelled"


class RunOutcome(Enum):
    """Terminal state of a reconciliation run."""
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ObservedState:
    """What the cluster and guest currently report."""
    container_id: Optional[int] = None
    exists: bool = False
    running: bool = False
    ip_address: Optional[str] = None
    installed: bool = False
    service_active: bool = False

    def apply(self, delta: Dict[str, Any]) -> None:
        """Merge a step's observed delta into this state."""
        known = {f.name for f in fields(self)}
        for key, value in delta.items():
            if key not in known:
                raise KeyError(f"Unknown observed state field: {key}")
            setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class StepError:
    """Why a step failed. Messages are scrubbed of secrets before storage."""
    kind: str
    message: str
    attempts: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "attempts": self.attempts}


@dataclass
class StepResult:
    """Result of executing one step."""
    step: Step
    outcome: Outcome
    attempts: int = 1
    error: Optional[StepError] = None
    observed_delta: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "outcome": self.outcome.value,
            "attempts": self.attempts,
            "error": self.error.to_dict() if self.error else None,
            "observed_delta": dict(self.observed_delta),
        }


@dataclass
class ReconcileReport:
    """Everything a run attempted, and how far it got."""
    outcome: RunOutcome
    plan: List[Step] = field(default_factory=list)
    results: List[StepResult] = field(default_factory=list)
    failed_index: Optional[int] = None
    observed: ObservedState = field(default_factory=ObservedState)

    @property
    def succeeded(self) -> bool:
        return self.outcome == RunOutcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "plan": [step.value for step in self.plan],
            "results": [result.to_dict() for result in self.results],
            "failed_index": self.failed_index,
            "observed": self.observed.to_dict(),
        }
