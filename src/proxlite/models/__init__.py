"""Pydantic models for configuration and desired state, plus run-time state types."""

from proxlite.models.config import ProxliteConfig, EngineConfig, ProxmoxConfig
from proxlite.models.spec import (
    SpecModel,
    ResourceSpec,
    NetworkSpec,
    DhcpAddressing,
    StaticAddressing,
    ApplicationConfig,
)
from proxlite.models.state import (
    ObservedState,
    Outcome,
    ReconcileReport,
    RunOutcome,
    Step,
    StepError,
    StepResult,
)

__all__ = [
    "ProxliteConfig",
    "EngineConfig",
    "ProxmoxConfig",
    "SpecModel",
    "ResourceSpec",
    "NetworkSpec",
    "DhcpAddressing",
    "StaticAddressing",
    "ApplicationConfig",
    "ObservedState",
    "Outcome",
    "ReconcileReport",
    "RunOutcome",
    "Step",
    "StepError",
    "StepResult",
]
