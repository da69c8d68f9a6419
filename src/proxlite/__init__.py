"""
proxlite - Declarative LiteLLM provisioning for Proxmox VE containers.

Reconciles a desired container and application state against what the
cluster reports, and converges it through ordered, idempotent steps.
"""

__version__ = "1.0.0"
__author__ = "proxlite Development Team"

# Re-export key components for easier access
from proxlite.models.config import ProxliteConfig
from proxlite.models.spec import SpecModel
from proxlite.models.state import ObservedState, ReconcileReport, Step, StepResult

__all__ = [
    "ProxliteConfig",
    "SpecModel",
    "ObservedState",
    "ReconcileReport",
    "Step",
    "StepResult",
]
