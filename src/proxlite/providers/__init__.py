"""Cluster and guest adapters for proxlite."""

from proxlite.providers.base import ClusterClient, GuestExecutor
from proxlite.providers.registry import BackendRegistry, get_backend_registry

__all__ = [
    "ClusterClient",
    "GuestExecutor",
    "BackendRegistry",
    "get_backend_registry",
]
