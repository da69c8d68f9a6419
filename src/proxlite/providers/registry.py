"""Backend registry for selecting cluster and guest adapters."""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from proxlite.errors import ConfigError
from proxlite.models.config import ProxmoxConfig
from proxlite.providers.api import ProxmoxApiClient
from proxlite.providers.base import ClusterClient, GuestExecutor
from proxlite.providers.pct import PctClusterClient, PctGuestExecutor


logger = logging.getLogger(__name__)


def _build_pct(config: ProxmoxConfig) -> ClusterClient:
    return PctClusterClient(template_storage=config.template_storage)


def _build_api(config: ProxmoxConfig) -> ClusterClient:
    if not config.api_url or not config.api_token:
        raise ConfigError("The api backend requires proxmox.api_url and proxmox.api_token")
    return ProxmoxApiClient(
        api_url=config.api_url,
        api_token=config.api_token.get_secret_value(),
        node=config.node,
        verify_ssl=config.verify_ssl,
    )


class BackendRegistry:
    """Registry mapping backend names to adapter factories."""

    def __init__(self):
        """Initialize backend registry."""
        self._cluster_factories: Dict[str, Callable[[ProxmoxConfig], ClusterClient]] = {
            "pct": _build_pct,
            "api": _build_api,
        }
        self._guest_factory: Callable[[], GuestExecutor] = PctGuestExecutor

    def register(self, name: str, factory: Callable[[ProxmoxConfig], ClusterClient]) -> None:
        """Register an additional cluster backend."""
        self._cluster_factories[name] = factory

    def build(self, config: ProxmoxConfig) -> Tuple[ClusterClient, GuestExecutor]:
        """Instantiate the configured cluster client and the guest executor."""
        factory = self._cluster_factories.get(config.backend)
        if factory is None:
            raise ConfigError(f"Unknown cluster backend: {config.backend}")
        cluster = factory(config)
        logger.debug(f"Using {config.backend} cluster backend")
        return cluster, self._guest_factory()

    def list_backends(self) -> List[str]:
        """List available backend names."""
        return list(self._cluster_factories.keys())


_registry: Optional[BackendRegistry] = None


def get_backend_registry() -> BackendRegistry:
    """Return the process-wide backend registry."""
    global _registry
    if _registry is None:
        _registry = BackendRegistry()
    return _registry
