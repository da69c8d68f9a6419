"""Base interfaces for the hypervisor control plane and guest execution."""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import SecretStr

from proxlite.models.spec import NetworkSpec, ResourceSpec
from proxlite.utils.process import CommandResult


class ClusterClient(ABC):
    """Container lifecycle operations on the hypervisor.

    Implementations raise ``ClusterError`` for any failed operation.
    """

    @abstractmethod
    async def next_identifier(self) -> int:
        """Return the next free container id."""
        pass

    @abstractmethod
    async def list_storage_pools(self, content: str = "rootdir") -> List[str]:
        """List storage pools that accept the given content type."""
        pass

    @abstractmethod
    async def exists(self, container_id: int) -> bool:
        """Check whether a container with this id exists."""
        pass

    @abstractmethod
    async def is_running(self, container_id: int) -> bool:
        """Check whether the container is running."""
        pass

    @abstractmethod
    async def create(
        self,
        container_id: int,
        template: str,
        resources: ResourceSpec,
        network: NetworkSpec,
        storage_target: str,
        root_credential: SecretStr,
        hostname: str,
    ) -> None:
        """Create the container. Not idempotent at the cluster layer."""
        pass

    @abstractmethod
    async def start(self, container_id: int) -> None:
        """Start the container."""
        pass

    @abstractmethod
    async def query_address(self, container_id: int) -> Optional[str]:
        """Return the container's IPv4 address, if one is assigned yet."""
        pass

    @abstractmethod
    async def set_description(self, container_id: int, text: str) -> None:
        """Set the container description shown in the hypervisor UI."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass


class GuestExecutor(ABC):
    """Runs commands and places files inside a container.

    Implementations raise ``ExecError`` for transfer failures and, when
    ``check`` is true, for commands exiting non-zero.
    """

    @abstractmethod
    async def push_file(
        self,
        container_id: int,
        content: str,
        remote_path: str,
        mode: int = 0o600,
    ) -> None:
        """Write content to a path inside the container."""
        pass

    @abstractmethod
    async def exec(
        self,
        container_id: int,
        command: List[str],
        check: bool = True,
    ) -> CommandResult:
        """Execute a command inside the container."""
        pass
