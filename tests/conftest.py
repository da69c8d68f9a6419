"""Shared fixtures: in-memory cluster and guest fakes."""

from typing import Any, Callable, Dict, List, Optional

import pytest
from pydantic import SecretStr

from proxlite.errors import ExecError
from proxlite.models.config import EngineConfig
from proxlite.models.spec import ApplicationConfig, SpecModel
from proxlite.providers.base import ClusterClient, GuestExecutor
from proxlite.utils.process import CommandResult


ROOT_PASSWORD = "hunter2-root-pw"
MASTER_KEY_VALUE = "sk-master-abcdef123456"
SALT_KEY_VALUE = "sk-salt-654321fedcba"


class FakeCluster(ClusterClient):
    """Records every call and simulates container lifecycle in memory."""

    def __init__(self, pools=("local", "local-lvm"), next_id: int = 100, address: str = "10.0.0.5"):
        self.calls: List[tuple] = []
        self.pools = list(pools)
        self.next_id = next_id
        self.address = address
        self.address_delay = 0
        self.containers: Dict[int, Dict[str, Any]] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.closed = False

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def fail(self, method: str, *errors: Exception):
        """Queue errors raised by successive calls to a method."""
        self.errors.setdefault(method, []).extend(errors)

    def _record(self, name: str, *args):
        self.calls.append((name,) + args)
        queue = self.errors.get(name)
        if queue:
            raise queue.pop(0)

    async def next_identifier(self) -> int:
        self._record("next_identifier")
        return self.next_id

    async def list_storage_pools(self, content: str = "rootdir") -> List[str]:
        self._record("list_storage_pools", content)
        return list(self.pools)

    async def exists(self, container_id: int) -> bool:
        self._record("exists", container_id)
        return container_id in self.containers

    async def is_running(self, container_id: int) -> bool:
        self._record("is_running", container_id)
        return self.containers.get(container_id, {}).get("running", False)

    async def create(self, container_id, template, resources, network, storage_target, root_credential, hostname):
        self._record("create", container_id)
        self.containers[container_id] = {
            "running": False,
            "hostname": hostname,
            "storage": storage_target,
            "resources": resources,
            "network": network,
        }

    async def start(self, container_id: int) -> None:
        self._record("start", container_id)
        self.containers[container_id]["running"] = True

    async def query_address(self, container_id: int) -> Optional[str]:
        self._record("query_address", container_id)
        if not self.containers.get(container_id, {}).get("running"):
            return None
        if self.address_delay > 0:
            self.address_delay -= 1
            return None
        return self.address

    async def set_description(self, container_id: int, text: str) -> None:
        self._record("set_description", container_id, text)
        self.containers[container_id]["description"] = text

    async def close(self) -> None:
        self.closed = True


class FakeGuest(GuestExecutor):
    """Simulates the installer and the service inside a container."""

    def __init__(self, address: str = "10.0.0.5"):
        self.calls: List[tuple] = []
        self.files: Dict[str, tuple] = {}
        self.address = address
        self.installed = False
        self.service_states: List[str] = []
        self.errors: Dict[str, List[Exception]] = {}
        self.on_exec: Optional[Callable[[List[str]], None]] = None

    def fail(self, method: str, *errors: Exception):
        self.errors.setdefault(method, []).extend(errors)

    def _record(self, name: str, *args):
        self.calls.append((name,) + args)
        queue = self.errors.get(name)
        if queue:
            raise queue.pop(0)

    def commands(self) -> List[List[str]]:
        return [call[2] for call in self.calls if call[0] == "exec"]

    async def push_file(self, container_id: int, content: str, remote_path: str, mode: int = 0o600) -> None:
        self._record("push_file", container_id, remote_path, mode)
        self.files[remote_path] = (content, mode)

    async def exec(self, container_id: int, command: List[str], check: bool = True) -> CommandResult:
        self._record("exec", container_id, list(command))
        if self.on_exec is not None:
            self.on_exec(command)

        if command[:2] == ["test", "-f"]:
            return CommandResult(returncode=0 if self.installed else 1)
        if command[0] == "bash":
            self.installed = True
            return CommandResult(returncode=0, stdout=f"Setting up litellm...\n{self.address}\n")
        if command[:2] == ["systemctl", "is-active"]:
            if self.service_states:
                state = self.service_states.pop(0)
            else:
                state = "active" if self.installed else "inactive"
            if check and state != "active":
                raise ExecError(f"Command systemctl exited with 3: {state}", exit_code=3)
            return CommandResult(returncode=0 if state == "active" else 3, stdout=f"{state}\n")
        return CommandResult(returncode=0)


@pytest.fixture
def cluster():
    """Fresh in-memory cluster."""
    return FakeCluster()


@pytest.fixture
def guest():
    """Fresh in-memory guest."""
    return FakeGuest()


@pytest.fixture
def fast_settings():
    """Engine settings with no waiting between attempts."""
    return EngineConfig(
        retry_attempts=3,
        retry_backoff=0,
        network_poll_attempts=10,
        network_poll_interval=0,
        service_poll_attempts=5,
        service_poll_interval=0,
    )


@pytest.fixture
def make_spec():
    """Factory for valid specs with known secrets."""
    def factory(**overrides) -> SpecModel:
        data: Dict[str, Any] = {
            "root_credential": SecretStr(ROOT_PASSWORD),
            "application": ApplicationConfig(secrets={
                "LITELLM_MASTER_KEY": SecretStr(MASTER_KEY_VALUE),
                "LITELLM_SALT_KEY": SecretStr(SALT_KEY_VALUE),
            }),
        }
        data.update(overrides)
        return SpecModel(**data)
    return factory
