"""Cluster and guest adapters backed by the Proxmox ``pct`` tool family."""

import asyncio
import logging
import os
import subprocess
import tempfile
from typing import List, Optional

from pydantic import SecretStr

from proxlite.errors import ClusterError, ExecError
from proxlite.models.spec import NetworkSpec, ResourceSpec, StaticAddressing
from proxlite.providers.base import ClusterClient, GuestExecutor
from proxlite.utils.network import first_ipv4
from proxlite.utils.process import CommandResult, run_command


logger = logging.getLogger(__name__)


def _describe_failure(e: subprocess.CalledProcessError) -> str:
    stderr = (e.stderr or "").strip()
    return stderr or f"exit code {e.returncode}"


def network_argument(network: NetworkSpec) -> str:
    """Build the ``-net0`` value for ``pct create``."""
    if isinstance(network.addressing, StaticAddressing):
        addressing = f"ip={network.addressing.cidr},gw={network.addressing.gateway}"
    else:
        addressing = "ip=dhcp"
    return f"name=eth0,bridge={network.bridge},{addressing}"


class PctClusterClient(ClusterClient):
    """ClusterClient that shells out to pvesh, pvesm, pveam, pct and lxc-info."""

    def __init__(self, template_storage: str = "local", command_timeout: float = 600):
        """Initialize pct cluster client."""
        self.template_storage = template_storage
        self.command_timeout = command_timeout

    async def _run(self, cmd: List[str], secrets=(), **kwargs) -> CommandResult:
        try:
            return await run_command(cmd, timeout=self.command_timeout, secrets=secrets, **kwargs)
        except subprocess.CalledProcessError as e:
            raise ClusterError(f"{cmd[0]} {cmd[1]} failed: {_describe_failure(e)}") from e
        except subprocess.TimeoutExpired as e:
            raise ClusterError(f"{cmd[0]} {cmd[1]} timed out after {e.timeout}s") from e
        except OSError as e:
            raise ClusterError(f"Unable to run {cmd[0]}: {e}") from e

    async def next_identifier(self) -> int:
        """Ask the cluster for the next free VMID."""
        result = await self._run(["pvesh", "get", "/cluster/nextid"])
        try:
            return int(result.stdout.strip().strip('"'))
        except ValueError as e:
            raise ClusterError(f"Unexpected nextid output: {result.stdout!r}") from e

    async def list_storage_pools(self, content: str = "rootdir") -> List[str]:
        """List active storage pools accepting this content type."""
        result = await self._run(["pvesm", "status", "-content", content])
        pools = []
        for line in result.stdout.strip().splitlines()[1:]:
            parts = line.split()
            if parts:
                pools.append(parts[0])
        return pools

    async def exists(self, container_id: int) -> bool:
        """Check container existence via ``pct status``."""
        result = await self._run(["pct", "status", str(container_id)], check=False)
        return result.returncode == 0

    async def is_running(self, container_id: int) -> bool:
        """Check whether ``pct status`` reports running."""
        result = await self._run(["pct", "status", str(container_id)], check=False)
        return result.returncode == 0 and "running" in result.stdout

    async def ensure_template(self, template: str) -> None:
        """Download the OS template into the cache if it is missing."""
        storage, _, volume = template.partition(":")
        if not volume:
            storage, volume = self.template_storage, f"vztmpl/{template}"
        name = volume.split("/", 1)[-1]

        listing = await self._run(["pveam", "list", storage])
        if name in listing.stdout:
            logger.debug(f"Template {name} already cached on {storage}")
            return

        logger.info(f"Downloading template {name} to {storage}")
        await self._run(["pveam", "update"])
        await self._run(["pveam", "download", storage, name])

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
        """Create an unprivileged container with nesting enabled."""
        await self.ensure_template(template)

        password = root_credential.get_secret_value()
        cmd = [
            "pct", "create", str(container_id), template,
            "-hostname", hostname,
            "-cores", str(resources.cpu_cores),
            "-memory", str(resources.memory_mb),
            "-swap", str(resources.swap_mb),
            "-rootfs", f"{storage_target}:{resources.disk_gb}",
            "-net0", network_argument(network),
            "-features", "nesting=1",
            "-password", password,
            "-unprivileged", "1",
        ]
        logger.info(f"Creating container {container_id} on {storage_target}")
        await self._run(cmd, secrets=[password])

    async def start(self, container_id: int) -> None:
        """Start the container."""
        logger.info(f"Starting container {container_id}")
        await self._run(["pct", "start", str(container_id)])

    async def query_address(self, container_id: int) -> Optional[str]:
        """Read the container's addresses from ``lxc-info``."""
        result = await self._run(["lxc-info", "-n", str(container_id), "-iH"], check=False)
        if result.returncode != 0:
            return None
        return first_ipv4(result.stdout)

    async def set_description(self, container_id: int, text: str) -> None:
        """Set the container description."""
        await self._run(["pct", "set", str(container_id), "-description", text])


class PctGuestExecutor(GuestExecutor):
    """GuestExecutor using ``pct push`` and ``pct exec``."""

    def __init__(self, command_timeout: float = 1800):
        """Initialize pct guest executor."""
        self.command_timeout = command_timeout

    async def push_file(
        self,
        container_id: int,
        content: str,
        remote_path: str,
        mode: int = 0o600,
    ) -> None:
        """Stage content in a private temp file and push it into the guest."""
        local_path = await asyncio.to_thread(self._write_private_tempfile, content)
        try:
            await run_command(
                ["pct", "push", str(container_id), local_path, remote_path,
                 "--perms", f"{mode:04o}"],
                timeout=self.command_timeout,
            )
            logger.debug(f"Pushed {remote_path} to container {container_id}")
        except subprocess.CalledProcessError as e:
            raise ExecError(
                f"pct push to {remote_path} failed: {_describe_failure(e)}",
                exit_code=e.returncode,
                stderr=e.stderr or "",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExecError(f"pct push to {remote_path} timed out after {e.timeout}s") from e
        finally:
            await asyncio.to_thread(os.unlink, local_path)

    @staticmethod
    def _write_private_tempfile(content: str) -> str:
        fd, path = tempfile.mkstemp(prefix="proxlite-")
        with os.fdopen(fd, "w") as handle:
            handle.write(content)
        os.chmod(path, 0o600)
        return path

    async def exec(
        self,
        container_id: int,
        command: List[str],
        check: bool = True,
    ) -> CommandResult:
        """Run a command in the guest via ``pct exec``."""
        cmd = ["pct", "exec", str(container_id), "--", *command]
        try:
            return await run_command(cmd, check=check, timeout=self.command_timeout)
        except subprocess.CalledProcessError as e:
            raise ExecError(
                f"Command {command[0]} exited with {e.returncode}: {_describe_failure(e)}",
                exit_code=e.returncode,
                stderr=e.stderr or "",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExecError(f"Command {command[0]} timed out after {e.timeout}s") from e
        except OSError as e:
            raise ExecError(f"Unable to run pct: {e}") from e
