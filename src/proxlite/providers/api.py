"""ClusterClient backed by the Proxmox VE REST API."""

import asyncio
import logging
import urllib.parse
from typing import Any, Dict, List, Optional

import httpx
from pydantic import SecretStr

from proxlite.errors import ClusterError
from proxlite.models.spec import NetworkSpec, ResourceSpec
from proxlite.providers.base import ClusterClient
from proxlite.providers.pct import network_argument


logger = logging.getLogger(__name__)


class ProxmoxApiClient(ClusterClient):
    """Proxmox VE API client for LXC container lifecycle."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        node: Optional[str] = None,
        verify_ssl: bool = False,
        task_timeout: float = 600,
        task_poll_interval: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize API client.

        ``api_token`` has the form ``user@realm!tokenid=secret``.
        """
        token_id, sep, token_secret = api_token.partition("=")
        if not sep or not token_id or not token_secret:
            raise ClusterError(
                "Invalid Proxmox API token format. Expected 'user@realm!tokenid=secret'"
            )
        self.node = node
        self.task_timeout = task_timeout
        self.task_poll_interval = task_poll_interval
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/api2/json",
            headers={"Authorization": f"PVEAPIToken={token_id}={token_secret}"},
            verify=verify_ssl,
            timeout=60.0,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make an authenticated API request and return its ``data`` member."""
        try:
            response = await self._client.request(method, endpoint, data=data, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ClusterError(
                f"PVE API error {e.response.status_code} on {method} {endpoint}: {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise ClusterError(f"PVE API connection error on {method} {endpoint}: {e}") from e
        return response.json().get("data")

    async def get_node(self) -> str:
        """Get the target node, auto-detecting the first one if unset."""
        if self.node:
            return self.node
        nodes = await self._request("GET", "/nodes") or []
        if not nodes:
            raise ClusterError("No nodes found in PVE cluster")
        self.node = nodes[0]["node"]
        return self.node

    async def await_task(self, upid: str) -> Dict[str, Any]:
        """Wait for a task to complete."""
        node = await self.get_node()
        encoded = urllib.parse.quote(upid, safe="")
        elapsed = 0.0
        while elapsed < self.task_timeout:
            status = await self._request("GET", f"/nodes/{node}/tasks/{encoded}/status") or {}
            if status.get("status") == "stopped":
                exitstatus = status.get("exitstatus", "")
                if exitstatus == "OK":
                    return status
                raise ClusterError(f"Task {upid} failed: {exitstatus}")
            await asyncio.sleep(self.task_poll_interval)
            elapsed += self.task_poll_interval
        raise ClusterError(f"Task {upid} timed out after {self.task_timeout}s")

    async def next_identifier(self) -> int:
        """Ask the cluster for the next free VMID."""
        data = await self._request("GET", "/cluster/nextid")
        try:
            return int(data)
        except (TypeError, ValueError) as e:
            raise ClusterError(f"Unexpected nextid response: {data!r}") from e

    async def list_storage_pools(self, content: str = "rootdir") -> List[str]:
        """List enabled storage pools accepting this content type."""
        node = await self.get_node()
        pools = await self._request(
            "GET", f"/nodes/{node}/storage", params={"content": content, "enabled": 1}
        ) or []
        return [pool["storage"] for pool in pools]

    async def exists(self, container_id: int) -> bool:
        """Check whether the VMID is among the node's containers."""
        node = await self.get_node()
        containers = await self._request("GET", f"/nodes/{node}/lxc") or []
        return any(int(c["vmid"]) == container_id for c in containers)

    async def is_running(self, container_id: int) -> bool:
        """Check the container's current status."""
        node = await self.get_node()
        status = await self._request("GET", f"/nodes/{node}/lxc/{container_id}/status/current") or {}
        return status.get("status") == "running"

    async def ensure_template(self, template: str) -> None:
        """Download the OS template through the appliance index if missing."""
        node = await self.get_node()
        storage, _, volume = template.partition(":")
        content = await self._request(
            "GET", f"/nodes/{node}/storage/{storage}/content", params={"content": "vztmpl"}
        ) or []
        if any(item.get("volid") == template for item in content):
            return

        name = volume.split("/", 1)[-1]
        logger.info(f"Downloading template {name} to {storage}")
        upid = await self._request(
            "POST", f"/nodes/{node}/aplinfo", data={"storage": storage, "template": name}
        )
        await self.await_task(upid)

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
        node = await self.get_node()
        logger.info(f"Creating container {container_id} on {storage_target}")
        upid = await self._request("POST", f"/nodes/{node}/lxc", data={
            "vmid": container_id,
            "ostemplate": template,
            "hostname": hostname,
            "cores": resources.cpu_cores,
            "memory": resources.memory_mb,
            "swap": resources.swap_mb,
            "rootfs": f"{storage_target}:{resources.disk_gb}",
            "net0": network_argument(network),
            "features": "nesting=1",
            "password": root_credential.get_secret_value(),
            "unprivileged": 1,
        })
        await self.await_task(upid)

    async def start(self, container_id: int) -> None:
        """Start the container and wait for the task."""
        node = await self.get_node()
        logger.info(f"Starting container {container_id}")
        upid = await self._request("POST", f"/nodes/{node}/lxc/{container_id}/status/start")
        await self.await_task(upid)

    async def query_address(self, container_id: int) -> Optional[str]:
        """Read the first non-loopback IPv4 address from the interface list."""
        node = await self.get_node()
        interfaces = await self._request("GET", f"/nodes/{node}/lxc/{container_id}/interfaces") or []
        for interface in interfaces:
            if interface.get("name") == "lo":
                continue
            inet = interface.get("inet")
            if inet:
                return inet.split("/", 1)[0]
        return None

    async def set_description(self, container_id: int, text: str) -> None:
        """Set the container description."""
        node = await self.get_node()
        await self._request("PUT", f"/nodes/{node}/lxc/{container_id}/config", data={"description": text})
