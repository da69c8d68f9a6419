"""Interactive collection of a deployment spec."""

from typing import List, Optional, Tuple

import typer
from rich.console import Console
from pydantic import SecretStr

from proxlite.models.config import ProxliteConfig
from proxlite.models.spec import (
    ApplicationConfig,
    DhcpAddressing,
    NetworkSpec,
    ResourceSpec,
    SpecModel,
    StaticAddressing,
)


DEFAULT_STORAGE = "local-lvm"


def choose_storage(pools: List[str], console: Console) -> str:
    """Pick a storage pool, keeping the default on an unknown choice."""
    console.print("[blue][INFO][/blue] Available storage pools:")
    for pool in pools:
        console.print(f"  - {pool}")

    if not typer.confirm(f"Use default storage ({DEFAULT_STORAGE})?", default=True):
        choice = typer.prompt("Enter storage name").strip()
        if choice in pools:
            return choice
        console.print(f"[red][ERROR][/red] Invalid storage selected. Using default: {DEFAULT_STORAGE}")
    return DEFAULT_STORAGE


def prompt_resources(console: Console) -> Tuple[ResourceSpec, str]:
    """Ask for sizing and hostname, or take the defaults."""
    defaults = ResourceSpec()
    hostname = "litellm"
    console.print(
        f"[blue][INFO][/blue] Default container settings: {defaults.cpu_cores} CPU cores, "
        f"{defaults.memory_mb}MB RAM, {defaults.disk_gb}GB disk, hostname {hostname}"
    )
    if typer.confirm("Use default container settings?", default=True):
        return defaults, hostname

    resources = ResourceSpec(
        cpu_cores=typer.prompt("CPU cores", default=defaults.cpu_cores, type=int),
        memory_mb=typer.prompt("Memory (MB)", default=defaults.memory_mb, type=int),
        swap_mb=defaults.swap_mb,
        disk_gb=typer.prompt("Disk size (GB)", default=defaults.disk_gb, type=int),
    )
    hostname = typer.prompt("Hostname", default=hostname)
    return resources, hostname


def prompt_password(console: Console) -> SecretStr:
    """Ask for the root password until a non-empty one is given."""
    while True:
        password = typer.prompt(
            "Set container root password", hide_input=True, default="", show_default=False
        )
        if password:
            return SecretStr(password)
        console.print("[red][ERROR][/red] Password is required")


def prompt_network(console: Console) -> NetworkSpec:
    """Ask for the bridge and addressing mode."""
    bridge = typer.prompt("Network bridge", default="vmbr0")
    if typer.confirm("Use DHCP for networking?", default=True):
        return NetworkSpec(bridge=bridge, addressing=DhcpAddressing())

    cidr = typer.prompt("IP address (CIDR, e.g. 192.168.1.100/24)")
    gateway = typer.prompt("Gateway IP address")
    return NetworkSpec(bridge=bridge, addressing=StaticAddressing(cidr=cidr, gateway=gateway))


def prompt_for_spec(
    pools: List[str],
    config: ProxliteConfig,
    console: Console,
    container_id: Optional[int] = None,
) -> SpecModel:
    """Walk the operator through the install questions and build a spec."""
    storage = choose_storage(pools, console)
    resources, hostname = prompt_resources(console)
    root_credential = prompt_password(console)
    network = prompt_network(console)

    return SpecModel(
        container_id=container_id,
        hostname=hostname,
        template=config.proxmox.template,
        resources=resources,
        network=network,
        storage_target=storage,
        root_credential=root_credential,
        application=ApplicationConfig().with_generated_secrets(),
    )
