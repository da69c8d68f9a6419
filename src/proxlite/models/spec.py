"""Desired-state models for a LiteLLM container deployment."""

import secrets
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr

from proxlite.models.config import DEFAULT_TEMPLATE


MASTER_KEY = "LITELLM_MASTER_KEY"
SALT_KEY = "LITELLM_SALT_KEY"
REQUIRED_SECRETS = (MASTER_KEY, SALT_KEY)

DEFAULT_DESCRIPTION = "LiteLLM Proxy Server - OpenAI compatible API"


def default_settings() -> Dict[str, Any]:
    """Routing configuration written on a fresh install."""
    return {
        "model_list": [
            {
                "model_name": "gpt-3.5-turbo",
                "litellm_params": {"model": "gpt-3.5-turbo"},
            }
        ]
    }


def generate_secret(prefix: str = "sk-") -> str:
    """Generate a random API key."""
    return f"{prefix}{secrets.token_urlsafe(24)}"


class ResourceSpec(BaseModel):
    """Container resource sizing."""
    cpu_cores: int = Field(default=2)
    memory_mb: int = Field(default=2048)
    swap_mb: int = Field(default=512)
    disk_gb: int = Field(default=8)

    class Config:
        """Pydantic config."""
        frozen = True


class DhcpAddressing(BaseModel):
    """Address assigned by DHCP."""
    mode: Literal["dhcp"] = "dhcp"

    class Config:
        """Pydantic config."""
        frozen = True


class StaticAddressing(BaseModel):
    """Fixed address in CIDR form plus gateway."""
    mode: Literal["static"] = "static"
    cidr: str = Field(..., description="e.g. 192.168.1.100/24")
    gateway: str = Field(..., description="Gateway IP address")

    class Config:
        """Pydantic config."""
        frozen = True


class NetworkSpec(BaseModel):
    """Container network attachment."""
    bridge: str = Field(default="vmbr0")
    addressing: Union[DhcpAddressing, StaticAddressing] = Field(
        default_factory=DhcpAddressing, discriminator="mode"
    )

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def is_dhcp(self) -> bool:
        return isinstance(self.addressing, DhcpAddressing)


class ApplicationConfig(BaseModel):
    """LiteLLM proxy configuration and its secret keys."""
    settings: Dict[str, Any] = Field(default_factory=default_settings)
    secrets: Dict[str, SecretStr] = Field(default_factory=dict)
    port: int = Field(default=4000)
    num_workers: int = Field(default=2)
    package: str = Field(default="litellm[proxy]")

    class Config:
        """Pydantic config."""
        frozen = True

    def with_generated_secrets(self) -> "ApplicationConfig":
        """Return a copy where every required secret has a value."""
        filled = dict(self.secrets)
        for key in REQUIRED_SECRETS:
            if key not in filled or not filled[key].get_secret_value():
                filled[key] = SecretStr(generate_secret())
        return self.copy(update={"secrets": filled})

    def secret_values(self) -> Dict[str, str]:
        """Plain secret values, for the installer only."""
        return {key: value.get_secret_value() for key, value in self.secrets.items()}


class SpecModel(BaseModel):
    """Desired container plus installed application state."""
    container_id: Optional[int] = Field(None, description="Absent means allocate a new id")
    hostname: str = Field(default="litellm")
    template: str = Field(default=DEFAULT_TEMPLATE)
    description: str = Field(default=DEFAULT_DESCRIPTION)
    resources: ResourceSpec = Field(default_factory=ResourceSpec)
    network: NetworkSpec = Field(default_factory=NetworkSpec)
    storage_target: str = Field(default="local-lvm")
    root_credential: SecretStr = Field(...)
    application: ApplicationConfig = Field(default_factory=ApplicationConfig)

    class Config:
        """Pydantic config."""
        frozen = True
        extra = "forbid"

    def secret_values(self) -> List[str]:
        """Every secret this spec carries, for redaction."""
        values = [self.root_credential.get_secret_value()]
        values.extend(self.application.secret_values().values())
        return [v for v in values if v]
