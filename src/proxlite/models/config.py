"""Configuration models."""

from typing import Literal, Optional
from pydantic import BaseModel, Field, SecretStr, validator


DEFAULT_TEMPLATE = "local:vztmpl/debian-12-standard_12.7-1_amd64.tar.zst"


class EngineConfig(BaseModel):
    """Reconciliation engine configuration."""
    log_level: str = Field(default="INFO")
    retry_attempts: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=2.0, ge=0)
    backoff: Literal["fixed", "exponential"] = Field(default="exponential")
    network_poll_attempts: int = Field(default=10, ge=1)
    network_poll_interval: float = Field(default=2.0, ge=0)
    service_poll_attempts: int = Field(default=10, ge=1)
    service_poll_interval: float = Field(default=3.0, ge=0)

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class ProxmoxConfig(BaseModel):
    """Proxmox VE connection configuration."""
    backend: Literal["pct", "api"] = Field(default="pct")
    api_url: Optional[str] = Field(None, description="e.g. https://pve.example.com:8006")
    api_token: Optional[SecretStr] = Field(None, description="user@realm!tokenid=secret")
    node: Optional[str] = Field(None, description="Target node, auto-detected if unset")
    verify_ssl: bool = Field(default=False)
    template: str = Field(default=DEFAULT_TEMPLATE)
    template_storage: str = Field(default="local")


class ProxliteConfig(BaseModel):
    """Main configuration model."""
    engine: EngineConfig = Field(default_factory=EngineConfig)
    proxmox: ProxmoxConfig = Field(default_factory=ProxmoxConfig)

    class Config:
        """Pydantic config."""
        extra = "ignore"
