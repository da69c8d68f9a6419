"""Tests for configuration and deployment spec models."""

import pytest
from pydantic import SecretStr, ValidationError

from proxlite.models.config import DEFAULT_TEMPLATE, EngineConfig, ProxliteConfig, ProxmoxConfig
from proxlite.models.spec import (
    MASTER_KEY,
    SALT_KEY,
    ApplicationConfig,
    DhcpAddressing,
    NetworkSpec,
    ResourceSpec,
    SpecModel,
    StaticAddressing,
    generate_secret,
)


class TestEngineConfig:
    """Test EngineConfig model."""

    def test_default_values(self):
        """Test default engine configuration values."""
        config = EngineConfig()

        assert config.log_level == "INFO"
        assert config.retry_attempts == 3
        assert config.backoff == "exponential"
        assert config.network_poll_attempts == 10
        assert config.network_poll_interval == 2.0

    def test_log_level_validation(self):
        """Test log level validation."""
        config = EngineConfig(log_level="debug")
        assert config.log_level == "DEBUG"

        with pytest.raises(ValidationError) as exc_info:
            EngineConfig(log_level="LOUD")

        assert "log_level" in str(exc_info.value)

    def test_retry_attempts_minimum(self):
        """Test that at least one attempt is required."""
        with pytest.raises(ValidationError) as exc_info:
            EngineConfig(retry_attempts=0)

        assert "retry_attempts" in str(exc_info.value)

    def test_backoff_choices(self):
        """Test that only known backoff strategies are accepted."""
        assert EngineConfig(backoff="fixed").backoff == "fixed"
        with pytest.raises(ValidationError):
            EngineConfig(backoff="random")


class TestProxliteConfig:
    """Test the main configuration model."""

    def test_defaults(self):
        """Test that an empty config uses the pct backend."""
        config = ProxliteConfig()

        assert config.proxmox.backend == "pct"
        assert config.proxmox.template == DEFAULT_TEMPLATE
        assert config.proxmox.api_token is None

    def test_unknown_sections_ignored(self):
        """Test that extra top-level keys are ignored."""
        config = ProxliteConfig(engine={"retry_attempts": 5}, legacy={"x": 1})
        assert config.engine.retry_attempts == 5

    def test_api_token_is_secret(self):
        """Test that the API token is not shown in repr."""
        config = ProxmoxConfig(backend="api", api_url="https://pve:8006", api_token="root@pam!ci=abc")

        assert "abc" not in repr(config)
        assert config.api_token.get_secret_value() == "root@pam!ci=abc"


class TestNetworkSpec:
    """Test network addressing variants."""

    def test_default_is_dhcp(self):
        """Test default DHCP addressing on vmbr0."""
        network = NetworkSpec()

        assert network.bridge == "vmbr0"
        assert network.is_dhcp
        assert isinstance(network.addressing, DhcpAddressing)

    def test_static_from_mapping(self):
        """Test that a mode discriminator selects static addressing."""
        network = NetworkSpec(
            addressing={"mode": "static", "cidr": "10.0.0.5/24", "gateway": "10.0.0.1"}
        )

        assert not network.is_dhcp
        assert isinstance(network.addressing, StaticAddressing)
        assert network.addressing.gateway == "10.0.0.1"

    def test_static_requires_gateway(self):
        """Test that static addressing without a gateway is rejected."""
        with pytest.raises(ValidationError):
            NetworkSpec(addressing={"mode": "static", "cidr": "10.0.0.5/24"})


class TestApplicationConfig:
    """Test application configuration and secret handling."""

    def test_default_settings(self):
        """Test default routing config and port."""
        app = ApplicationConfig()

        assert app.port == 4000
        assert app.num_workers == 2
        assert app.settings["model_list"][0]["model_name"] == "gpt-3.5-turbo"

    def test_generated_secrets_fill_missing(self):
        """Test that missing required secrets are generated."""
        app = ApplicationConfig().with_generated_secrets()
        values = app.secret_values()

        assert values[MASTER_KEY].startswith("sk-")
        assert values[SALT_KEY].startswith("sk-")
        assert values[MASTER_KEY] != values[SALT_KEY]

    def test_generated_secrets_keep_existing(self):
        """Test that provided secrets are never replaced."""
        app = ApplicationConfig(secrets={MASTER_KEY: SecretStr("sk-mine")})
        filled = app.with_generated_secrets()

        assert filled.secret_values()[MASTER_KEY] == "sk-mine"
        assert SALT_KEY in filled.secret_values()
        assert SALT_KEY not in app.secret_values()

    def test_generate_secret_is_random(self):
        """Test that generated keys differ."""
        assert generate_secret() != generate_secret()


class TestSpecModel:
    """Test the desired-state model."""

    def test_defaults(self, make_spec):
        """Test default values mirror the interactive defaults."""
        spec = make_spec()

        assert spec.container_id is None
        assert spec.hostname == "litellm"
        assert spec.storage_target == "local-lvm"
        assert spec.resources == ResourceSpec(cpu_cores=2, memory_mb=2048, swap_mb=512, disk_gb=8)

    def test_root_credential_required(self):
        """Test that a spec cannot be built without a root credential."""
        with pytest.raises(ValidationError) as exc_info:
            SpecModel()

        assert "root_credential" in str(exc_info.value)

    def test_unknown_field_rejected(self, make_spec):
        """Test that typos in field names are caught."""
        with pytest.raises(ValidationError):
            make_spec(hostnme="oops")

    def test_frozen(self, make_spec):
        """Test that specs are immutable."""
        spec = make_spec()
        with pytest.raises(ValidationError):
            spec.hostname = "other"

    def test_secrets_hidden_in_repr(self, make_spec):
        """Test that secrets do not appear in repr or str."""
        spec = make_spec()
        text = repr(spec) + str(spec)

        for secret in spec.secret_values():
            assert secret not in text

    def test_secret_values(self, make_spec):
        """Test that every secret is listed for redaction."""
        spec = make_spec()

        assert "hunter2-root-pw" in spec.secret_values()
        assert "sk-master-abcdef123456" in spec.secret_values()
        assert len(spec.secret_values()) == 3
