"""Configuration and deployment loading."""

import asyncio
import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from proxlite.errors import ConfigError
from proxlite.models.config import ProxliteConfig
from proxlite.models.spec import SpecModel
from proxlite.utils.templates import merge_dicts


logger = logging.getLogger(__name__)

ENV_REF_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def expand_env(value: str) -> str:
    """Expand ``${VAR}`` references from the environment."""
    def replace(match):
        name = match.group(1)
        if name not in os.environ:
            raise ConfigError(f"Environment variable {name} is not set")
        return os.environ[name]
    return ENV_REF_RE.sub(replace, value)


def _expand_secret_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Expand environment references in the credential and secret values."""
    if isinstance(data.get("root_credential"), str):
        data["root_credential"] = expand_env(data["root_credential"])
    application = data.get("application") or {}
    secrets = application.get("secrets") or {}
    for key, value in list(secrets.items()):
        if isinstance(value, str):
            secrets[key] = expand_env(value)
    return data


class ConfigManager:
    """Loads the main configuration and named deployments."""

    def __init__(self, config_dir: Path):
        """Initialize configuration manager."""
        self.config_dir = Path(config_dir)
        self.yaml = YAML(typ="safe")
        self.config: ProxliteConfig = ProxliteConfig()
        self.deployments: Dict[str, SpecModel] = {}

    async def load(self, require_main: bool = True):
        """Load all configuration files."""
        logger.info(f"Loading configuration from {self.config_dir}")
        await self._load_main_config(require_main)
        await self._load_deployments()
        logger.info(f"Configuration loaded ({len(self.deployments)} deployment(s))")

    async def _load_main_config(self, required: bool):
        """Load main configuration file."""
        config_file = self.config_dir / "config.yaml"
        if not config_file.exists():
            if required:
                raise ConfigError(f"Main config not found: {config_file}")
            logger.debug(f"No main config at {config_file}, using defaults")
            return

        data = await self._read_yaml(config_file)
        try:
            self.config = ProxliteConfig(**(data or {}))
            logger.debug(f"Loaded main config: {config_file}")
        except ValidationError as e:
            logger.error(f"Invalid main config: {e}")
            raise ConfigError(f"Invalid main config {config_file}: {e}") from e

    async def _load_deployments(self):
        """Load deployment specs."""
        deployments_dir = self.config_dir / "deployments"
        if not deployments_dir.exists():
            logger.warning(f"Deployments directory not found: {deployments_dir}")
            return

        self.deployments.clear()
        for yaml_file in sorted(deployments_dir.glob("*.yaml")):
            try:
                data = await self._read_yaml(yaml_file) or {}
            except ConfigError as e:
                logger.error(f"Error loading {yaml_file}: {e}")
                continue

            defaults = data.get("defaults") or {}
            for name, spec in (data.get("deployments") or {}).items():
                try:
                    self.deployments[name] = self.build_spec(merge_dicts(defaults, spec or {}))
                except (ConfigError, ValidationError) as e:
                    logger.error(f"Error loading deployment {name} from {yaml_file}: {e}")
            logger.debug(f"Loaded deployments from {yaml_file}")

    def build_spec(self, data: Dict[str, Any]) -> SpecModel:
        """Build a spec, applying configured defaults and generating missing keys."""
        data = _expand_secret_fields(copy.deepcopy(data))
        data.setdefault("template", self.config.proxmox.template)
        spec = SpecModel(**data)
        return spec.copy(update={"application": spec.application.with_generated_secrets()})

    async def _read_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Read and parse YAML file."""
        try:
            content = await asyncio.to_thread(file_path.read_text)
            return self.yaml.load(content)
        except (OSError, YAMLError) as e:
            raise ConfigError(f"Unable to read {file_path}: {e}") from e

    def get_deployment(self, name: str) -> Optional[SpecModel]:
        """Get deployment specification by name."""
        return self.deployments.get(name)


def default_config_dir() -> Path:
    """Config directory from ``PROXLITE_CONFIG_DIR`` or ``./configs``."""
    return Path(os.environ.get("PROXLITE_CONFIG_DIR", "./configs"))
