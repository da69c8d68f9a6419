"""Render the guest-side installer for a deployment.

The installer is one self-contained bash script. It is pushed with mode
0600, run once, and removes itself on exit. It is the only artifact that
carries the application secrets into the guest.
"""

import logging

from proxlite.models.spec import ApplicationConfig, SpecModel
from proxlite.installer.templates import (
    INSTALLER_TEMPLATE,
    MANAGE_SCRIPT_TEMPLATE,
    MOTD_TEMPLATE,
    SERVICE_UNIT_TEMPLATE,
)
from proxlite.utils.templates import dump_yaml, render_template


logger = logging.getLogger(__name__)


APP_DIR = "/opt/litellm"
SERVICE_NAME = "litellm"
UNIT_PATH = f"/etc/systemd/system/{SERVICE_NAME}.service"
MANAGE_PATH = "/usr/local/bin/litellm-manage"
MARKER_PATH = f"{APP_DIR}/.proxlite-installed"
REMOTE_INSTALLER_PATH = "/tmp/proxlite-install.sh"
RESTART_SEC = 10
HEREDOC_EOF = "PROXLITE_EOF"

SYSTEM_PACKAGES = [
    "curl", "gnupg", "ca-certificates", "python3", "python3-pip",
    "python3-venv", "python3-full", "git", "build-essential",
]


def render_service_unit(app: ApplicationConfig) -> str:
    """Render the systemd unit for the proxy."""
    return render_template(
        SERVICE_UNIT_TEMPLATE,
        app_dir=APP_DIR,
        port=app.port,
        num_workers=app.num_workers,
        restart_sec=RESTART_SEC,
    )


def render_manage_script(app: ApplicationConfig) -> str:
    """Render the ``litellm-manage`` helper."""
    return render_template(
        MANAGE_SCRIPT_TEMPLATE,
        service=SERVICE_NAME,
        app_dir=APP_DIR,
        package=app.package,
    )


def render_config_yaml(app: ApplicationConfig) -> str:
    """Serialise the routing configuration."""
    return dump_yaml(dict(app.settings))


def render_env_file(app: ApplicationConfig) -> str:
    """Render ``KEY="value"`` lines for every application secret."""
    lines = [f'{key}="{value}"' for key, value in sorted(app.secret_values().items())]
    return "\n".join(lines) + "\n"


def render_installer(spec: SpecModel) -> str:
    """Render the complete installer script for a deployment."""
    app = spec.application
    script = render_template(
        INSTALLER_TEMPLATE,
        app_dir=APP_DIR,
        eof=HEREDOC_EOF,
        system_packages=SYSTEM_PACKAGES,
        package=app.package,
        config_yaml=render_config_yaml(app),
        env_file=render_env_file(app),
        unit_path=UNIT_PATH,
        service_unit=render_service_unit(app),
        manage_path=MANAGE_PATH,
        manage_script=render_manage_script(app),
        motd=render_template(MOTD_TEMPLATE, app_dir=APP_DIR, port=app.port),
        service=SERVICE_NAME,
        marker_path=MARKER_PATH,
    )
    logger.debug(f"Rendered installer ({len(script)} bytes)")
    return script
