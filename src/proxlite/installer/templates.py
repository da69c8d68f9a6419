"""Jinja2 templates for the artifacts materialised inside the guest."""

SERVICE_UNIT_TEMPLATE = """\
[Unit]
Description=LiteLLM Proxy Server
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
User=root
WorkingDirectory={{ app_dir }}
EnvironmentFile={{ app_dir }}/.env
ExecStart={{ app_dir }}/venv/bin/litellm --port {{ port }} --config {{ app_dir }}/config.yaml --num_workers {{ num_workers }}
Restart=always
RestartSec={{ restart_sec }}

[Install]
WantedBy=multi-user.target
"""

MANAGE_SCRIPT_TEMPLATE = """\
#!/bin/bash
case "$1" in
  restart)
    systemctl restart {{ service }}
    echo "LiteLLM service restarted."
    ;;
  stop)
    systemctl stop {{ service }}
    echo "LiteLLM service stopped."
    ;;
  start)
    systemctl start {{ service }}
    echo "LiteLLM service started."
    ;;
  status)
    systemctl status {{ service }}
    ;;
  logs)
    journalctl -u {{ service }} -f
    ;;
  update)
    systemctl stop {{ service }}
    {{ app_dir }}/venv/bin/pip install --upgrade '{{ package }}'
    systemctl start {{ service }}
    echo "LiteLLM updated and restarted."
    ;;
  *)
    echo "Usage: $0 {start|stop|restart|status|logs|update}"
    exit 1
    ;;
esac
exit 0
"""

MOTD_TEMPLATE = """\

─────────────────────────────────────────────────────────
    LiteLLM Proxy Server
─────────────────────────────────────────────────────────
    API Endpoint : http://${IP}:{{ port }}
    Documentation: https://docs.litellm.ai/docs/proxy
─────────────────────────────────────────────────────────
 The config is located at: {{ app_dir }}/config.yaml
 API keys are managed in:  {{ app_dir }}/.env
─────────────────────────────────────────────────────────
 To generate a new API key, POST to http://${IP}:{{ port }}/key/generate
 with header "Authorization: Bearer <LITELLM_MASTER_KEY from .env>".
─────────────────────────────────────────────────────────
 Management commands:
 litellm-manage status  - Check service status
 litellm-manage restart - Restart the service
 litellm-manage logs    - View service logs
 litellm-manage update  - Update LiteLLM
─────────────────────────────────────────────────────────
"""

INSTALLER_TEMPLATE = """\
#!/bin/bash
# Installs and activates the LiteLLM proxy. Safe to re-run.
set -euo pipefail
trap 'rm -f "$0"' EXIT
export DEBIAN_FRONTEND=noninteractive

APP_DIR={{ app_dir }}

apt-get update
apt-get upgrade -y
apt-get install -y {{ system_packages | join(" ") }}

mkdir -p "$APP_DIR"
chmod 700 "$APP_DIR"
if [ ! -x "$APP_DIR/venv/bin/python" ]; then
  python3 -m venv "$APP_DIR/venv"
fi
"$APP_DIR/venv/bin/pip" install --upgrade pip
"$APP_DIR/venv/bin/pip" install '{{ package }}'

umask 077

cat > "$APP_DIR/config.yaml" <<'{{ eof }}'
{{ config_yaml }}{{ eof }}
chmod 600 "$APP_DIR/config.yaml"

# Existing keys may have been rotated by the operator; never overwrite them.
if [ ! -f "$APP_DIR/.env" ]; then
cat > "$APP_DIR/.env" <<'{{ eof }}'
{{ env_file }}{{ eof }}
fi
chmod 600 "$APP_DIR/.env"

umask 022

cat > {{ unit_path }} <<'{{ eof }}'
{{ service_unit }}{{ eof }}

cat > {{ manage_path }} <<'{{ eof }}'
{{ manage_script }}{{ eof }}
chmod 755 {{ manage_path }}

systemctl daemon-reload
systemctl enable {{ service }}.service
systemctl restart {{ service }}.service

IP=$(hostname -I | awk '{print $1}')
cat > /etc/motd <<{{ eof }}
{{ motd }}{{ eof }}

touch {{ marker_path }}
echo "$IP"
"""
