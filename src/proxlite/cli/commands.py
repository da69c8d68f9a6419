"""Command implementations for CLI."""

import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console

from proxlite.cli.prompts import prompt_for_spec
from proxlite.cli.reporter import StatusReporter
from proxlite.engine.config import ConfigManager
from proxlite.engine.reconciler import ReconcileEngine
from proxlite.errors import ConfigError
from proxlite.models.spec import SpecModel
from proxlite.models.state import ReconcileReport, RunOutcome
from proxlite.providers.registry import get_backend_registry
from proxlite.utils.logging import setup_logging


logger = logging.getLogger(__name__)

console = Console()

EXIT_CODES = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.CANCELLED: 130,
}


async def load_configuration(
    config_dir: Path,
    require_main: bool = False,
    log_level: Optional[str] = None,
) -> ConfigManager:
    """Load config and deployments, then configure logging."""
    manager = ConfigManager(config_dir)
    await manager.load(require_main=require_main)
    setup_logging(log_level or manager.config.engine.log_level)
    return manager


def resolve_deployment(manager: ConfigManager, name: str) -> SpecModel:
    """Look up a named deployment."""
    spec = manager.get_deployment(name)
    if spec is None:
        available = ", ".join(sorted(manager.deployments)) or "none"
        raise ConfigError(f"Deployment not found: {name} (available: {available})")
    return spec


def _install_signal_handlers(engine: ReconcileEngine) -> bool:
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, engine.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable, cancellation via Ctrl+C disabled")
        return False
    return True


def _remove_signal_handlers():
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(sig)


async def reconcile_spec(
    spec: SpecModel,
    manager: ConfigManager,
    json_output: bool = False,
    reporter: Optional[StatusReporter] = None,
) -> int:
    """Reconcile one spec and render the report. Returns the exit code."""
    reporter = reporter or StatusReporter(console, quiet=json_output)
    cluster, guest = get_backend_registry().build(manager.config.proxmox)
    engine = ReconcileEngine(
        spec, cluster, guest, settings=manager.config.engine, listener=reporter
    )

    handlers_installed = _install_signal_handlers(engine)
    try:
        report = await engine.reconcile()
    finally:
        if handlers_installed:
            _remove_signal_handlers()
        await cluster.close()

    _render(report, spec, reporter, json_output)
    return EXIT_CODES[report.outcome]


def _render(report: ReconcileReport, spec: SpecModel, reporter: StatusReporter, json_output: bool):
    if json_output:
        reporter.render_json(report)
    else:
        reporter.render_report(report, spec)


async def install_deployment(
    config_dir: Path,
    container_id: Optional[int] = None,
    json_output: bool = False,
    log_level: Optional[str] = None,
) -> int:
    """Interactive install: ask the questions, then reconcile."""
    manager = await load_configuration(config_dir, require_main=False, log_level=log_level)
    reporter = StatusReporter(console, quiet=json_output)

    cluster, _ = get_backend_registry().build(manager.config.proxmox)
    try:
        pools = await cluster.list_storage_pools("rootdir")
    finally:
        await cluster.close()

    spec = prompt_for_spec(pools, manager.config, console, container_id=container_id)
    reporter.info("Starting provisioning")
    return await reconcile_spec(spec, manager, json_output=json_output, reporter=reporter)


async def apply_deployment(
    name: str,
    config_dir: Path,
    json_output: bool = False,
    log_level: Optional[str] = None,
) -> int:
    """Reconcile a configured deployment."""
    manager = await load_configuration(config_dir, require_main=True, log_level=log_level)
    spec = resolve_deployment(manager, name)
    return await reconcile_spec(spec, manager, json_output=json_output)


async def plan_deployment(
    name: str,
    config_dir: Path,
    json_output: bool = False,
    log_level: Optional[str] = None,
) -> int:
    """Show the steps an apply would run, without changing anything."""
    manager = await load_configuration(config_dir, require_main=True, log_level=log_level)
    spec = resolve_deployment(manager, name)
    reporter = StatusReporter(console, quiet=json_output)

    cluster, guest = get_backend_registry().build(manager.config.proxmox)
    engine = ReconcileEngine(spec, cluster, guest, settings=manager.config.engine)
    try:
        await engine.preflight()
        observed = await engine.observe()
        plan = engine.build_plan(observed)
    finally:
        await cluster.close()

    if json_output:
        payload: Dict[str, Any] = {
            "deployment": name,
            "observed": observed.to_dict(),
            "plan": [step.value for step in plan],
        }
        console.out(json.dumps(payload, indent=2), highlight=False)
    else:
        reporter.render_plan(plan)
    return 0


async def validate_deployment(
    name: str,
    config_dir: Path,
    log_level: Optional[str] = None,
) -> int:
    """Validate a deployment against the cluster's storage pools."""
    manager = await load_configuration(config_dir, require_main=True, log_level=log_level)
    spec = resolve_deployment(manager, name)

    cluster, guest = get_backend_registry().build(manager.config.proxmox)
    engine = ReconcileEngine(spec, cluster, guest, settings=manager.config.engine)
    try:
        await engine.preflight()
    finally:
        await cluster.close()

    console.print(f"[green]✓[/green] Deployment {name} is valid")
    return 0
