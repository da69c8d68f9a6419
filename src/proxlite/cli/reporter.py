"""Rich rendering of plans, progress and reconciliation reports."""

import json
from typing import Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.status import Status
from rich.table import Table

from proxlite.engine.reconciler import ReconcileListener
from proxlite.errors import SpecValidationError
from proxlite.installer.bundle import APP_DIR, MANAGE_PATH
from proxlite.models.spec import SpecModel
from proxlite.models.state import Outcome, ReconcileReport, RunOutcome, Step, StepResult


OUTCOME_STYLES = {
    Outcome.SUCCESS: "[green]✓ success[/green]",
    Outcome.RETRYABLE_FAILURE: "[yellow]↻ retryable[/yellow]",
    Outcome.FATAL_FAILURE: "[red]✗ failed[/red]",
    Outcome.CANCELLED: "[yellow]■ cancelled[/yellow]",
}


class StatusReporter(ReconcileListener):
    """Prints step progress and the final report. Never handles secret values."""

    def __init__(self, console: Optional[Console] = None, quiet: bool = False):
        """Initialize reporter."""
        self.console = console or Console()
        self.quiet = quiet
        self._status: Optional[Status] = None

    def info(self, text: str):
        if not self.quiet:
            self.console.print(f"[blue][INFO][/blue] {text}")

    def ok(self, text: str):
        if not self.quiet:
            self.console.print(f"[green][OK][/green] {text}")

    def error(self, text: str):
        self.console.print(f"[red][ERROR][/red] {text}")

    def step_started(self, step: Step, index: int, total: int) -> None:
        if self.quiet:
            return
        self._status = self.console.status(f"[{index + 1}/{total}] {step.label}...")
        self._status.start()

    def step_finished(self, result: StepResult, index: int, total: int) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None
        if result.succeeded:
            self.ok(f"[{index + 1}/{total}] {result.step.label}")
        elif result.outcome == Outcome.CANCELLED:
            self.console.print(f"[yellow][CANCELLED][/yellow] [{index + 1}/{total}] {result.step.label}")
        else:
            self.error(f"[{index + 1}/{total}] {result.step.label}: {escape(result.error.message)}")

    def render_plan(self, plan: Sequence[Step]):
        """Print the steps a run would take."""
        if not plan:
            self.console.print("[green]✓[/green] Nothing to do, the deployment is converged")
            return
        table = Table(title="Plan")
        table.add_column("#", justify="right")
        table.add_column("Step", style="cyan")
        for index, step in enumerate(plan, start=1):
            table.add_row(str(index), step.label)
        self.console.print(table)

    def render_validation_error(self, error: SpecValidationError):
        """Print every validation issue."""
        table = Table(title="Validation errors")
        table.add_column("Field", style="cyan")
        table.add_column("Problem", style="red")
        for issue in error.issues:
            table.add_row(escape(issue.field), escape(issue.message))
        self.console.print(table)

    def render_json(self, report: ReconcileReport):
        self.console.out(json.dumps(report.to_dict(), indent=2), highlight=False)

    def render_report(self, report: ReconcileReport, spec: SpecModel):
        """Print the results table and a summary for the run's outcome."""
        if report.results:
            table = Table(title="Reconciliation")
            table.add_column("Step", style="cyan")
            table.add_column("Outcome")
            table.add_column("Attempts", justify="right")
            table.add_column("Detail", style="dim", max_width=60)
            for result in report.results:
                detail = escape(f"{result.error.kind}: {result.error.message}") if result.error else ""
                table.add_row(result.step.label, OUTCOME_STYLES[result.outcome], str(result.attempts), detail)
            self.console.print(table)

        observed = report.observed
        if report.outcome == RunOutcome.SUCCESS:
            self._render_success(report, spec)
        elif report.outcome == RunOutcome.CANCELLED:
            self.console.print("\n[yellow]Provisioning cancelled.[/yellow] Re-run to continue where it stopped.")
        else:
            failed = report.plan[report.failed_index]
            self.console.print(
                f"\n[red]Provisioning stopped at {failed.label.lower()}.[/red] "
                "Fix the cause and re-run; completed steps are skipped."
            )
        if report.outcome != RunOutcome.SUCCESS and spec.container_id is None and observed.container_id:
            self.console.print(f"[yellow]Container {observed.container_id} was allocated for this run.[/yellow]")
            self.console.print(f"Set container_id: {observed.container_id} to resume it on the next run.")

    def _render_success(self, report: ReconcileReport, spec: SpecModel):
        observed = report.observed
        port = spec.application.port
        address = observed.ip_address or "<container-ip>"
        if report.results:
            self.console.print("\n[green]LiteLLM Proxy Server is now installed![/green]")
        else:
            self.console.print("\n[green]✓[/green] Already converged, no changes made")
        self.console.print(f"[yellow]Access the API at:[/yellow] http://{address}:{port}")
        self.console.print(f"[yellow]Container ID:[/yellow] {observed.container_id}")
        self.console.print(f"[yellow]API keys:[/yellow] stored in {APP_DIR}/.env inside the container")
        self.console.print("\n[blue]Login instructions:[/blue]")
        self.console.print(f"1. Connect to the container: [green]pct enter {observed.container_id}[/green]")
        self.console.print("2. Login with username [green]root[/green] and the password you set")
        self.console.print("\n[blue]Management commands (inside container):[/blue]")
        manage = MANAGE_PATH.rsplit("/", 1)[-1]
        for subcommand, purpose in (
            ("status", "Check service status"),
            ("logs", "View service logs"),
            ("restart", "Restart service"),
            ("update", "Update LiteLLM"),
        ):
            self.console.print(f"- {purpose}: [green]{manage} {subcommand}[/green]")
        self.console.print(f"- Edit config: [green]nano {APP_DIR}/config.yaml[/green]")
