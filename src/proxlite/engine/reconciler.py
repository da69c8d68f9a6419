"""State reconciliation engine."""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Sequence, Set

from proxlite.engine.plan import STEP_DEPENDENCIES, build_plan, is_satisfied
from proxlite.engine.runner import StepRunner
from proxlite.engine.validation import validate_spec
from proxlite.installer.bundle import MARKER_PATH, SERVICE_NAME
from proxlite.models.config import EngineConfig
from proxlite.models.spec import SpecModel
from proxlite.models.state import (
    ObservedState,
    Outcome,
    ReconcileReport,
    RunOutcome,
    Step,
    StepResult,
)
from proxlite.providers.base import ClusterClient, GuestExecutor


logger = logging.getLogger(__name__)


class ReconcileListener:
    """Receives progress callbacks from a run. Override what you need."""

    def step_started(self, step: Step, index: int, total: int) -> None:
        pass

    def step_finished(self, result: StepResult, index: int, total: int) -> None:
        pass


class ReconcileEngine:
    """Drives one deployment from observed state to desired state.

    Forward-only: a fatal failure halts the run and nothing already done is
    undone. The report records every result up to the failure so the run can
    be resumed after the cause is fixed. One engine instance per container at
    a time.
    """

    def __init__(
        self,
        spec: SpecModel,
        cluster: ClusterClient,
        guest: GuestExecutor,
        settings: Optional[EngineConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
        listener: Optional[ReconcileListener] = None,
    ):
        """Initialize reconcile engine."""
        self.spec = spec
        self.cluster = cluster
        self.guest = guest
        self.settings = settings or EngineConfig()
        self.cancel_event = cancel_event or asyncio.Event()
        self.listener = listener or ReconcileListener()
        self.runner = StepRunner(cluster, guest, self.settings, self.cancel_event)

    def cancel(self) -> None:
        """Ask the current run to stop at its next suspension point."""
        logger.info("Cancellation requested")
        self.cancel_event.set()

    async def preflight(self) -> List[str]:
        """Validate the spec against the cluster's storage pools.

        Only a read-only pool listing is issued before validation completes.
        """
        pools = await self.cluster.list_storage_pools("rootdir")
        validate_spec(self.spec, pools)
        return pools

    async def observe(self) -> ObservedState:
        """Query the cluster and guest for the current state."""
        observed = ObservedState(container_id=self.spec.container_id)
        container_id = observed.container_id
        if container_id is None:
            return observed

        observed.exists = await self.cluster.exists(container_id)
        if not observed.exists:
            logger.info(f"Container {container_id} does not exist")
            return observed

        observed.running = await self.cluster.is_running(container_id)
        if not observed.running:
            logger.info(f"Container {container_id} exists but is stopped")
            return observed

        observed.ip_address = await self.cluster.query_address(container_id)

        marker = await self.guest.exec(container_id, ["test", "-f", MARKER_PATH], check=False)
        observed.installed = marker.ok
        if observed.installed:
            status = await self.guest.exec(
                container_id, ["systemctl", "is-active", SERVICE_NAME], check=False
            )
            observed.service_active = status.stdout.strip() == "active"

        logger.debug(f"Observed state: {observed}")
        return observed

    def build_plan(self, observed: ObservedState) -> List[Step]:
        """Compute the steps still needed for this engine's spec."""
        return build_plan(self.spec, observed)

    async def run(self, plan: Sequence[Step], observed: ObservedState) -> ReconcileReport:
        """Execute a plan strictly in order until done, failed or cancelled."""
        plan = list(plan)
        report = ReconcileReport(outcome=RunOutcome.SUCCESS, plan=plan, observed=observed)
        completed: Set[Step] = {step for step in Step if step not in plan and is_satisfied(step, observed)}
        start_time = datetime.now()

        for index, step in enumerate(plan):
            missing = [dep for dep in STEP_DEPENDENCIES[step] if dep not in completed]
            if missing:
                raise ValueError(
                    f"{step.value} scheduled before its dependencies: "
                    f"{', '.join(dep.value for dep in missing)}"
                )

            self.listener.step_started(step, index, len(plan))
            result = await self.runner.execute(step, self.spec, observed)
            report.results.append(result)
            self.listener.step_finished(result, index, len(plan))

            if result.outcome == Outcome.SUCCESS:
                observed.apply(result.observed_delta)
                completed.add(step)
                continue

            report.failed_index = index
            if result.outcome == Outcome.CANCELLED:
                report.outcome = RunOutcome.CANCELLED
                logger.warning(f"Reconciliation cancelled during {step.value}")
            else:
                report.outcome = RunOutcome.FAILED
                logger.error(f"Reconciliation halted at {step.value}: {result.error.message}")
            break

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"Reconciliation finished ({report.outcome.value}) in {duration:.2f}s")
        return report

    async def reconcile(self) -> ReconcileReport:
        """Validate, observe, plan and run."""
        await self.preflight()
        observed = await self.observe()
        plan = self.build_plan(observed)
        return await self.run(plan, observed)
