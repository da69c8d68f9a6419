"""Execution of single provisioning steps with a bounded retry policy."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from proxlite.errors import (
    ClusterError,
    ExecError,
    NetworkTimeout,
    ReconcileCancelled,
    ServiceDidNotStart,
    WaitExhausted,
)
from proxlite.installer.bundle import REMOTE_INSTALLER_PATH, SERVICE_NAME, render_installer
from proxlite.models.config import EngineConfig
from proxlite.models.spec import SpecModel
from proxlite.models.state import ObservedState, Outcome, Step, StepError, StepResult
from proxlite.providers.base import ClusterClient, GuestExecutor
from proxlite.utils.logging import redact
from proxlite.utils.network import first_ipv4


logger = logging.getLogger(__name__)


# CREATE_CONTAINER is never retried; the cluster create call is not idempotent.
RETRYABLE_STEPS = frozenset({
    Step.START_CONTAINER,
    Step.WAIT_FOR_NETWORK,
    Step.VERIFY_SERVICE,
})

StepHandler = Callable[[SpecModel, ObservedState], Awaitable[Dict[str, Any]]]


class StepRunner:
    """Runs one step against the cluster and guest, and classifies the outcome.

    Holds no state between calls apart from its collaborators and the shared
    cancellation event.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        guest: GuestExecutor,
        settings: Optional[EngineConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize step runner."""
        self.cluster = cluster
        self.guest = guest
        self.settings = settings or EngineConfig()
        self.cancel_event = cancel_event or asyncio.Event()
        self._handlers: Dict[Step, StepHandler] = {
            Step.ALLOCATE_CONTAINER: self._allocate_container,
            Step.CREATE_CONTAINER: self._create_container,
            Step.START_CONTAINER: self._start_container,
            Step.WAIT_FOR_NETWORK: self._wait_for_network,
            Step.PUSH_INSTALLER: self._push_installer,
            Step.RUN_INSTALLER: self._run_installer,
            Step.VERIFY_SERVICE: self._verify_service,
        }

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def max_attempts(self, step: Step) -> int:
        """Attempt budget for a step under the retry policy."""
        return self.settings.retry_attempts if step in RETRYABLE_STEPS else 1

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the retry that follows the given attempt number."""
        if self.settings.backoff == "exponential":
            return self.settings.retry_backoff * (2 ** (attempt - 1))
        return self.settings.retry_backoff

    async def execute(self, step: Step, spec: SpecModel, observed: ObservedState) -> StepResult:
        """Run a step to a terminal outcome, retrying where the policy allows."""
        budget = self.max_attempts(step)
        attempt = 0

        while True:
            attempt += 1
            result = await self.run_once(step, spec, observed, attempt)

            if result.outcome != Outcome.RETRYABLE_FAILURE:
                return result

            if attempt >= budget:
                logger.error(f"{step.value} failed after {attempt} attempt(s): {result.error.message}")
                result.outcome = Outcome.FATAL_FAILURE
                return result

            delay = self.backoff_delay(attempt)
            logger.warning(
                f"{step.value} attempt {attempt}/{budget} failed: {result.error.message}. "
                f"Retrying in {delay:.1f}s"
            )
            if await self._pause(delay):
                return self._cancelled_result(step, attempt)

    async def run_once(
        self,
        step: Step,
        spec: SpecModel,
        observed: ObservedState,
        attempt: int = 1,
    ) -> StepResult:
        """Make a single attempt at a step."""
        if self.cancelled:
            return self._cancelled_result(step, attempt - 1)

        handler = self._handlers[step]
        logger.debug(f"Running {step.value} (attempt {attempt})")
        try:
            delta = await handler(spec, observed)
        except ReconcileCancelled:
            return self._cancelled_result(step, attempt)
        except WaitExhausted as e:
            return self._failure(step, Outcome.FATAL_FAILURE, e, spec, attempt, e.attempts)
        except (ClusterError, ExecError) as e:
            # An interrupt reaches the child process too; its failure is the cancellation.
            if self.cancelled:
                logger.debug(f"{step.value} failed after cancellation: {redact(str(e), spec.secret_values())}")
                return self._cancelled_result(step, attempt)
            outcome = Outcome.RETRYABLE_FAILURE if step in RETRYABLE_STEPS else Outcome.FATAL_FAILURE
            return self._failure(step, outcome, e, spec, attempt, attempt)

        logger.info(f"{step.value} succeeded")
        return StepResult(step=step, outcome=Outcome.SUCCESS, attempts=attempt, observed_delta=delta)

    def _failure(
        self,
        step: Step,
        outcome: Outcome,
        error: Exception,
        spec: SpecModel,
        attempt: int,
        error_attempts: int,
    ) -> StepResult:
        message = redact(str(error), spec.secret_values())
        return StepResult(
            step=step,
            outcome=outcome,
            attempts=attempt,
            error=StepError(kind=type(error).__name__, message=message, attempts=error_attempts),
        )

    def _cancelled_result(self, step: Step, attempts: int) -> StepResult:
        logger.warning(f"{step.value} cancelled")
        return StepResult(
            step=step,
            outcome=Outcome.CANCELLED,
            attempts=attempts,
            error=StepError(kind="Cancelled", message="Cancelled by operator", attempts=attempts),
        )

    async def _pause(self, seconds: float) -> bool:
        """Sleep unless cancelled first. Returns True if cancellation was observed."""
        if self.cancelled:
            return True
        if seconds <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _poll(
        self,
        probe: Callable[[], Awaitable[Any]],
        attempts: int,
        interval: float,
        exhausted: Type[WaitExhausted],
        description: str,
    ) -> Any:
        """Call probe until it returns a truthy value or attempts run out."""
        for attempt in range(1, attempts + 1):
            if self.cancelled:
                raise ReconcileCancelled(description)
            value = await probe()
            if value:
                return value
            logger.debug(f"Waiting for {description} ({attempt}/{attempts})")
            if attempt < attempts and await self._pause(interval):
                raise ReconcileCancelled(description)
        raise exhausted(f"Gave up waiting for {description} after {attempts} attempts", attempts)

    @staticmethod
    def _require_id(observed: ObservedState) -> int:
        if observed.container_id is None:
            raise ClusterError("No container id allocated")
        return observed.container_id

    async def _allocate_container(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        container_id = await self.cluster.next_identifier()
        logger.info(f"Allocated container id {container_id}")
        return {"container_id": container_id}

    async def _create_container(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        container_id = self._require_id(observed)
        await self.cluster.create(
            container_id,
            spec.template,
            spec.resources,
            spec.network,
            spec.storage_target,
            spec.root_credential,
            spec.hostname,
        )
        await self.cluster.set_description(container_id, spec.description)
        return {"exists": True, "running": False}

    async def _start_container(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        await self.cluster.start(self._require_id(observed))
        return {"running": True}

    async def _wait_for_network(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        container_id = self._require_id(observed)
        address = await self._poll(
            lambda: self.cluster.query_address(container_id),
            self.settings.network_poll_attempts,
            self.settings.network_poll_interval,
            NetworkTimeout,
            f"an address on container {container_id}",
        )
        logger.info(f"Container {container_id} has address {address}")
        return {"ip_address": address}

    async def _push_installer(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        script = render_installer(spec)
        await self.guest.push_file(self._require_id(observed), script, REMOTE_INSTALLER_PATH, mode=0o600)
        return {}

    async def _run_installer(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        container_id = self._require_id(observed)
        logger.info(f"Running installer inside container {container_id}")
        result = await self.guest.exec(container_id, ["bash", REMOTE_INSTALLER_PATH])
        delta: Dict[str, Any] = {"installed": True}
        lines = result.stdout.strip().splitlines()
        address = first_ipv4(lines[-1]) if lines else None
        if address:
            delta["ip_address"] = address
        return delta

    async def _verify_service(self, spec: SpecModel, observed: ObservedState) -> Dict[str, Any]:
        container_id = self._require_id(observed)

        async def service_active() -> bool:
            result = await self.guest.exec(
                container_id, ["systemctl", "is-active", SERVICE_NAME], check=False
            )
            return result.stdout.strip() == "active"

        await self._poll(
            service_active,
            self.settings.service_poll_attempts,
            self.settings.service_poll_interval,
            ServiceDidNotStart,
            f"{SERVICE_NAME} to become active",
        )
        return {"service_active": True}
