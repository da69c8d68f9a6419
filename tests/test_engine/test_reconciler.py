"""Tests for the ReconcileEngine."""

import asyncio
import json

import pytest

from proxlite.engine.reconciler import ReconcileEngine, ReconcileListener
from proxlite.errors import ClusterError, ExecError, SpecValidationError
from proxlite.models.spec import NetworkSpec, StaticAddressing
from proxlite.models.state import ObservedState, Outcome, RunOutcome, Step


FULL_PLAN = [
    Step.ALLOCATE_CONTAINER,
    Step.CREATE_CONTAINER,
    Step.START_CONTAINER,
    Step.WAIT_FOR_NETWORK,
    Step.PUSH_INSTALLER,
    Step.RUN_INSTALLER,
    Step.VERIFY_SERVICE,
]

MUTATING_CALLS = {"next_identifier", "create", "start", "set_description"}


class RecordingListener(ReconcileListener):
    """Collects progress callbacks."""

    def __init__(self):
        self.events = []

    def step_started(self, step, index, total):
        self.events.append(("started", step, index, total))

    def step_finished(self, result, index, total):
        self.events.append(("finished", result.step, index, total))


@pytest.fixture
def make_engine(cluster, guest, fast_settings):
    """Factory for engines over the shared fakes."""
    def factory(spec, **kwargs):
        return ReconcileEngine(spec, cluster, guest, settings=fast_settings, **kwargs)
    return factory


@pytest.mark.asyncio
class TestScenarios:
    """End-to-end reconciliation scenarios."""

    async def test_fresh_dhcp_install(self, make_engine, make_spec, cluster, guest):
        """Test that a fresh DHCP deployment runs every step and succeeds."""
        engine = make_engine(make_spec())

        report = await engine.reconcile()

        assert report.plan == FULL_PLAN
        assert report.outcome == RunOutcome.SUCCESS
        assert [r.step for r in report.results] == FULL_PLAN
        assert all(r.outcome == Outcome.SUCCESS for r in report.results)
        assert report.observed.service_active
        assert report.observed.container_id == 100
        assert report.observed.ip_address == "10.0.0.5"
        assert cluster.containers[100]["description"].startswith("LiteLLM Proxy Server")

    async def test_unknown_storage_rejected_before_changes(self, make_engine, make_spec, cluster, guest):
        """Test that validation fails before any other cluster or guest call."""
        spec = make_spec(
            network=NetworkSpec(addressing=StaticAddressing(cidr="10.0.0.5/24", gateway="10.0.0.1")),
            storage_target="nvme-pool",
        )
        engine = make_engine(spec)

        with pytest.raises(SpecValidationError) as exc_info:
            await engine.reconcile()

        assert exc_info.value.fields == ["storage_target"]
        assert cluster.call_names() == ["list_storage_pools"]
        assert guest.calls == []

    async def test_network_never_assigned(self, make_engine, make_spec, cluster):
        """Test that a network timeout halts the run after four results."""
        cluster.address = None
        engine = make_engine(make_spec())

        report = await engine.reconcile()

        assert report.outcome == RunOutcome.FAILED
        assert len(report.results) == 4
        assert [r.outcome for r in report.results[:3]] == [Outcome.SUCCESS] * 3
        failed = report.results[3]
        assert failed.step == Step.WAIT_FOR_NETWORK
        assert failed.outcome == Outcome.FATAL_FAILURE
        assert failed.error.kind == "NetworkTimeout"
        assert failed.error.attempts == 10
        assert report.failed_index == 3
        assert "push_file" not in [call[0] for call in engine.guest.calls]

    async def test_converged_makes_no_changes(self, make_engine, make_spec, cluster, guest):
        """Test that a converged deployment only observes."""
        cluster.containers[150] = {"running": True}
        guest.installed = True
        engine = make_engine(make_spec(container_id=150))

        report = await engine.reconcile()

        assert report.plan == []
        assert report.results == []
        assert report.outcome == RunOutcome.SUCCESS
        assert cluster.call_names() == ["list_storage_pools", "exists", "is_running", "query_address"]
        assert [command[0] for command in guest.commands()] == ["test", "systemctl"]
        assert "push_file" not in [call[0] for call in guest.calls]


@pytest.mark.asyncio
class TestIdempotence:
    """Test that re-running converges without repeating work."""

    async def test_second_run_is_empty(self, make_engine, make_spec, cluster, guest):
        """Test that a second run with the allocated id has nothing to do."""
        first = await make_engine(make_spec()).reconcile()
        assert first.succeeded

        cluster.calls.clear()
        spec = make_spec(container_id=first.observed.container_id)
        second = await make_engine(spec).reconcile()

        assert second.plan == []
        assert second.succeeded
        assert not MUTATING_CALLS & set(cluster.call_names())

    async def test_resume_after_installer_failure(self, make_engine, make_spec, cluster, guest):
        """Test that a failed install resumes from the installer steps."""
        guest.fail("exec", ExecError("Command bash exited with 1: pip failed", exit_code=1))
        first = await make_engine(make_spec(container_id=120)).reconcile()

        assert first.outcome == RunOutcome.FAILED
        assert first.plan[first.failed_index] == Step.RUN_INSTALLER

        cluster.calls.clear()
        second = await make_engine(make_spec(container_id=120)).reconcile()

        assert second.plan == [Step.PUSH_INSTALLER, Step.RUN_INSTALLER, Step.VERIFY_SERVICE]
        assert second.succeeded
        assert not MUTATING_CALLS & set(cluster.call_names())

    async def test_stopped_container_is_started(self, make_engine, make_spec, cluster, guest):
        """Test that an existing stopped container is started, not recreated."""
        cluster.containers[130] = {"running": False}
        engine = make_engine(make_spec(container_id=130))

        report = await engine.reconcile()

        assert report.plan[0] == Step.START_CONTAINER
        assert report.succeeded
        assert "create" not in cluster.call_names()


@pytest.mark.asyncio
class TestRunInvariants:
    """Test ordering, halting and reporting guarantees."""

    async def test_dependencies_complete_before_dependents(self, make_engine, make_spec):
        """Test that each step starts only after its predecessor finished."""
        listener = RecordingListener()
        engine = make_engine(make_spec(), listener=listener)

        await engine.reconcile()

        finished = [event[1] for event in listener.events if event[0] == "finished"]
        started = [event[1] for event in listener.events if event[0] == "started"]
        assert started == finished == FULL_PLAN
        assert listener.events[0] == ("started", Step.ALLOCATE_CONTAINER, 0, 7)

    async def test_out_of_order_plan_rejected(self, make_engine, make_spec):
        """Test that a plan skipping an unsatisfied dependency is refused."""
        engine = make_engine(make_spec())

        with pytest.raises(ValueError):
            await engine.run([Step.START_CONTAINER], ObservedState(container_id=100))

    async def test_fatal_failure_halts(self, make_engine, make_spec, cluster):
        """Test that nothing runs after a fatal failure."""
        cluster.fail("create", ClusterError("rootfs allocation failed"))
        engine = make_engine(make_spec())

        report = await engine.reconcile()

        assert report.outcome == RunOutcome.FAILED
        assert [r.step for r in report.results] == [Step.ALLOCATE_CONTAINER, Step.CREATE_CONTAINER]
        assert "start" not in cluster.call_names()

    async def test_report_contains_no_secrets(self, make_engine, make_spec, cluster, guest):
        """Test that serialized results never include secret values."""
        cluster.fail("create", ClusterError("pct create -password hunter2-root-pw failed"))
        spec = make_spec()
        failed = await make_engine(spec).reconcile()
        succeeded = await make_engine(make_spec()).reconcile()

        for report in (failed, succeeded):
            text = json.dumps(report.to_dict())
            for secret in spec.secret_values():
                assert secret not in text

    async def test_cancel_stops_run(self, make_engine, make_spec, cluster, guest):
        """Test that cancelling mid-run reports cancellation, not failure."""
        event = asyncio.Event()
        engine = make_engine(make_spec(), cancel_event=event)
        guest.on_exec = lambda command: engine.cancel() if command[0] == "bash" else None
        guest.service_states = ["activating"] * 5

        report = await engine.reconcile()

        assert report.outcome == RunOutcome.CANCELLED
        assert report.results[-1].outcome == Outcome.CANCELLED
        assert report.results[-1].step == Step.VERIFY_SERVICE
        assert not any(command[0] == "systemctl" for command in guest.commands())
