"""Tests for plan construction."""

from proxlite.engine.plan import STEP_DEPENDENCIES, STEP_ORDER, build_plan, is_satisfied
from proxlite.models.state import ObservedState, Step


ALL_STEPS = [
    Step.ALLOCATE_CONTAINER,
    Step.CREATE_CONTAINER,
    Step.START_CONTAINER,
    Step.WAIT_FOR_NETWORK,
    Step.PUSH_INSTALLER,
    Step.RUN_INSTALLER,
    Step.VERIFY_SERVICE,
]


class TestStepOrder:
    """Test the dependency ordering of steps."""

    def test_order(self):
        """Test that the execution order is the declared chain."""
        assert STEP_ORDER == ALL_STEPS

    def test_dependencies_precede_dependents(self):
        """Test that every dependency comes earlier in the order."""
        for step, dependencies in STEP_DEPENDENCIES.items():
            for dependency in dependencies:
                assert STEP_ORDER.index(dependency) < STEP_ORDER.index(step)


class TestBuildPlan:
    """Test diffing desired against observed state."""

    def test_fresh_deployment(self, make_spec):
        """Test that nothing observed means every step."""
        assert build_plan(make_spec(), ObservedState()) == ALL_STEPS

    def test_known_id_missing_container(self, make_spec):
        """Test that a pinned id skips allocation."""
        plan = build_plan(make_spec(container_id=120), ObservedState(container_id=120))

        assert plan == ALL_STEPS[1:]

    def test_stopped_container(self, make_spec):
        """Test that a stopped container is started and reinstalled."""
        observed = ObservedState(container_id=120, exists=True)

        assert build_plan(make_spec(container_id=120), observed) == ALL_STEPS[2:]

    def test_installed_but_inactive(self, make_spec):
        """Test that only verification remains when the install marker exists."""
        observed = ObservedState(
            container_id=120, exists=True, running=True, ip_address="10.0.0.5", installed=True
        )

        assert build_plan(make_spec(container_id=120), observed) == [Step.VERIFY_SERVICE]

    def test_converged(self, make_spec):
        """Test that a converged deployment yields an empty plan."""
        observed = ObservedState(
            container_id=120,
            exists=True,
            running=True,
            ip_address="10.0.0.5",
            installed=True,
            service_active=True,
        )

        assert build_plan(make_spec(container_id=120), observed) == []
        assert all(is_satisfied(step, observed) for step in ALL_STEPS)
