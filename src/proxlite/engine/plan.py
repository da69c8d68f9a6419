"""Plan construction: diff desired state against observed state."""

import logging
from typing import Callable, Dict, FrozenSet, List

from proxlite.models.spec import SpecModel
from proxlite.models.state import ObservedState, Step


logger = logging.getLogger(__name__)


# Each step's preconditions are the postconditions of these steps.
STEP_DEPENDENCIES: Dict[Step, FrozenSet[Step]] = {
    Step.ALLOCATE_CONTAINER: frozenset(),
    Step.CREATE_CONTAINER: frozenset({Step.ALLOCATE_CONTAINER}),
    Step.START_CONTAINER: frozenset({Step.CREATE_CONTAINER}),
    Step.WAIT_FOR_NETWORK: frozenset({Step.START_CONTAINER}),
    Step.PUSH_INSTALLER: frozenset({Step.WAIT_FOR_NETWORK}),
    Step.RUN_INSTALLER: frozenset({Step.PUSH_INSTALLER}),
    Step.VERIFY_SERVICE: frozenset({Step.RUN_INSTALLER}),
}

# A step is omitted from the plan when its postcondition already holds.
POSTCONDITIONS: Dict[Step, Callable[[ObservedState], bool]] = {
    Step.ALLOCATE_CONTAINER: lambda o: o.container_id is not None,
    Step.CREATE_CONTAINER: lambda o: o.exists,
    Step.START_CONTAINER: lambda o: o.running,
    Step.WAIT_FOR_NETWORK: lambda o: bool(o.ip_address),
    Step.PUSH_INSTALLER: lambda o: o.installed,
    Step.RUN_INSTALLER: lambda o: o.installed,
    Step.VERIFY_SERVICE: lambda o: o.service_active,
}


def _topological_order() -> List[Step]:
    """Order steps so every dependency precedes its dependents."""
    ordered: List[Step] = []
    visiting = set()

    def visit(step: Step):
        if step in ordered:
            return
        if step in visiting:
            raise ValueError(f"Dependency cycle at {step.value}")
        visiting.add(step)
        for dependency in sorted(STEP_DEPENDENCIES[step], key=list(Step).index):
            visit(dependency)
        visiting.discard(step)
        ordered.append(step)

    for step in Step:
        visit(step)
    return ordered


STEP_ORDER: List[Step] = _topological_order()


def is_satisfied(step: Step, observed: ObservedState) -> bool:
    """Check whether a step's postcondition already holds."""
    return POSTCONDITIONS[step](observed)


def build_plan(spec: SpecModel, observed: ObservedState) -> List[Step]:
    """Return the ordered steps still needed to reach the desired state."""
    plan = [step for step in STEP_ORDER if not is_satisfied(step, observed)]
    if plan:
        logger.info(f"Plan: {', '.join(step.value for step in plan)}")
    else:
        logger.info("Desired state already reached, nothing to do")
    return plan
