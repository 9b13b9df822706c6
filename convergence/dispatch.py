from typing import Callable, Dict, Sequence

from convergence.actions import ConvergenceAction
from core.models import ActionOutcome, TaskStatus
from utils.logger import sys_logger


Executor = Callable[[ConvergenceAction], ActionOutcome]


def run_actions(actions: Sequence[ConvergenceAction], execute: Executor) -> Dict[str, ActionOutcome]:
    """
    Runs a planned, topologically ordered action list sequentially.

    - A FAILED prerequisite blocks its dependents.
    - Trigger-only actions run only if a prerequisite reported CHANGED.
    - An action whose guard said "already converged" is OK and never executed.
    """
    outcomes: Dict[str, ActionOutcome] = {}

    for action in actions:
        prerequisites = {name: outcomes[name] for name in action.depends_on if name in outcomes}

        failed = sorted(name for name, res in prerequisites.items() if res.status.is_failure)
        if failed:
            outcome = ActionOutcome(TaskStatus.SKIPPED, f"blocked by failed {', '.join(failed)}")

        elif action.trigger_only and not any(
                res.status == TaskStatus.CHANGED for res in prerequisites.values()):
            outcome = ActionOutcome(TaskStatus.SKIPPED, "not triggered")

        elif not action.apply:
            outcome = ActionOutcome(TaskStatus.OK, f"already converged ({action.reason})")

        else:
            try:
                outcome = execute(action)
            except Exception as e:
                sys_logger.error(f"Action '{action.name}' raised: {e}", exc_info=True)
                outcome = ActionOutcome(TaskStatus.FAILED, f"Exception: {e}")

        sys_logger.info(f"ACTION '{action.name}' -> {outcome.status.value} ({outcome.message})")
        outcomes[action.name] = outcome

    return outcomes
