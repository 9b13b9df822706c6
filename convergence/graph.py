from typing import Dict, List, Sequence

from convergence.actions import ConvergenceAction
from core.errors import DependencyCycle


def topological_order(actions: Sequence[ConvergenceAction]) -> List[ConvergenceAction]:
    """
    Orders actions so every prerequisite comes before its dependents.
    Among actions that are ready at the same time, emission order is kept.
    Raises DependencyCycle on unknown prerequisites or cycles.
    """
    by_name: Dict[str, ConvergenceAction] = {}
    for action in actions:
        if action.name in by_name:
            raise DependencyCycle(f"Action '{action.name}' is declared twice", [action.name])
        by_name[action.name] = action

    # 1. Validate edges and count incoming ones
    remaining: Dict[str, int] = {}
    for action in actions:
        missing = [dep for dep in action.depends_on if dep not in by_name]
        if missing:
            raise DependencyCycle(
                f"Action '{action.name}' depends on unknown action(s): {', '.join(sorted(missing))}",
                [action.name] + sorted(missing)
            )
        remaining[action.name] = len(action.depends_on)

    # 2. Kahn's algorithm, scanning in emission order
    ordered: List[ConvergenceAction] = []
    done = set()
    while len(ordered) < len(actions):
        ready = [a for a in actions if a.name not in done and remaining[a.name] == 0]
        if not ready:
            stuck = [a.name for a in actions if a.name not in done]
            raise DependencyCycle(f"Dependency cycle between: {', '.join(stuck)}", stuck)

        current = ready[0]
        ordered.append(current)
        done.add(current.name)
        for action in actions:
            if current.name in action.depends_on:
                remaining[action.name] -= 1

    return ordered
