from typing import Dict, List, Callable, Any

from tasks.facts import gather_host_facts
from tasks.hostname import converge_hostname, plan_hostname

TaskChain = List[Callable[..., Any]]

# Groups are processed in this order; hosts outside these groups are ignored
GROUP_EXECUTION_ORDER = ["local_machine", "managed_hosts"]

TASK_REGISTRY: Dict[str, Dict[str, TaskChain]] = {

    # --- GOAL: PLAN (Dry Run) ---
    "PLAN": {
        "local_machine": [
            gather_host_facts,
            plan_hostname,
        ],
        "managed_hosts": [
            gather_host_facts,
            plan_hostname,
        ],
    },

    # --- GOAL: CONVERGE (Apply) ---
    "CONVERGE": {
        "local_machine": [
            gather_host_facts,
            converge_hostname,
        ],
        "managed_hosts": [
            gather_host_facts,
            converge_hostname,
        ],
    },
}
