from .facts import gather_host_facts
from .hostname import converge_hostname, plan_hostname

__all__ = [
    "gather_host_facts",
    "plan_hostname",
    "converge_hostname",
]
