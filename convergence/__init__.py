from .actions import ActionKind, ConvergenceAction, ObservedState, ServiceIdentity, should_apply
from .hosts_table import EntryAction, HostEntry, HostTable
from .identity import HostnameSpec, ResolvedIdentity, resolve
from .planner import ConvergencePlan, build_plan
from .platform import PlatformContext, PlatformFamily, ServiceManager, detect_platform

__all__ = [
    "ActionKind",
    "ConvergenceAction",
    "ObservedState",
    "ServiceIdentity",
    "should_apply",
    "EntryAction",
    "HostEntry",
    "HostTable",
    "HostnameSpec",
    "ResolvedIdentity",
    "resolve",
    "ConvergencePlan",
    "build_plan",
    "PlatformContext",
    "PlatformFamily",
    "ServiceManager",
    "detect_platform",
]
