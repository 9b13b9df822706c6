"""
Convergence actions and their guards.

Every OS-level store is represented by a ConvergenceAction. should_apply()
decides, from the observed state only, whether the action still has work to
do this run. Guards never raise: a failed observation (None) means "apply".
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from convergence.hosts_table import HostTable
from convergence.platform import PlatformContext
from utils.logger import sys_logger


class ActionKind(str, Enum):
    SET_KERNEL_HOSTNAME = "set_kernel_hostname"
    WRITE_HOSTNAME_FILE = "write_hostname_file"
    WRITE_HOST_TABLE = "write_host_table"
    UPDATE_NETWORK_CONFIG_FILE = "update_network_config_file"
    RUN_HOSTNAMECTL = "run_hostnamectl"
    RUN_DOMAINNAME = "run_domainname"
    RESTART_SERVICE = "restart_service"
    TAG_CLOUD_METADATA = "tag_cloud_metadata"
    SET_CONFIGD_PARAMETER = "set_configd_parameter"
    SET_SMB_PARAMETER = "set_smb_parameter"
    REPORT_HOST_INFO = "report_host_info"


# Executable whose presence gates the action
REQUIRED_TOOL: Dict[ActionKind, str] = {
    ActionKind.RUN_HOSTNAMECTL: "hostnamectl",
    ActionKind.RUN_DOMAINNAME: "domainname",
    ActionKind.TAG_CLOUD_METADATA: "rs_tag",
}


@dataclass(frozen=True)
class ServiceIdentity:
    name: str
    supports: FrozenSet[str]
    verb: str


def service_identities(platform: PlatformContext) -> Tuple[ServiceIdentity, ...]:
    """Services that must be (re)started after the hostname changes on this platform."""
    services = []

    # Keyed on the exact distro, not the family
    if platform.distro == "debian":
        services.append(ServiceIdentity("hostname.sh", frozenset({"start"}), "start"))
    elif platform.distro == "ubuntu":
        services.append(ServiceIdentity("hostname", frozenset({"start", "restart", "reload"}), "restart"))

    if platform.is_legacy_rhel:
        services.append(ServiceIdentity("network", frozenset({"start", "restart", "status"}), "restart"))

    return tuple(services)


@dataclass(frozen=True)
class ObservedState:
    """
    Snapshot of the machine taken before planning.
    A None field means the corresponding query failed.
    """
    platform: PlatformContext
    kernel_fqdn: Optional[str] = None
    hosts_content: Optional[str] = None
    network_config_hostname: Optional[str] = None
    tools: Optional[FrozenSet[str]] = None
    local_ip: Optional[str] = None
    configd: Optional[Mapping[str, str]] = None
    smb: Optional[Mapping[str, str]] = None

    def has_tool(self, tool: str) -> bool:
        # Presence unknown: let the dispatcher surface the failure
        if self.tools is None:
            return True
        return tool in self.tools


@dataclass(frozen=True)
class ConvergenceAction:
    name: str
    kind: ActionKind
    desired_value: Any
    depends_on: FrozenSet[str] = frozenset()
    # Runs only when one of depends_on actually changed something this run
    trigger_only: bool = False
    parameter: Optional[str] = None
    apply: Optional[bool] = field(default=None, compare=False)
    reason: str = field(default="", compare=False)

    def with_guard(self, apply: bool, reason: str) -> "ConvergenceAction":
        return replace(self, apply=apply, reason=reason)


Guard = Callable[[ConvergenceAction, ObservedState], Tuple[bool, str]]


# --- GUARDS ---

def _guard_kernel_hostname(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    if action.kind in REQUIRED_TOOL and not observed.has_tool(REQUIRED_TOOL[action.kind]):
        return False, f"{REQUIRED_TOOL[action.kind]} not available"
    if observed.kernel_fqdn is None:
        return True, "current hostname unknown"
    if observed.kernel_fqdn == action.desired_value:
        return False, f"hostname -f already reports {action.desired_value}"
    return True, f"hostname -f reports {observed.kernel_fqdn}"


def _guard_hostname_file(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    if observed.platform.is_mac:
        return False, "/etc/hostname is not authoritative on macOS"
    return True, "content enforced"


def _guard_host_table(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    if observed.hosts_content is None:
        return True, "current host table unknown"

    pending = HostTable.parse(observed.hosts_content).pending(action.desired_value)
    if not pending:
        return False, "all host entries present"
    return True, "pending: " + ", ".join(f"{e.action.value} {e.ip}" for e in pending)


def _guard_network_config(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    if not observed.platform.is_legacy_rhel:
        return False, "only used on rhel < 7.0"
    if observed.network_config_hostname is None:
        return True, "current HOSTNAME= unknown"
    if observed.network_config_hostname == action.desired_value:
        return False, f"HOSTNAME={action.desired_value} already set"
    return True, f"HOSTNAME={observed.network_config_hostname}"


def _guard_service(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    if action.desired_value not in service_identities(observed.platform):
        return False, "service not managed on this platform"
    return True, f"{action.desired_value.verb} {action.desired_value.name}"


def _guard_tool_only(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    tool = REQUIRED_TOOL[action.kind]
    if observed.has_tool(tool):
        return True, f"{tool} available"
    return False, f"{tool} not available"


def _guard_mac_parameter(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    if not observed.platform.is_mac:
        return False, "macOS only"

    values = observed.configd if action.kind == ActionKind.SET_CONFIGD_PARAMETER else observed.smb
    if values is None or values.get(action.parameter) is None:
        return True, f"current {action.parameter} unknown"
    if values[action.parameter] == action.desired_value:
        return False, f"{action.parameter} already {action.desired_value}"
    return True, f"{action.parameter} is {values[action.parameter]}"


def _guard_always(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    return True, "informational"


GUARDS: Dict[ActionKind, Guard] = {
    ActionKind.SET_KERNEL_HOSTNAME: _guard_kernel_hostname,
    ActionKind.RUN_HOSTNAMECTL: _guard_kernel_hostname,
    ActionKind.WRITE_HOSTNAME_FILE: _guard_hostname_file,
    ActionKind.WRITE_HOST_TABLE: _guard_host_table,
    ActionKind.UPDATE_NETWORK_CONFIG_FILE: _guard_network_config,
    ActionKind.RESTART_SERVICE: _guard_service,
    ActionKind.RUN_DOMAINNAME: _guard_tool_only,
    ActionKind.TAG_CLOUD_METADATA: _guard_tool_only,
    ActionKind.SET_CONFIGD_PARAMETER: _guard_mac_parameter,
    ActionKind.SET_SMB_PARAMETER: _guard_mac_parameter,
    ActionKind.REPORT_HOST_INFO: _guard_always,
}


def explain(action: ConvergenceAction, observed: ObservedState) -> Tuple[bool, str]:
    """Evaluates the guard and returns (apply, reason)."""
    try:
        return GUARDS[action.kind](action, observed)
    except Exception as e:
        # Fail open: the dispatcher reports the real error if the action fails
        sys_logger.warning(f"Guard for '{action.name}' could not be evaluated: {e}")
        return True, f"guard error: {e}"


def should_apply(action: ConvergenceAction, observed: ObservedState) -> bool:
    return explain(action, observed)[0]


def evaluate(action: ConvergenceAction, observed: ObservedState) -> ConvergenceAction:
    apply, reason = explain(action, observed)
    return action.with_guard(apply, reason)
