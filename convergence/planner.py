"""
Plan stage: resolve the identity, plan the host table, emit the actions with
their dependency edges and evaluate every guard against the observed state.

build_plan() returns a complete ConvergencePlan or raises; it performs no I/O.
"""
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from convergence import hosts_table
from convergence.actions import (
    ActionKind,
    ConvergenceAction,
    ObservedState,
    evaluate,
    service_identities,
)
from convergence.graph import topological_order
from convergence.identity import DEFAULT_FALLBACK_DOMAIN, HostnameSpec, ResolvedIdentity, resolve
from utils.logger import sys_logger

NETBIOS_MAX_LENGTH = 15

CONFIGD_FQDN_PARAMETERS = ("HostName",)
CONFIGD_SHORT_PARAMETERS = ("ComputerName", "LocalHostName")
SMB_PARAMETERS = ("NetBIOSName", "Workgroup")

# Fixed action names
WRITE_HOSTNAME_FILE = "write_hostname_file"
UPDATE_NETWORK_CONFIG = "update_network_config"
ENSURE_HOSTNAME_SYNCED = "ensure_hostname_synced"
RUN_HOSTNAMECTL = "run_hostnamectl"
REPORT_HOST_INFO = "report_host_info"


@dataclass(frozen=True)
class ConvergencePlan:
    identity: ResolvedIdentity
    host_entries: Tuple[hosts_table.HostEntry, ...]
    host_table_content: str
    hostname_file_content: str
    actions: Tuple[ConvergenceAction, ...]

    @property
    def pending(self) -> List[ConvergenceAction]:
        """Actions whose guard says there is work to do (trigger-only ones included)."""
        return [action for action in self.actions if action.apply]

    def action(self, name: str) -> ConvergenceAction:
        for action in self.actions:
            if action.name == name:
                return action
        raise KeyError(name)


def default_netbios_name(identity: ResolvedIdentity) -> str:
    return identity.short_name.upper()[:NETBIOS_MAX_LENGTH]


def _mac_actions(identity: ResolvedIdentity, netbios_name: str) -> List[ConvergenceAction]:
    actions = []
    for param in CONFIGD_FQDN_PARAMETERS + CONFIGD_SHORT_PARAMETERS:
        value = identity.fqdn if param in CONFIGD_FQDN_PARAMETERS else identity.short_name
        actions.append(ConvergenceAction(
            name=f"set_configd_{param}", kind=ActionKind.SET_CONFIGD_PARAMETER,
            desired_value=value, parameter=param,
        ))
    for param in SMB_PARAMETERS:
        actions.append(ConvergenceAction(
            name=f"set_smb_{param}", kind=ActionKind.SET_SMB_PARAMETER,
            desired_value=netbios_name, parameter=param,
        ))
    return actions


def emit_actions(
        identity: ResolvedIdentity,
        observed: ObservedState,
        entries: Tuple[hosts_table.HostEntry, ...],
        netbios_name: str,
) -> List[ConvergenceAction]:
    """
    Every action the machine may need, in the order they should run.
    Platform applicability is left to the guards.
    """
    platform = observed.platform
    fqdn = identity.fqdn
    actions: List[ConvergenceAction] = []

    # 1. macOS configd / SMB server names
    if platform.is_mac:
        actions.extend(_mac_actions(identity, netbios_name))

    # 2. Host table
    actions.append(ConvergenceAction(
        name="write_host_table", kind=ActionKind.WRITE_HOST_TABLE, desired_value=entries
    ))

    # 3. /etc/hostname and everything it notifies, in notification order
    actions.append(ConvergenceAction(
        name=WRITE_HOSTNAME_FILE, kind=ActionKind.WRITE_HOSTNAME_FILE, desired_value=f"{fqdn}\n"
    ))

    for service in service_identities(platform):
        if service.name == "network":
            continue
        actions.append(ConvergenceAction(
            name=f"restart_service_{service.name}", kind=ActionKind.RESTART_SERVICE,
            desired_value=service, depends_on=frozenset({WRITE_HOSTNAME_FILE}), trigger_only=True,
        ))

    actions.append(ConvergenceAction(
        name=UPDATE_NETWORK_CONFIG, kind=ActionKind.UPDATE_NETWORK_CONFIG_FILE,
        desired_value=fqdn, depends_on=frozenset({WRITE_HOSTNAME_FILE}),
    ))

    for service in service_identities(platform):
        if service.name != "network":
            continue
        actions.append(ConvergenceAction(
            name="restart_service_network", kind=ActionKind.RESTART_SERVICE,
            desired_value=service, depends_on=frozenset({UPDATE_NETWORK_CONFIG}), trigger_only=True,
        ))

    actions.append(ConvergenceAction(
        name="run_domainname", kind=ActionKind.RUN_DOMAINNAME, desired_value=identity.domain,
        depends_on=frozenset({WRITE_HOSTNAME_FILE}), trigger_only=True,
    ))
    actions.append(ConvergenceAction(
        name="set_kernel_hostname", kind=ActionKind.SET_KERNEL_HOSTNAME, desired_value=fqdn,
        depends_on=frozenset({WRITE_HOSTNAME_FILE}), trigger_only=True,
    ))

    # Runs even when /etc/hostname could not be written
    actions.append(ConvergenceAction(
        name=ENSURE_HOSTNAME_SYNCED, kind=ActionKind.SET_KERNEL_HOSTNAME, desired_value=fqdn,
    ))

    # 4. systemd hostname
    actions.append(ConvergenceAction(
        name=RUN_HOSTNAMECTL, kind=ActionKind.RUN_HOSTNAMECTL, desired_value=fqdn,
        depends_on=frozenset({WRITE_HOSTNAME_FILE}),
    ))

    # 5. Cloud tag
    actions.append(ConvergenceAction(
        name="tag_cloud_metadata", kind=ActionKind.TAG_CLOUD_METADATA,
        desired_value=f"node:hostname={fqdn}",
    ))

    # 6. Summary, shown once after anything that changed the names
    triggers = {WRITE_HOSTNAME_FILE, RUN_HOSTNAMECTL}
    triggers.update(a.name for a in actions if a.kind in (
        ActionKind.SET_CONFIGD_PARAMETER, ActionKind.SET_SMB_PARAMETER
    ))
    actions.append(ConvergenceAction(
        name=REPORT_HOST_INFO, kind=ActionKind.REPORT_HOST_INFO, desired_value=fqdn,
        depends_on=frozenset(triggers), trigger_only=True,
    ))

    return actions


def build_plan(
        spec: HostnameSpec,
        observed: ObservedState,
        permanent_ip: bool = False,
        static_hosts: Optional[Mapping[str, str]] = None,
        netbios_name: Optional[str] = None,
        platform_fallback_domain: str = DEFAULT_FALLBACK_DOMAIN,
) -> ConvergencePlan:
    """
    Computes the complete convergence plan for one machine.
    """
    # 1. Identity
    identity = resolve(spec, platform_fallback_domain)

    # 2. Host table
    entries = tuple(hosts_table.plan(
        identity,
        observed.platform,
        permanent_ip=permanent_ip,
        static_hosts=static_hosts,
        local_ip=observed.local_ip,
    ))
    current = hosts_table.HostTable.parse(observed.hosts_content)
    host_table_content = current.apply(entries).render()

    # 3. Actions, guards and ordering
    actions = emit_actions(identity, observed, entries, netbios_name or default_netbios_name(identity))
    ordered = topological_order([evaluate(action, observed) for action in actions])

    sys_logger.info(
        f"Plan for {identity.fqdn}: {sum(1 for a in ordered if a.apply)}/{len(ordered)} actions to apply"
    )

    return ConvergencePlan(
        identity=identity,
        host_entries=entries,
        host_table_content=host_table_content,
        hostname_file_content=f"{identity.fqdn}\n",
        actions=tuple(ordered),
    )
