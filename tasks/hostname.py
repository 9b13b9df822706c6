import shlex
from typing import Dict, Optional

from nornir.core.task import Task, Result

from convergence.actions import ActionKind, ConvergenceAction, ObservedState
from convergence.dispatch import run_actions
from convergence.hosts_table import HostTable
from convergence.identity import HostnameSpec
from convergence.planner import ConvergencePlan, build_plan
from convergence.platform import PlatformContext, ServiceManager
from core.decorators import automated_step, automated_substep
from core.models import ActionOutcome, TaskStatus, StandardResult, SubTaskResult
from core.settings import SystemSettings, settings_for_host
from tasks.facts import SMB_PREFERENCES
from tasks.utils import command_exists, command_output, ensure_line_in_file, read_file_or_none, run_checked, write_file
from utils.logger import logger, sys_logger

HOST_INFO_COMMANDS = (
    ("Hostname", "hostname"),
    ("Network node hostname", "hostname -f"),
    ("Alias names of host", "hostname -a"),
    ("Short host name", "hostname -s"),
    ("Domain of hostname", "hostname -d"),
    ("IP address(es) for the hostname", "hostname -i"),
)


# --- COMMANDS ---

def command_for(action: ConvergenceAction, platform: PlatformContext) -> Optional[str]:
    """
    Shell command for command-style actions. File and report actions return None.
    """
    value = shlex.quote(str(action.desired_value))

    if action.kind == ActionKind.SET_KERNEL_HOSTNAME:
        return f"hostname {value}"
    if action.kind == ActionKind.RUN_HOSTNAMECTL:
        return f"hostnamectl set-hostname {value}"
    if action.kind == ActionKind.RUN_DOMAINNAME:
        return f"domainname {value}"
    if action.kind == ActionKind.TAG_CLOUD_METADATA:
        return f"rs_tag --add {value}"
    if action.kind == ActionKind.SET_CONFIGD_PARAMETER:
        return f"scutil --set {action.parameter} {value}"
    if action.kind == ActionKind.SET_SMB_PARAMETER:
        return f"defaults write {SMB_PREFERENCES} {action.parameter} {value}"
    if action.kind == ActionKind.RESTART_SERVICE:
        service = action.desired_value
        if platform.service_manager == ServiceManager.SYSTEMD:
            return f"systemctl {service.verb} {service.name}"
        return f"service {service.name} {service.verb}"
    return None


def file_owner(platform: PlatformContext) -> str:
    return "root:wheel" if platform.is_mac else "root:root"


# --- EXECUTORS ---

def _outcome_from_result(res: Result, changed_msg: str) -> ActionOutcome:
    if res.failed:
        return ActionOutcome(TaskStatus.FAILED, str(res.result).strip())
    if res.changed:
        return ActionOutcome(TaskStatus.CHANGED, changed_msg)
    return ActionOutcome(TaskStatus.OK, str(res.result).strip() or "up to date")


def _report_host_info(task: Task, plan: ConvergencePlan) -> ActionOutcome:
    """Logs the host/node names as the OS sees them after the changes."""
    with logger.task(f"New host information ({task.host.name})"):
        for label, cmd in HOST_INFO_COMMANDS:
            value = command_output(task, cmd)
            logger.log_step("info", f"{label}: {value or '<none>'}")
            sys_logger.info(f"[{task.host.name}] {label}: {value or '<none>'}")

        logger.log_step("info", f"Planned FQDN: {plan.identity.fqdn}")

        if command_exists(task, "hostnamectl"):
            status = command_output(task, "hostnamectl")
            if status is not None:
                sys_logger.info(f"[{task.host.name}] == hostnamectl ==\n{status}")

    return ActionOutcome(TaskStatus.OK, "host information logged")


def _write_host_table(task: Task, plan: ConvergencePlan, platform: PlatformContext,
                      system: SystemSettings) -> ActionOutcome:
    """
    Merges the planned entries into the file as it is now; unmanaged lines survive.
    An unreadable file is never replaced.
    """
    current = read_file_or_none(task, system.hosts_file)
    if current is None:
        return ActionOutcome(TaskStatus.FAILED, f"Could not read {system.hosts_file}, refusing to overwrite it")

    content = HostTable.parse(current).apply(plan.host_entries).render()
    res = write_file(task, system.hosts_file, content, owner=file_owner(platform))
    return _outcome_from_result(res, f"{system.hosts_file} updated")


def execute_action(task: Task, action: ConvergenceAction, plan: ConvergencePlan,
                   platform: PlatformContext, system: SystemSettings) -> ActionOutcome:
    """Performs one planned action on the host."""
    if action.kind == ActionKind.WRITE_HOST_TABLE:
        return _write_host_table(task, plan, platform, system)

    if action.kind == ActionKind.WRITE_HOSTNAME_FILE:
        res = write_file(task, system.hostname_file, plan.hostname_file_content, owner=file_owner(platform))
        return _outcome_from_result(res, f"{system.hostname_file} set to {plan.identity.fqdn}")

    if action.kind == ActionKind.UPDATE_NETWORK_CONFIG_FILE:
        res = ensure_line_in_file(
            task, system.network_config_file, f"HOSTNAME={action.desired_value}", match_regex=r"^\s*HOSTNAME="
        )
        return _outcome_from_result(res, f"HOSTNAME={action.desired_value} written")

    if action.kind == ActionKind.REPORT_HOST_INFO:
        return _report_host_info(task, plan)

    # The kernel name may have been fixed earlier in this run
    if action.kind == ActionKind.SET_KERNEL_HOSTNAME and command_output(task, "hostname -f") == action.desired_value:
        return ActionOutcome(TaskStatus.OK, f"already converged (hostname -f reports {action.desired_value})")

    cmd = command_for(action, platform)
    res = run_checked(task, cmd, sudo=action.kind != ActionKind.TAG_CLOUD_METADATA)
    if res.failed:
        return ActionOutcome(TaskStatus.FAILED, f"'{cmd}' failed: {str(res.result).strip()}")
    return ActionOutcome(TaskStatus.CHANGED, cmd)


# --- SUB-STEPS ---

@automated_substep("Compute Hostname Plan")
def _compute_plan(task: Task) -> SubTaskResult:
    """
    Builds the convergence plan from the inventory, the settings and the observed state.
    """
    observed: ObservedState = task.host.get("observed_state")
    if observed is None:
        return SubTaskResult(success=False, message="Observed state not found. Run 'gather_host_facts' first.")

    app_config = task.host.get("app_config")
    base = app_config.system if app_config else SystemSettings()
    system = settings_for_host(base, task.host.data)

    # The inventory 'hostname' is the connection address; 'fqdn' wins when given
    raw_hostname = task.host.get("fqdn") or task.host.name

    spec = HostnameSpec(
        raw_hostname=raw_hostname,
        explicit_short_name=system.short_hostname,
        explicit_domain=system.domain_name,
        fallback_domain=system.fallback_domain,
    )
    plan = build_plan(
        spec,
        observed,
        permanent_ip=system.permanent_ip,
        static_hosts=system.static_hosts,
        netbios_name=system.netbios_name,
    )
    task.host["hostname_plan"] = plan

    pending = [a.name for a in plan.pending if not a.trigger_only]
    return SubTaskResult(
        success=True,
        message=f"{plan.identity.fqdn}: {len(pending)} pending ({', '.join(pending) or 'none'})",
        data=(plan, system)
    )


def _summarize(outcomes: Dict[str, ActionOutcome]) -> StandardResult:
    failed = [name for name, o in outcomes.items() if o.status.is_failure]
    changed = [name for name, o in outcomes.items() if o.status == TaskStatus.CHANGED]

    if failed:
        details = "; ".join(f"{name}: {outcomes[name].message}" for name in failed)
        return StandardResult(TaskStatus.FAILED, f"Failed actions: {details}", data=outcomes)
    if changed:
        return StandardResult(TaskStatus.CHANGED, f"Changed: {', '.join(changed)}", data=outcomes)
    return StandardResult(TaskStatus.OK, "Hostname and host table already converged", data=outcomes)


# --- MAIN TASKS ---

@automated_step("Plan Hostname Convergence")
def plan_hostname(task: Task) -> Result:
    """
    Dry run: computes and stores the plan without touching the host.
    """
    step = _compute_plan(task)
    if not step.success:
        if step.exception is not None:
            raise step.exception
        return Result(host=task.host, failed=True, result=StandardResult(TaskStatus.FAILED, step.message))

    plan, _ = step.data
    for action in plan.actions:
        marker = "apply" if action.apply else "skip"
        trigger = " (on trigger)" if action.trigger_only else ""
        sys_logger.info(f"[{task.host.name}] PLAN {marker:<5} {action.name}{trigger}: {action.reason}")

    return Result(
        host=task.host,
        result=StandardResult(status=TaskStatus.OK, message=step.message, data=plan)
    )


@automated_step("Converge Hostname & Host Table")
def converge_hostname(task: Task) -> Result:
    """
    Plans, then applies only the actions whose guard says there is work to do.
    """
    # 1. Plan (pure, complete or error)
    step = _compute_plan(task)
    if not step.success:
        if step.exception is not None:
            raise step.exception
        return Result(host=task.host, failed=True, result=StandardResult(TaskStatus.FAILED, step.message))

    plan, system = step.data
    platform = task.host["observed_state"].platform

    # 2. Apply in dependency order
    outcomes = run_actions(
        plan.actions,
        lambda action: execute_action(task, action, plan, platform, system)
    )

    summary = _summarize(outcomes)
    return Result(
        host=task.host,
        failed=summary.failed,
        changed=summary.changed,
        result=summary
    )
