import re
from typing import Dict, Optional

from nornir.core.task import Task, Result

from convergence.actions import ObservedState, REQUIRED_TOOL
from convergence.planner import CONFIGD_FQDN_PARAMETERS, CONFIGD_SHORT_PARAMETERS, SMB_PARAMETERS
from convergence.platform import PlatformContext, detect_platform
from core.decorators import automated_step, automated_substep
from core.models import TaskStatus, StandardResult, SubTaskResult
from core.settings import SystemSettings
from tasks.utils import command_exists, command_output, read_file_or_none, remote_file_exists

SMB_PREFERENCES = "/Library/Preferences/SystemConfiguration/com.apple.smb.server"


def _fail(task: Task, sub_res: SubTaskResult) -> Result:
    return Result(host=task.host, failed=True, result=StandardResult(TaskStatus.FAILED, sub_res.message))


# --- PARSERS ---

def parse_os_release(text: str) -> Dict[str, str]:
    """Parses /etc/os-release into a dictionary."""
    data = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key] = value.strip().strip('"').strip("'")
    return data


def parse_network_config_hostname(text: Optional[str]) -> Optional[str]:
    """Value of the last HOSTNAME= line of /etc/sysconfig/network ("" when absent)."""
    if text is None:
        return None

    value = ""
    for line in text.splitlines():
        match = re.match(r"^\s*HOSTNAME=(.*)$", line)
        if match:
            value = match.group(1).strip().strip('"').strip("'")
    return value


def parse_local_ip(output: str) -> Optional[str]:
    """First address printed by 'hostname -I' / 'ipconfig getifaddr'."""
    fields = output.split()
    return fields[0] if fields else None


# --- SUB-STEPS ---

@automated_substep("Detect Platform")
def _detect_platform(task: Task) -> SubTaskResult:
    """Reads uname, /etc/os-release (or sw_vers) and the service manager."""
    uname = command_output(task, "uname -s")
    if uname is None:
        return SubTaskResult(success=False, message="Could not run uname")

    os_release, sw_version, manager = {}, None, None
    if uname == "Darwin":
        sw_version = command_output(task, "sw_vers -productVersion") or ""
    else:
        text = command_output(task, "cat /etc/os-release")
        if text is None:
            return SubTaskResult(success=False, message="Could not read /etc/os-release")
        os_release = parse_os_release(text)

        # systemd exposes /run/systemd/system, upstart ships initctl
        if command_output(task, "test -d /run/systemd/system") is not None:
            manager = "systemd"
        elif command_exists(task, "initctl"):
            manager = "upstart"
        else:
            manager = "init"

    platform = detect_platform(os_release, uname=uname, sw_version=sw_version, service_manager=manager)
    return SubTaskResult(
        success=True,
        message=f"{platform.family.value} ({platform.distro} {platform.version}, {platform.service_manager.value})",
        data=platform
    )


@automated_substep("Read Current Hostname")
def _read_kernel_fqdn(task: Task) -> SubTaskResult:
    fqdn = command_output(task, "hostname -f")
    return SubTaskResult(success=True, message=fqdn or "hostname -f failed, treated as unknown", data=fqdn)


@automated_substep("Read Host Table")
def _read_hosts(task: Task, path: str) -> SubTaskResult:
    content = read_file_or_none(task, path)
    if content is None:
        return SubTaskResult(success=True, message=f"Could not read {path}, treated as unknown", data=None)
    return SubTaskResult(success=True, message=f"{len(content.splitlines())} lines", data=content)


@automated_substep("Read Network Config HOSTNAME")
def _read_network_config(task: Task, platform: PlatformContext, path: str) -> SubTaskResult:
    # Only legacy RHEL keeps it
    if not platform.is_legacy_rhel:
        return SubTaskResult(success=True, message="Not applicable", data="")

    value = parse_network_config_hostname(read_file_or_none(task, path))
    return SubTaskResult(success=True, message=f"HOSTNAME={value}", data=value)


@automated_substep("Check Hostname Tools")
def _read_tools(task: Task) -> SubTaskResult:
    present = frozenset(tool for tool in REQUIRED_TOOL.values() if command_exists(task, tool))
    return SubTaskResult(success=True, message=", ".join(sorted(present)) or "none", data=present)


@automated_substep("Read Local IP")
def _read_local_ip(task: Task, platform: PlatformContext) -> SubTaskResult:
    output = command_output(task, "ipconfig getifaddr en0" if platform.is_mac else "hostname -I")
    ip = parse_local_ip(output) if output is not None else None
    return SubTaskResult(success=True, message=ip or "unknown", data=ip)


@automated_substep("Read macOS Names")
def _read_mac_names(task: Task) -> SubTaskResult:
    """scutil names and SMB server names. Unreadable values are left out (unknown)."""
    configd, smb = {}, {}

    for param in CONFIGD_FQDN_PARAMETERS + CONFIGD_SHORT_PARAMETERS:
        value = command_output(task, f"scutil --get {param}")
        if value is not None:
            configd[param] = value

    if remote_file_exists(task, f"{SMB_PREFERENCES}.plist"):
        for param in SMB_PARAMETERS:
            value = command_output(task, f"defaults read {SMB_PREFERENCES} {param}")
            if value is not None:
                smb[param] = value

    return SubTaskResult(success=True, message=f"{len(configd) + len(smb)} values read", data=(configd, smb))


# --- MAIN TASK ---

@automated_step("Gather Host Facts")
def gather_host_facts(task: Task) -> Result:
    """
    Observes everything the hostname planner needs.
    Only the platform is mandatory; every other failed query is recorded as unknown.
    """
    app_config = task.host.get("app_config")
    system: SystemSettings = app_config.system if app_config else SystemSettings()

    # 1. Platform (mandatory)
    s1 = _detect_platform(task)
    if not s1.success: return _fail(task, s1)
    platform: PlatformContext = s1.data

    # 2. Names and tables
    kernel_fqdn = _read_kernel_fqdn(task).data
    hosts_content = _read_hosts(task, system.hosts_file).data
    network_hostname = _read_network_config(task, platform, system.network_config_file).data
    tools = _read_tools(task).data
    local_ip = _read_local_ip(task, platform).data

    configd, smb = None, None
    if platform.is_mac:
        names = _read_mac_names(task)
        if names.success:
            configd, smb = names.data

    observed = ObservedState(
        platform=platform,
        kernel_fqdn=kernel_fqdn,
        hosts_content=hosts_content,
        network_config_hostname=network_hostname,
        tools=tools,
        local_ip=local_ip,
        configd=configd,
        smb=smb,
    )

    # 3. Save facts to host context for the hostname tasks
    task.host["observed_state"] = observed

    return Result(
        host=task.host,
        result=StandardResult(
            status=TaskStatus.OK,
            message=f"{platform.distro} {platform.version}: hostname -f = {kernel_fqdn or '<unknown>'}, ip = {local_ip or '<unknown>'}",
            data=observed
        )
    )
