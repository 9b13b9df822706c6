"""Tests for tasks.hostname: command rendering and the converge task with a fake host."""

import pytest
from nornir.core.task import Result

import tasks.hostname as hostname_task
from convergence.actions import ActionKind, ConvergenceAction, ServiceIdentity
from convergence.platform import ServiceManager
from core.models import StandardResult, TaskStatus
from core.settings import AppSettings, SystemSettings
from core.state import config as global_config
from tasks.hostname import command_for, converge_hostname, plan_hostname
from tasks.utils.files import replace_or_append_line


class FakeHost:
    """Just enough of nornir's Host for the hostname tasks."""

    def __init__(self, name, data=None):
        self.name = name
        self.data = dict(data or {})

    def get(self, key, default=None):
        return self.data.get(key, default)

    def __getitem__(self, key):
        return self.data[key]

    def __setitem__(self, key, value):
        self.data[key] = value


class FakeTask:
    def __init__(self, host):
        self.host = host


@pytest.fixture(autouse=True)
def _quiet():
    previous = global_config.VERBOSE
    global_config.VERBOSE = False
    yield
    global_config.VERBOSE = previous


@pytest.fixture
def fake_io(monkeypatch):
    """Replaces every host interaction; records commands and written files."""
    calls = {
        "commands": [],
        "files": {},
        "fail_files": set(),
        "existing": {"/etc/hosts": "127.0.0.1\tlocalhost\n"},
        "unreadable": set(),
        "kernel_fqdn": "localhost",
    }

    def run_checked(task, cmd, sudo=False):
        calls["commands"].append((cmd, sudo))
        if cmd.startswith("hostname ") and not cmd.startswith("hostname -"):
            calls["kernel_fqdn"] = cmd.split(" ", 1)[1]
        return Result(host=task.host, result="ok\n")

    def command_output(task, cmd, sudo=False):
        if cmd == "hostname -f":
            return calls["kernel_fqdn"]
        return run_checked(task, cmd, sudo).result.strip()

    def read_file_or_none(task, path):
        if path in calls["unreadable"]:
            return None
        return calls["existing"].get(path, "")

    def write_file(task, path, content, owner="root:root", permissions="644"):
        if path in calls["fail_files"]:
            return Result(host=task.host, failed=True, result="Move failed")
        calls["files"][path] = content
        return Result(host=task.host, changed=True, result="File updated")

    def ensure_line_in_file(task, path, line, match_regex=None, owner="root:root", permissions="644"):
        calls["files"][path] = line
        return Result(host=task.host, changed=True, result="File updated")

    monkeypatch.setattr(hostname_task, "run_checked", run_checked)
    monkeypatch.setattr(hostname_task, "command_output", command_output)
    monkeypatch.setattr(hostname_task, "read_file_or_none", read_file_or_none)
    monkeypatch.setattr(hostname_task, "write_file", write_file)
    monkeypatch.setattr(hostname_task, "ensure_line_in_file", ensure_line_in_file)
    monkeypatch.setattr(hostname_task, "command_exists", lambda task, cmd: True)
    return calls


def _task(observed_state, **data):
    host = FakeHost("web01", {"fqdn": "web01.example.com", "observed_state": observed_state,
                              "app_config": AppSettings(), **data})
    return FakeTask(host)


# ── command_for ──────────────────────────────────────────────────────


class TestCommandFor:

    def _cmd(self, kind, value, platform, parameter=None):
        return command_for(ConvergenceAction(name="x", kind=kind, desired_value=value, parameter=parameter), platform)

    def test_hostname_commands(self, debian):
        assert self._cmd(ActionKind.SET_KERNEL_HOSTNAME, "web01.example.com", debian) == "hostname web01.example.com"
        assert self._cmd(ActionKind.RUN_HOSTNAMECTL, "web01.example.com", debian) == \
               "hostnamectl set-hostname web01.example.com"
        assert self._cmd(ActionKind.RUN_DOMAINNAME, "example.com", debian) == "domainname example.com"

    def test_values_are_quoted(self, debian):
        assert self._cmd(ActionKind.TAG_CLOUD_METADATA, "node:hostname=a b", debian) == \
               "rs_tag --add 'node:hostname=a b'"

    def test_mac_parameters(self, mac):
        assert self._cmd(ActionKind.SET_CONFIGD_PARAMETER, "web01", mac, "ComputerName") == \
               "scutil --set ComputerName web01"
        assert self._cmd(ActionKind.SET_SMB_PARAMETER, "WEB01", mac, "NetBIOSName").startswith(
            "defaults write /Library/Preferences/SystemConfiguration/com.apple.smb.server NetBIOSName WEB01")

    def test_service_restart_per_manager(self, debian, rhel6):
        service = ServiceIdentity("network", frozenset({"restart"}), "restart")
        assert self._cmd(ActionKind.RESTART_SERVICE, service, debian) == "systemctl restart network"
        assert self._cmd(ActionKind.RESTART_SERVICE, service, rhel6) == "service network restart"
        assert rhel6.service_manager == ServiceManager.INIT

    def test_file_actions_have_no_command(self, debian):
        assert self._cmd(ActionKind.WRITE_HOST_TABLE, (), debian) is None


class TestReplaceOrAppendLine:

    def test_replaces_matching_lines(self):
        content = "NETWORKING=yes\nHOSTNAME=old\n"
        assert replace_or_append_line(content, "HOSTNAME=new", r"^\s*HOSTNAME=") == "NETWORKING=yes\nHOSTNAME=new\n"

    def test_appends_when_missing(self):
        assert replace_or_append_line("NETWORKING=yes\n", "HOSTNAME=new", r"^\s*HOSTNAME=") == \
               "NETWORKING=yes\nHOSTNAME=new\n"

    def test_empty_file(self):
        assert replace_or_append_line("", "HOSTNAME=new", r"^HOSTNAME=") == "HOSTNAME=new\n"

    def test_plain_line_not_duplicated(self):
        assert replace_or_append_line("a\nb\n", "b") == "a\nb\n"


# ── Tasks ────────────────────────────────────────────────────────────


class TestConvergeHostname:

    def test_fresh_debian_machine(self, debian, observed, fake_io):
        result = converge_hostname(_task(observed(debian)))

        assert isinstance(result.result, StandardResult)
        assert result.result.status == TaskStatus.CHANGED
        assert result.changed is True
        assert fake_io["files"]["/etc/hostname"] == "web01.example.com\n"
        assert "127.0.1.1\tweb01.example.com web01" in fake_io["files"]["/etc/hosts"].splitlines()

        commands = [cmd for cmd, _ in fake_io["commands"]]
        assert "systemctl start hostname.sh" in commands
        assert "hostname web01.example.com" in commands
        assert ("rs_tag --add node:hostname=web01.example.com", False) in fake_io["commands"]
        assert "/etc/sysconfig/network" not in fake_io["files"]

        outcomes = result.result.data
        assert outcomes["update_network_config"].status == TaskStatus.OK
        assert outcomes["report_host_info"].status == TaskStatus.OK

    def test_kernel_hostname_is_set_once(self, debian, observed, fake_io):
        result = converge_hostname(_task(observed(debian)))

        commands = [cmd for cmd, _ in fake_io["commands"]]
        assert commands.count("hostname web01.example.com") == 1
        outcomes = result.result.data
        assert outcomes["set_kernel_hostname"].status == TaskStatus.CHANGED
        assert outcomes["ensure_hostname_synced"].status == TaskStatus.OK

    def test_failed_hostname_file_blocks_dependents(self, debian, observed, fake_io):
        fake_io["fail_files"].add("/etc/hostname")
        result = converge_hostname(_task(observed(debian)))

        assert result.failed is True
        assert result.result.status == TaskStatus.FAILED
        outcomes = result.result.data
        assert outcomes["set_kernel_hostname"].status == TaskStatus.SKIPPED
        assert outcomes["restart_service_hostname.sh"].message == "blocked by failed write_hostname_file"

    def test_kernel_hostname_converges_without_hostname_file(self, debian, observed, fake_io):
        fake_io["fail_files"].add("/etc/hostname")
        result = converge_hostname(_task(observed(debian)))

        assert result.result.data["ensure_hostname_synced"].status == TaskStatus.CHANGED
        assert ("hostname web01.example.com", True) in fake_io["commands"]
        assert fake_io["kernel_fqdn"] == "web01.example.com"

    def test_host_table_is_merged_into_current_file(self, debian, observed, fake_io):
        fake_io["existing"]["/etc/hosts"] = "127.0.0.1\tlocalhost\n10.1.1.1\tbackup.lan\n"
        converge_hostname(_task(observed(debian, hosts_content=None)))

        lines = fake_io["files"]["/etc/hosts"].splitlines()
        assert "127.0.0.1\tlocalhost" in lines
        assert "10.1.1.1\tbackup.lan" in lines
        assert "127.0.1.1\tweb01.example.com web01" in lines

    def test_unreadable_host_table_is_not_overwritten(self, debian, observed, fake_io):
        fake_io["unreadable"].add("/etc/hosts")
        result = converge_hostname(_task(observed(debian, hosts_content=None)))

        assert result.failed is True
        assert result.result.data["write_host_table"].status == TaskStatus.FAILED
        assert "/etc/hosts" not in fake_io["files"]

    def test_legacy_rhel_writes_network_config(self, rhel6, observed, fake_io):
        converge_hostname(_task(observed(rhel6, network_config_hostname="old")))
        assert fake_io["files"]["/etc/sysconfig/network"] == "HOSTNAME=web01.example.com"
        assert "service network restart" in [cmd for cmd, _ in fake_io["commands"]]

    def test_planning_error_is_reported_as_failed(self, debian, observed, fake_io):
        task = _task(observed(debian), static_hosts={"::1": "clash"})
        result = converge_hostname(task)
        assert result.failed is True
        assert result.result.message.startswith("ConflictingHostEntry")
        assert fake_io["commands"] == []

    def test_missing_facts(self, fake_io):
        task = FakeTask(FakeHost("web01", {"app_config": AppSettings()}))
        result = converge_hostname(task)
        assert result.failed is True
        assert "gather_host_facts" in result.result.message


class TestPlanHostname:

    def test_stores_plan_without_touching_the_host(self, debian, observed, fake_io):
        task = _task(observed(debian), domain_name="corp.example.org")
        result = plan_hostname(task)

        assert result.result.status == TaskStatus.OK
        assert task.host["hostname_plan"].identity.fqdn == "web01.corp.example.org"
        assert fake_io["commands"] == []
        assert fake_io["files"] == {}

    def test_global_settings_apply(self, debian, observed, fake_io):
        task = _task(observed(debian), app_config=AppSettings(system=SystemSettings(short_hostname="frontend")))
        plan_hostname(task)
        assert task.host["hostname_plan"].identity.fqdn == "frontend.example.com"
