"""Tests for tasks.utils.command on SSH hosts, where scrapli never reports an exit status."""

import pytest
from nornir.core.task import Result

from tasks.utils import command
from tasks.utils.command import EXIT_MARKER, command_exists, command_output, run_checked


class FakeSshHost:
    name = "web01"
    platform = "linux"
    username = "deploy"
    hostname = "10.0.0.5"


class FakeSshTask:
    """
    Plays a remote shell behind send_command: known commands print their output,
    unknown ones print bash's error, and the Result is never marked failed.
    """

    def __init__(self, outputs=None, statuses=None):
        self.host = FakeSshHost()
        self.outputs = outputs or {}
        self.statuses = statuses or {}
        self.sent = []

    def run(self, task, command):
        self.sent.append(command)
        cmd, _, echo = command.partition("; echo ")
        if cmd in self.outputs:
            output, status = self.outputs[cmd], self.statuses.get(cmd, 0)
        else:
            output, status = f"bash: {cmd.split()[0]}: command not found\n", 127
        if echo:
            output += echo.replace("$?", str(status))
        return [Result(host=self.host, result=output)]


@pytest.fixture
def shell():
    return FakeSshTask(
        outputs={
            "command -v hostnamectl >/dev/null": "",
            "command -v rs_tag >/dev/null": "",
            "hostname -f": "web01.example.com\n",
            "cat /etc/hostname": "web01.example.com",
        },
        statuses={"command -v rs_tag >/dev/null": 1},
    )


class TestRunChecked:

    def test_status_comes_from_the_marker(self, shell):
        res = run_checked(shell, "command -v rs_tag >/dev/null")
        assert res.failed is True
        assert shell.sent == [f"command -v rs_tag >/dev/null; echo {EXIT_MARKER}$?"]

    def test_marker_is_stripped_from_output(self, shell):
        res = run_checked(shell, "hostname -f")
        assert res.failed is False
        assert res.result == "web01.example.com\n"

    def test_output_without_trailing_newline(self, shell):
        res = run_checked(shell, "cat /etc/hostname")
        assert res.result == "web01.example.com"
        assert EXIT_MARKER not in res.result

    def test_missing_marker_is_a_failure(self):
        task = FakeSshTask()
        task.run = lambda task, command: [Result(host=None, result="connection reset")]
        assert run_checked(task, "hostname -f").failed is True

    def test_sudo_prompt_is_reported(self, monkeypatch, shell):
        monkeypatch.setattr(
            command, "run_command",
            lambda task, cmd, sudo=False: Result(
                host=task.host, result=f"sudo: a password is required\n{EXIT_MARKER}1"
            ),
        )
        res = run_checked(shell, "cat /etc/hosts", sudo=True)
        assert res.failed is True
        assert "NOPASSWD" in res.result


class TestCommandHelpers:

    def test_missing_tool_is_not_reported_present(self, shell):
        assert command_exists(shell, "rs_tag") is False

    def test_present_tool(self, shell):
        assert command_exists(shell, "hostnamectl") is True

    def test_unknown_command_output_is_none(self, shell):
        assert command_output(shell, "scutil --get HostName") is None

    def test_command_output_is_stripped(self, shell):
        assert command_output(shell, "hostname -f") == "web01.example.com"
