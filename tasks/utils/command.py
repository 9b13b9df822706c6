import shlex
import subprocess
from typing import Optional

from nornir.core.task import Task, Result
from nornir_scrapli.tasks import send_command

LOCAL_PLATFORM = "linux_local"
LOCAL_TIMEOUT = 120

# Operators that need /bin/sh when running locally
SHELL_OPERATORS = ("|", "&&", "||", ">", ";")

SUDO_PASSWORD_PROMPT = "sudo: a password is required"

# Appended to checked commands; scrapli drops the exit status
EXIT_MARKER = "__HOSTSYNC_RC__"


def is_local(task: Task) -> bool:
    return task.host.platform == LOCAL_PLATFORM


def with_sudo(cmd: str) -> str:
    """Non-interactive sudo: fails fast instead of hanging on a password prompt."""
    return f"sudo -n {cmd}"


def _sudo_missing(task: Task) -> Result:
    return Result(
        host=task.host,
        failed=True,
        result=(
            f"Sudo privileges missing. Please configure 'NOPASSWD' for user "
            f"'{task.host.username}' in /etc/sudoers on host '{task.host.hostname}'."
        )
    )


def run_command(task: Task, cmd: str, sudo: bool = False) -> Result:
    """
    Runs a command on the host, locally for 'linux_local' hosts, over SSH otherwise.
    Always returns a single nornir Result.
    """
    if sudo:
        cmd = with_sudo(cmd)

    if is_local(task):
        result = run_local_subprocess(task, cmd)
    else:
        result = task.run(task=send_command, command=cmd)[0]

    if result.failed and SUDO_PASSWORD_PROMPT in str(result.result):
        return _sudo_missing(task)
    return result


def run_checked(task: Task, cmd: str, sudo: bool = False) -> Result:
    """
    Like run_command, but `failed` reflects the command's exit status on SSH hosts too.
    The status line is removed from the returned output.
    """
    res = run_command(task, f"{with_sudo(cmd) if sudo else cmd}; echo {EXIT_MARKER}$?")
    output, marker, status = str(res.result).rpartition(EXIT_MARKER)
    if not marker:
        return Result(host=task.host, failed=True, result=str(res.result))

    failed = status.strip() != "0"
    if failed and SUDO_PASSWORD_PROMPT in output:
        return _sudo_missing(task)
    return Result(host=task.host, result=output, failed=failed)


def command_output(task: Task, cmd: str, sudo: bool = False) -> Optional[str]:
    """Stripped output of a command, None when it failed."""
    res = run_checked(task, cmd, sudo=sudo)
    if res.failed:
        return None
    return str(res.result).strip()


def run_local_subprocess(task: Task, command: str) -> Result:
    """Runs a command on the control machine itself."""
    use_shell = any(op in command for op in SHELL_OPERATORS)

    try:
        proc = subprocess.run(
            command if use_shell else shlex.split(command),
            shell=use_shell,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            universal_newlines=True,
            timeout=LOCAL_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return Result(host=task.host, failed=True, result=f"'{command}' timed out after {LOCAL_TIMEOUT}s")
    except (OSError, ValueError) as e:
        return Result(host=task.host, failed=True, result=f"Local execution exception: {e}")

    output = proc.stdout
    if proc.returncode != 0:
        output += f"\nError: {proc.stderr}"

    return Result(
        host=task.host,
        result=output,
        failed=proc.returncode != 0,
        stdout=proc.stdout,
        stderr=proc.stderr,
    )


def command_exists(task: Task, command: str) -> bool:
    """Checks if a command exists in PATH (exit status of `command -v`, read back via the marker)."""
    return not run_checked(task, f"command -v {shlex.quote(command)} >/dev/null").failed
