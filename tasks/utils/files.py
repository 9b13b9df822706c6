import datetime
import os
import re
import shlex
import subprocess
import tempfile
import uuid
from typing import Optional

from nornir.core.task import Task, Result

from .command import is_local, run_checked

BACKUP_DIR = "$HOME/.hostsync_backups"


def remote_file_exists(task: Task, path: str) -> bool:
    return not run_checked(task, f"test -f {shlex.quote(path)}").failed


def read_file_or_none(task: Task, path: str) -> Optional[str]:
    """
    Reads a remote or local file.
    Returns "" when the file does not exist and None when it could not be read.
    """
    if not remote_file_exists(task, path):
        return ""

    res = run_checked(task, f"cat {shlex.quote(path)}", sudo=True)
    if res.failed:
        return None
    return res.result


# --- WRITE STEPS ---

def _stage(task: Task, content: str) -> Result:
    """Copies the content to a temp path on the host (cp locally, scp over SSH)."""
    staged = f"/tmp/hostsync_{uuid.uuid4().hex}"

    with tempfile.NamedTemporaryFile(mode="w", delete=False) as f_local:
        f_local.write(content)
        local_path = f_local.name

    if is_local(task):
        cmd = ["cp", local_path, staged]
    else:
        cmd = [
            "scp", "-P", str(task.host.port or 22),
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            local_path,
            f"{task.host.username}@{task.host.hostname}:{staged}",
        ]

    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, universal_newlines=True)
    except OSError as e:
        return Result(host=task.host, failed=True, result=f"Transfer failed: {e}")
    finally:
        os.remove(local_path)

    if proc.returncode != 0:
        return Result(host=task.host, failed=True, result=f"Transfer failed: {proc.stderr}")
    return Result(host=task.host, result=staged)


def _backup(task: Task, path: str) -> Result:
    """Keeps a timestamped copy of the current file, e.g. ~/.hostsync_backups/_etc_hosts.<ts>.bak"""
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = f"{BACKUP_DIR}/{path.replace('/', '_')}.{timestamp}.bak"
    script = f"mkdir -p {BACKUP_DIR} && cp {shlex.quote(path)} {backup_path}"
    return run_checked(task, f"sh -c {shlex.quote(script)}", sudo=True)


def write_file(task: Task, path: str, content: str, owner: str = "root:root", permissions: str = "644") -> Result:
    """
    Installs `content` at `path` unless it is already there.
    The previous version is backed up first; a failed backup aborts the write.
    """
    if read_file_or_none(task, path) == content:
        return Result(host=task.host, changed=False, result="File is up to date")

    staged = _stage(task, content)
    if staged.failed:
        return staged
    tmp_path = staged.result

    if remote_file_exists(task, path):
        res = _backup(task, path)
        if res.failed:
            run_checked(task, f"rm -f {tmp_path}")
            return Result(host=task.host, failed=True, result=f"Backup failed: {res.result}")

    res = run_checked(task, f"mv {tmp_path} {shlex.quote(path)}", sudo=True)
    if res.failed:
        run_checked(task, f"rm -f {tmp_path}")
        return Result(host=task.host, failed=True, result=f"Move failed: {res.result}")

    res = run_checked(
        task, f"sh -c {shlex.quote(f'chown {owner} {path} && chmod {permissions} {path}')}", sudo=True
    )
    if res.failed:
        return Result(host=task.host, failed=True, result=f"Could not set owner/mode of {path}: {res.result}")

    return Result(host=task.host, changed=True, result="File updated (Backup saved)")


# --- LINE EDITING ---

def replace_or_append_line(content: str, line: str, match_regex: Optional[str] = None) -> str:
    """
    Pure part of ensure_line_in_file: replaces every line matching match_regex
    with `line`, or appends it when nothing matched.
    """
    lines = content.splitlines()

    if match_regex:
        regex = re.compile(match_regex)
        found = any(regex.search(l) for l in lines)
        new_lines = [line if regex.search(l) else l for l in lines]
        if not found:
            new_lines.append(line)
    else:
        new_lines = lines if line in lines else lines + [line]

    return "\n".join(new_lines) + "\n"


def ensure_line_in_file(task: Task, path: str, line: str, match_regex: str = None,
                        owner: str = "root:root", permissions: str = "644") -> Result:
    """
    Ensures that a line is present, replacing the lines matching match_regex.
    An unreadable file is left untouched.
    """
    content = read_file_or_none(task, path)
    if content is None:
        return Result(host=task.host, failed=True, result=f"Could not read {path}, refusing to overwrite it")
    return write_file(task, path, replace_or_append_line(content, line, match_regex),
                      owner=owner, permissions=permissions)
