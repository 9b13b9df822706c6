from .command import command_exists, command_output, is_local, run_checked, run_command
from .files import ensure_line_in_file, read_file_or_none, remote_file_exists, write_file

__all__ = [
    "run_command",
    "run_checked",
    "command_output",
    "command_exists",
    "is_local",
    "read_file_or_none",
    "write_file",
    "ensure_line_in_file",
    "remote_file_exists",
]
