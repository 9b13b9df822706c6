import logging
import os

from rich.console import Console
from rich.theme import Theme


def _build_sys_logger() -> logging.Logger:
    """
    File logger shared by the step decorators and the planner.
    The handler is opened lazily, so importing this module never creates the file.
    """
    log = logging.getLogger("hostsync")
    if not log.handlers:
        log_file = os.getenv("HOSTSYNC_LOG_FILE", "hostsync.log")
        handler = logging.FileHandler(log_file, delay=True, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        log.addHandler(handler)
        log.setLevel(os.getenv("HOSTSYNC_LOG_LEVEL", "INFO").upper())
        log.propagate = False
    return log


sys_logger = _build_sys_logger()


class HostsyncLogger:
    def __init__(self):
        # 1. Custom colour theme
        self.custom_theme = Theme({
            "success": "bold green",
            "error": "bold red",
            "skip": "bold cyan",
            "warning": "bold yellow",
            "info": "dim white"
        })
        self.console = Console(theme=self.custom_theme)

        # Current nesting depth (indentation)
        self.indent_level = 0

    def log_step(self, status: str, msg: str):
        """
        Prints one log line for the current step,
        using the current indentation and the matching icon.
        """
        icons = {
            "success": "✅",
            "error": "❌",
            "skip": "🔵",
            "warning": "🔶",
            "info": "ℹ️"
        }
        icon = icons.get(status, "•")
        indent = "   " * self.indent_level

        self.console.print(f"{indent}{icon} [{status}]{msg}[/{status}]")

    def task(self, name: str):
        """Context manager for a nested task."""
        return self._Context(self, name)

    class _Context:
        def __init__(self, logger, name):
            self.logger = logger
            self.name = name

        def __enter__(self):
            indent = "   " * self.logger.indent_level

            self.logger.console.print(f"{indent}🔸 [bold white]Task: {self.name}[/bold white]")

            self.logger.indent_level += 1
            return self

        def __exit__(self, exc_type, exc_value, traceback):
            self.logger.indent_level -= 1

            if exc_type:
                self.logger.log_step("error", f"Interrupted by error: {exc_value}")
                # Let the error propagate
                return False


logger = HostsyncLogger()
