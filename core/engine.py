import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from nornir import InitNornir
from nornir.core.task import AggregatedResult
from rich.panel import Panel

from core.errors import HostsyncError
from core.models import TaskStatus, StandardResult
from core.registry import TASK_REGISTRY, GROUP_EXECUTION_ORDER
from core.settings import load_settings
from utils.logger import logger, sys_logger

console = logger.console

# Icon and colour per status
STATUS_STYLES: Dict[TaskStatus, tuple] = {
    TaskStatus.OK: ("✅", "bold green"),
    TaskStatus.CHANGED: ("✨", "bold yellow"),
    TaskStatus.WARNING: ("⚠️", "bold orange3"),
    TaskStatus.SKIPPED: ("🔵", "bold cyan"),
    TaskStatus.FAILED: ("❌", "bold red"),
}


@dataclass
class RunSummary:
    goal: str
    changed_hosts: List[str] = field(default_factory=list)
    failed_hosts: List[str] = field(default_factory=list)
    halted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.changed_hosts)


class ConvergenceEngine:
    """
    Runs a goal's task chain group by group over the nornir inventory.
    A FAILED host halts the run after the current task.
    """

    def __init__(self, config_file: str = "config.yaml", settings_file: Optional[str] = None):
        self.config_file = config_file
        self.settings_file = settings_file
        self.nr = None
        self._initialize()

    def _initialize(self):
        """Initializes Nornir and injects the settings into the inventory defaults."""
        try:
            app_settings = load_settings(self.settings_file) if self.settings_file else load_settings()
        except (HostsyncError, OSError) as e:
            console.print(f"[bold red]❌ Config Error:[/bold red] {e}")
            sys.exit(1)

        try:
            self.nr = InitNornir(config_file=self.config_file)
        except Exception as e:
            # Nornir raises plain exceptions for missing/invalid inventory files
            console.print(f"[bold red]❌ Init Error:[/bold red] {e}")
            sys_logger.error(f"Nornir initialization failed: {e}", exc_info=True)
            sys.exit(1)

        # Reachable from every task as task.host.get("app_config")
        self.nr.inventory.defaults.data["app_config"] = app_settings

    def run(self, goal: str, target_filter: Optional[str] = None) -> RunSummary:
        summary = RunSummary(goal=goal)
        if goal not in TASK_REGISTRY:
            console.print(f"[bold red]⛔ Goal '{goal}' not defined in Registry.[/bold red]")
            summary.halted = True
            return summary

        console.print(Panel.fit(f"[bold blue]🚀 Starting Goal: {goal}[/bold blue]", border_style="blue"))
        sys_logger.info(f"GOAL '{goal}' target='{target_filter or '*'}'")

        for group_name in GROUP_EXECUTION_ORDER:
            tasks = TASK_REGISTRY[goal].get(group_name, [])
            group_hosts = self.nr.filter(filter_func=lambda h: group_name in h.groups)
            if target_filter:
                group_hosts = group_hosts.filter(name=target_filter)
            if not tasks or len(group_hosts.inventory.hosts) == 0:
                continue

            console.print(
                f"\n[bold cyan]Targeting Group:[/bold cyan] {group_name} ({len(group_hosts.inventory.hosts)} hosts)")

            for task_func in tasks:
                task_name = task_func.__name__
                console.print(f"  🔸 Running: [bold]{task_name}[/bold]...", end="")

                self._collect(group_hosts.run(task=task_func, name=task_name), summary)

                if summary.failed_hosts:
                    console.print(
                        f"\n[bold red]⛔ Execution halted due to critical failure in group {group_name}.[/bold red]")
                    summary.halted = True
                    return summary

        return summary

    def _collect(self, agg_result: AggregatedResult, summary: RunSummary):
        """Prints one line per host and records changed/failed hosts."""
        for host, multi_res in agg_result.items():
            task_result = multi_res[0]
            payload = task_result.result

            if isinstance(payload, StandardResult):
                status, msg = payload.status, payload.message
            else:
                status = TaskStatus.FAILED if task_result.failed else TaskStatus.OK
                msg = str(payload)

            icon, style = STATUS_STYLES[status]
            console.print(f"\r  {icon} [{style}]{task_result.name}[/{style}] [dim]({host})[/dim]: {msg}")

            if status == TaskStatus.CHANGED and host not in summary.changed_hosts:
                summary.changed_hosts.append(host)
            elif status.is_failure:
                summary.failed_hosts.append(host)
