from pathlib import Path
from typing import Optional

import typer
from rich import print as rprint
from rich.panel import Panel
from rich.table import Table

from convergence.identity import DEFAULT_FALLBACK_DOMAIN, HostnameSpec, resolve
from core.errors import HostsyncError
from core.state import config as global_config

app = typer.Typer(
    help="Hostsync - Hostname, FQDN & /etc/hosts convergence",
    add_completion=True,
    no_args_is_help=True
)


@app.callback()
def main(
        ctx: typer.Context,
        quiet: bool = typer.Option(
            False, "--quiet", "-q",
            help="Disable detailed sub-step logging (Silent Mode)."
        ),
        config_file: Path = typer.Option(
            "hostsync_config.yaml", "--config", "-c",
            help="Path to the settings YAML file.",
            dir_okay=False
        ),
        nornir_config: Path = typer.Option(
            "config.yaml", "--nornir-config", "-n",
            help="Path to the Nornir config file (inventory definition).",
            dir_okay=False
        )
):
    """
    Hostsync CLI.
    Common entry point for all commands.
    """
    global_config.VERBOSE = not quiet
    global_config.CONFIG_FILE = str(config_file)
    global_config.NORNIR_CONFIG = str(nornir_config)

    if ctx.invoked_subcommand and ctx.invoked_subcommand != "resolve":
        subtitle = "Nornir Engine (Quiet Mode)" if quiet else "Nornir Engine (Verbose Mode)"
        rprint(Panel.fit(
            "[bold white]Hostsync CLI[/bold white]",
            border_style="blue",
            subtitle=subtitle
        ))


def _engine():
    # Imported lazily: 'resolve' must work without an inventory
    from core.engine import ConvergenceEngine
    return ConvergenceEngine(config_file=global_config.NORNIR_CONFIG, settings_file=global_config.CONFIG_FILE)


def _print_plans(engine, target: Optional[str]):
    for name, host in engine.nr.inventory.hosts.items():
        if target and name != target:
            continue
        plan = host.data.get("hostname_plan")
        if plan is None:
            continue

        table = Table(title=f"{name} → {plan.identity.fqdn}", show_lines=False)
        table.add_column("Action")
        table.add_column("Decision")
        table.add_column("Depends on", style="dim")
        table.add_column("Reason", style="dim")
        for action in plan.actions:
            decision = "[yellow]apply[/yellow]" if action.apply else "[green]skip[/green]"
            if action.trigger_only:
                decision += " [dim](on trigger)[/dim]"
            table.add_row(action.name, decision, ", ".join(sorted(action.depends_on)), action.reason)
        rprint(table)


@app.command("resolve")
def resolve_name(
        hostname: str = typer.Argument(..., help="Hostname or FQDN as given."),
        short_name: Optional[str] = typer.Option(None, "--short-name", "-s", help="Explicit short hostname."),
        domain: Optional[str] = typer.Option(None, "--domain", "-d", help="Explicit domain name."),
        fallback_domain: str = typer.Option(
            DEFAULT_FALLBACK_DOMAIN, "--fallback-domain", "-f",
            help="Domain used when none can be derived."
        ),
):
    """
    [Local] Shows the short name, domain and FQDN hostsync would enforce.
    """
    try:
        identity = resolve(HostnameSpec(hostname, short_name, domain, fallback_domain))
    except HostsyncError as e:
        rprint(f"[bold red]❌ {type(e).__name__}:[/bold red] {e}")
        raise typer.Exit(code=2)

    rprint(f"[bold]Short name:[/bold] {identity.short_name}")
    rprint(f"[bold]Domain:[/bold]     {identity.domain}")
    rprint(f"[bold]FQDN:[/bold]       {identity.fqdn}")


@app.command()
def plan(
        target: str = typer.Option(
            None, "--target", "-t",
            help="Limit to a single inventory host."
        )
):
    """
    [Dry Run] Shows which hostname actions would run on each host.
    """
    engine = _engine()
    summary = engine.run("PLAN", target_filter=target)
    _print_plans(engine, target)
    if summary.halted:
        raise typer.Exit(code=1)


@app.command()
def converge(
        target: str = typer.Option(
            None, "--target", "-t",
            help="Limit to a single inventory host."
        )
):
    """
    [Idempotent] Enforces hostname, FQDN and /etc/hosts on each host.
    """
    summary = _engine().run("CONVERGE", target_filter=target)
    if summary.halted:
        rprint(f"\n[bold red]❌ Failed hosts: {', '.join(summary.failed_hosts)}[/bold red]")
        raise typer.Exit(code=1)
    if summary.changed:
        rprint(f"\n[bold yellow]✨ Hosts converged (changed: {', '.join(summary.changed_hosts)}).[/bold yellow]")
    else:
        rprint("\n[bold green]✅ Everything already converged.[/bold green]")


if __name__ == "__main__":
    app()
