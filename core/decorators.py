import time
from functools import wraps

from nornir.core.task import Task, Result

from core.errors import HostsyncError
from core.models import TaskStatus, StandardResult, SubTaskResult
from core.state import config as global_config
from utils.logger import logger, sys_logger


def _failed(task: Task, message: str) -> Result:
    return Result(host=task.host, failed=True, result=StandardResult(TaskStatus.FAILED, message))


def automated_step(step_name: str):
    """
    Decorator for the nornir tasks listed in the registry.
    1. Logs start, end and duration to file.
    2. Turns hostsync errors (bad input, conflicting entries, cycles) into a FAILED result
       without a stacktrace, and anything else into a FAILED "System Error".
    3. Guarantees the engine always receives a StandardResult.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(task: Task, *args, **kwargs) -> Result:
            host_name = task.host.name
            started = time.monotonic()
            sys_logger.info(f"START task='{step_name}' host='{host_name}'")

            try:
                result = func(task, *args, **kwargs)
            except HostsyncError as e:
                sys_logger.error(f"PLANNING ERROR in '{step_name}' host='{host_name}': {e}")
                return _failed(task, f"{type(e).__name__}: {e}")
            except Exception as e:
                sys_logger.error(f"CRITICAL EXCEPTION in '{step_name}' host='{host_name}': {e}", exc_info=True)
                return _failed(task, f"System Error: {e}")

            if not isinstance(result.result, StandardResult):
                status = TaskStatus.FAILED if result.failed else TaskStatus.OK
                result.result = StandardResult(status, str(result.result))

            sys_logger.info(
                f"END task='{step_name}' host='{host_name}' status='{result.result.status.value}' "
                f"elapsed={time.monotonic() - started:.2f}s"
            )
            return result

        return wrapper

    return decorator


def _render_substep(step_name: str, result: SubTaskResult):
    if not global_config.VERBOSE:
        return
    if not result.success:
        logger.console.print(f"    [red]✖ {step_name}[/red]: [dim]{result.message}[/dim]")
    elif result.changed:
        logger.console.print(f"    [yellow]✨[/yellow] [dim]{step_name}[/dim]")
    else:
        logger.console.print(f"    [green]✔[/green] [dim]{step_name}[/dim]")


def automated_substep(step_name: str):
    """
    Decorator for the sub-steps of a task (fact queries, plan computation).
    Shows a spinner in verbose mode; a crash becomes an unsuccessful SubTaskResult
    carrying the exception so the caller can decide to re-raise it.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(task: Task, *args, **kwargs) -> SubTaskResult:
            host_name = task.host.name
            sys_logger.info(f"[{host_name}] [SUB-START] '{step_name}'")

            try:
                if global_config.VERBOSE:
                    with logger.console.status(f"    [dim]🔹 {step_name}...[/dim]", spinner="dots"):
                        result = func(task, *args, **kwargs)
                else:
                    result = func(task, *args, **kwargs)
            except Exception as e:
                sys_logger.error(f"[{host_name}] [SUB-CRASH] '{step_name}': {e}", exc_info=True)
                if global_config.VERBOSE:
                    logger.console.print(f"    [bold red]💥 CRASH {step_name}[/bold red]: {e}")
                return SubTaskResult(success=False, message=f"Exception in '{step_name}': {e}", exception=e)

            outcome = "FAIL"
            if result.success:
                outcome = "CHANGED" if result.changed else "OK"
            log = sys_logger.info if result.success else sys_logger.warning
            log(f"[{host_name}] [SUB-END] '{step_name}' -> {outcome} ({result.message})")

            _render_substep(step_name, result)
            return result

        return wrapper

    return decorator
