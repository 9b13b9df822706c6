from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class TaskStatus(str, Enum):
    OK = "OK"  # Nothing to do, or done without changing the host
    CHANGED = "CHANGED"  # The host was modified
    WARNING = "WARNING"  # Done, with non-critical issues
    FAILED = "FAILED"  # Not done; dependents are blocked and the engine halts
    SKIPPED = "SKIPPED"  # Not run: not triggered, blocked or not applicable

    @property
    def is_failure(self) -> bool:
        return self == TaskStatus.FAILED


@dataclass
class StandardResult:
    """
    Payload stored in nornir's Result.result by every top-level task.
    """
    status: TaskStatus
    message: str
    data: Optional[Any] = None  # Plan, observed state or action outcomes

    @property
    def changed(self) -> bool:
        return self.status == TaskStatus.CHANGED

    @property
    def failed(self) -> bool:
        return self.status.is_failure


@dataclass
class SubTaskResult:
    """Result of an internal sub-step; `data` carries the observed value to the caller."""
    success: bool
    message: str
    exception: Optional[Exception] = None
    data: Optional[Any] = None
    changed: bool = False


@dataclass
class ActionOutcome:
    """What happened to one convergence action during dispatch."""
    status: TaskStatus
    message: str
