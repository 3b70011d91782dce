"""Result types for plan execution."""

from __future__ import annotations

from dataclasses import dataclass

from opflow.core.errors import ExecutionError
from opflow.domain.status import PlanStatus


@dataclass
class TaskOutcome:
    """Result of running one task for one tick."""

    done: bool
    error: ExecutionError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def fatal(self) -> bool:
        """Whether the failure must abort the plan."""
        return self.error is not None and self.error.fatal


@dataclass
class ExecutionResult:
    """Result of one plan execution tick.

    ``status`` is the new status tree. ``error`` is only set for fatal
    failures; transient ones are recorded on the step and retried.
    """

    status: PlanStatus
    error: ExecutionError | None = None

    @property
    def success(self) -> bool:
        return self.error is None
