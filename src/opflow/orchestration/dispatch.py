"""Dispatch of task specifications to their task kinds."""

from __future__ import annotations

import structlog

from opflow.core.errors import (
    TASK_EXECUTION_ERROR,
    UNKNOWN_TASK_KIND,
    ExecutionError,
    FatalExecutionError,
    TaskBuildError,
    TransientExecutionError,
)
from opflow.orchestration.registry import TaskContext, TaskKindRegistry, default_registry
from opflow.orchestration.results import TaskOutcome
from opflow.specs.models import Task

logger = structlog.get_logger()


class TaskEngine:
    """Builds a task's kind and runs it, classifying every failure."""

    def __init__(self, registry: TaskKindRegistry | None = None) -> None:
        self._registry = registry or default_registry()

    @property
    def registry(self) -> TaskKindRegistry:
        return self._registry

    def run(self, task: Task, ctx: TaskContext) -> TaskOutcome:
        """Run one task for one tick.

        Never raises: build failures come back as fatal errors, unclassified
        exceptions from a kind as transient ones.
        """
        meta = ctx.meta
        try:
            kind = self._registry.build(task)
        except TaskBuildError as e:
            message = (
                f"{meta.instance_namespace}/{meta.instance_name} failed to build task "
                f"{meta.plan_name}.{meta.phase_name}.{meta.step_name}.{meta.task_name}: {e.message}"
            )
            return TaskOutcome(
                done=False,
                error=FatalExecutionError(message, event_name=UNKNOWN_TASK_KIND, cause=e),
            )

        try:
            done = kind.run(ctx)
        except ExecutionError as e:
            return TaskOutcome(done=False, error=e)
        except Exception as e:
            logger.warning(
                "task_unclassified_error",
                task=task.name,
                kind=task.kind,
                error=str(e),
                error_type=type(e).__name__,
            )
            return TaskOutcome(
                done=False,
                error=TransientExecutionError(str(e), event_name=TASK_EXECUTION_ERROR, cause=e),
            )
        return TaskOutcome(done=bool(done))
