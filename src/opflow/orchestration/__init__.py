"""Plan execution: the tick, task dispatch and the built-in task kinds."""

from opflow.orchestration.dispatch import TaskEngine
from opflow.orchestration.engine import ActivePlan, PlanExecutor
from opflow.orchestration.handlers import ApplyTask, DeleteTask, DummyTask, ToggleTask
from opflow.orchestration.registry import TaskContext, TaskKind, TaskKindRegistry, default_registry
from opflow.orchestration.results import ExecutionResult, TaskOutcome

__all__ = [
    "ActivePlan",
    "ApplyTask",
    "DeleteTask",
    "DummyTask",
    "ExecutionResult",
    "PlanExecutor",
    "TaskContext",
    "TaskEngine",
    "TaskKind",
    "TaskKindRegistry",
    "TaskOutcome",
    "ToggleTask",
    "default_registry",
]
