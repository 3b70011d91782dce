"""Task kind protocol and registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol, runtime_checkable

from opflow.core.errors import TaskBuildError
from opflow.domain.models import TaskMetadata
from opflow.providers.base import PodFileReader
from opflow.resources.applier import ResourceApplier
from opflow.resources.enhancer import ConventionEnhancer
from opflow.specs.models import Task
from opflow.specs.template import SubstitutionEngine, TemplateEngine


@dataclass
class TaskContext:
    """Everything a task kind needs to run for one tick."""

    applier: ResourceApplier
    enhancer: ConventionEnhancer
    meta: TaskMetadata
    templates: Dict[str, str] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    engine: TemplateEngine = field(default_factory=SubstitutionEngine)
    pipes: Dict[str, str] = field(default_factory=dict)
    files: PodFileReader | None = None


@runtime_checkable
class TaskKind(Protocol):
    """A unit of work driving resources towards a desired state.

    ``run`` is called again on every tick until it reports done, so it must
    be idempotent. It returns whether the task is done and raises an
    ExecutionError subclass to signal failure.
    """

    def run(self, ctx: TaskContext) -> bool:
        ...


TaskBuilder = Callable[[Task], TaskKind]


class TaskKindRegistry:
    """In-memory registry mapping task kind names to builders."""

    def __init__(self) -> None:
        self._builders: Dict[str, TaskBuilder] = {}

    def register(self, kind: str, builder: TaskBuilder) -> None:
        """Register a builder for a task kind, replacing any previous one."""
        if not kind:
            raise ValueError("Task kind name is required")
        self._builders[kind] = builder

    def build(self, task: Task) -> TaskKind:
        """Build the runnable kind for a task.

        Raises:
            TaskBuildError: If the kind is unknown or the task spec is invalid for it
        """
        builder = self._builders.get(task.kind)
        if builder is None:
            raise TaskBuildError(f"unknown task kind {task.kind}", {"task": task.name, "kind": task.kind})
        return builder(task)

    def list(self) -> List[str]:
        """List all registered kind names."""
        return list(self._builders.keys())


def default_registry() -> TaskKindRegistry:
    """Registry with the built-in Apply, Delete, Dummy, Pipe and Toggle kinds."""
    from opflow.orchestration.handlers import register_builtin_kinds

    registry = TaskKindRegistry()
    register_builtin_kinds(registry)
    return registry
