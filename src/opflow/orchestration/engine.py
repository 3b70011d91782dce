"""
Plan executor.

One call to ``PlanExecutor.execute`` is one tick: a single bounded pass over
the plan that advances phases, steps and tasks as far as they can go right
now and returns the new status tree. Waiting is expressed by leaving entries
IN_PROGRESS; the caller decides when to tick again.

Status propagation:

    Plan (FATAL_ERROR)
    └── Phase (FATAL_ERROR)
        └── Step (FATAL_ERROR, carries the message)
            └── Task raised a fatal error

A transient task error only marks its step ERROR; the phase and plan stay
IN_PROGRESS and the tick returns no error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

import structlog

from opflow.config import Settings
from opflow.core.errors import (
    UNKNOWN_TASK_NAME,
    ExecutionError,
    FatalExecutionError,
    PackageLoadError,
)
from opflow.domain.models import Metadata, TaskMetadata
from opflow.domain.status import (
    ExecutionStatus,
    PhaseStatus,
    PlanStatus,
    StepStatus,
    is_finished,
    is_in_progress,
    start_plan,
)
from opflow.logging import bind_plan_context
from opflow.orchestration.dispatch import TaskEngine
from opflow.orchestration.handlers import pipe_artifacts
from opflow.orchestration.registry import TaskContext
from opflow.orchestration.results import ExecutionResult
from opflow.providers.base import PodFileReader, ResourceStore
from opflow.resources.applier import ResourceApplier
from opflow.resources.conventions import Conventions
from opflow.resources.enhancer import ConventionEnhancer, DefaultEnhancer
from opflow.specs.models import OperatorPackage, Phase, Plan, Step, Strategy, Task
from opflow.specs.parameters import resolve_parameters
from opflow.specs.template import SubstitutionEngine, TemplateEngine


@dataclass
class ActivePlan:
    """A plan together with its current status and everything its tasks read."""

    name: str
    status: PlanStatus
    spec: Plan
    tasks: Dict[str, Task] = field(default_factory=dict)
    templates: Dict[str, str] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_package(
        cls,
        package: OperatorPackage,
        plan_name: str,
        status: PlanStatus | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> ActivePlan:
        """Activate a plan of an operator package.

        Without a status a fresh PENDING one is started.

        Raises:
            PackageLoadError: If the package has no plan with that name
            ParameterError: If a required parameter has no value
        """
        plan = package.plans.get(plan_name)
        if plan is None:
            raise PackageLoadError(
                f"plan {plan_name} is not defined in operator {package.name}",
                {"plan": plan_name, "plans": sorted(package.plans)},
            )
        return cls(
            name=plan_name,
            status=status if status is not None else start_plan(plan_name),
            spec=plan,
            tasks=package.task_catalog(),
            templates=dict(package.templates),
            parameters=resolve_parameters(package.parameters, overrides),
        )


class _FatalAbort(Exception):
    """Unwinds the walk once a fatal error has been recorded on the tree."""

    def __init__(self, error: ExecutionError):
        super().__init__(error.message)
        self.error = error


class PlanExecutor:
    """Advances plans by one tick."""

    def __init__(
        self,
        applier: ResourceApplier,
        enhancer: ConventionEnhancer | None = None,
        engine: TaskEngine | None = None,
        template_engine: TemplateEngine | None = None,
        files: PodFileReader | None = None,
    ) -> None:
        self.applier = applier
        self.enhancer = enhancer or DefaultEnhancer(applier.conventions, applier.store)
        self.engine = engine or TaskEngine()
        self.template_engine = template_engine or SubstitutionEngine()
        if files is None and isinstance(applier.store, PodFileReader):
            files = applier.store
        self.files = files

    @classmethod
    def for_store(cls, store: ResourceStore, settings: Settings | None = None) -> PlanExecutor:
        """Executor wired with the default collaborators for a store."""
        conventions = Conventions.from_settings(settings) if settings else Conventions()
        return cls(ResourceApplier(store, conventions=conventions))

    def execute(
        self,
        plan: ActivePlan,
        metadata: Metadata,
        now: datetime | None = None,
    ) -> ExecutionResult:
        """Run one tick of ``plan``.

        The status held by ``plan`` is never modified; the new tree is
        returned. ``error`` is set only when the tick hit a fatal error.
        """
        log = bind_plan_context(metadata.instance_namespace, metadata.instance_name, plan.name)

        if plan.status.terminal:
            log.info("plan_terminal_noop", status=str(plan.status.status))
            return ExecutionResult(status=plan.status)

        status = plan.status.model_copy(deep=True)
        status.set(ExecutionStatus.IN_PROGRESS)

        try:
            self._walk_phases(plan, status, metadata, log)
        except _FatalAbort as abort:
            log.error(
                "plan_fatal_error",
                error=abort.error.message,
                event_name=abort.error.event_name,
            )
            return ExecutionResult(status=status, error=abort.error)

        if all(_is_complete(status.phase(ph.name)) for ph in plan.spec.phases):
            status.set(ExecutionStatus.COMPLETE)
            status.last_finished_run = now or datetime.now(timezone.utc)
            log.info("plan_complete", uid=status.uid)

        return ExecutionResult(status=status)

    def _walk_phases(self, plan: ActivePlan, status: PlanStatus, metadata: Metadata, log: Any) -> None:
        for phase in plan.spec.phases:
            phase_status = status.get_or_create_phase(phase.name)
            if is_finished(phase_status.status):
                continue
            if not is_in_progress(phase_status.status):
                break

            phase_status.set(ExecutionStatus.IN_PROGRESS)
            self._walk_steps(plan, status, phase, phase_status, metadata, log)

            if all(_is_complete(phase_status.step(st.name)) for st in phase.steps):
                phase_status.set(ExecutionStatus.COMPLETE)
            elif plan.spec.strategy == Strategy.serial:
                log.info("plan_phase_not_ready", phase=phase.name)
                break

    def _walk_steps(
        self,
        plan: ActivePlan,
        status: PlanStatus,
        phase: Phase,
        phase_status: PhaseStatus,
        metadata: Metadata,
        log: Any,
    ) -> None:
        for number, step in enumerate(phase.steps):
            step_status = phase_status.get_or_create_step(step.name)
            if is_finished(step_status.status):
                continue
            if not is_in_progress(step_status.status):
                break

            step_status.set(ExecutionStatus.IN_PROGRESS)
            try:
                self._run_tasks(plan, status, phase, step, number, step_status, metadata, log)
            except _FatalAbort as abort:
                step_status.set(ExecutionStatus.FATAL_ERROR, abort.error.message)
                phase_status.set(ExecutionStatus.FATAL_ERROR)
                status.set(ExecutionStatus.FATAL_ERROR)
                raise

            if step_status.status != ExecutionStatus.COMPLETE and phase.strategy == Strategy.serial:
                break

    def _run_tasks(
        self,
        plan: ActivePlan,
        status: PlanStatus,
        phase: Phase,
        step: Step,
        number: int,
        step_status: StepStatus,
        metadata: Metadata,
        log: Any,
    ) -> None:
        pending: list[str] = []
        pipes = pipe_artifacts(plan.name, plan.spec, plan.tasks, metadata.instance_name)
        for task_name in step.tasks:
            task = plan.tasks.get(task_name)
            if task is None:
                raise _FatalAbort(
                    FatalExecutionError(
                        f"{metadata.instance_namespace}/{metadata.instance_name} missing task "
                        f"{plan.name}.{phase.name}.{step.name}.{task_name}",
                        event_name=UNKNOWN_TASK_NAME,
                        details={"task": task_name},
                    )
                )

            ctx = TaskContext(
                applier=self.applier,
                enhancer=self.enhancer,
                meta=TaskMetadata.for_task(
                    metadata,
                    plan_name=plan.name,
                    plan_uid=status.uid,
                    phase_name=phase.name,
                    step_name=step.name,
                    step_number=number,
                    task_name=task_name,
                ),
                templates=plan.templates,
                parameters=plan.parameters,
                engine=self.template_engine,
                pipes=pipes,
                files=self.files,
            )
            outcome = self.engine.run(task, ctx)

            if outcome.fatal:
                raise _FatalAbort(outcome.error)
            if outcome.error is not None:
                message = (
                    f"A transient error when executing task "
                    f"{plan.name}.{phase.name}.{step.name}.{task_name}. "
                    f"Will retry. {outcome.error.message}"
                )
                step_status.set(ExecutionStatus.ERROR, message)
                log.warning("task_transient_error", message=message, event_name=outcome.error.event_name)

            if not outcome.done:
                pending.append(task_name)
                if step.strategy == Strategy.serial:
                    break

        if pending:
            log.info("step_tasks_not_ready", phase=phase.name, step=step.name, tasks=pending)
        else:
            step_status.set(ExecutionStatus.COMPLETE)


def _is_complete(entry: PhaseStatus | StepStatus | None) -> bool:
    return entry is not None and is_finished(entry.status)
