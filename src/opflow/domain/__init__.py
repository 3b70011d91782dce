"""Execution metadata and the plan status tree."""

from opflow.domain.models import Metadata, OwnerReference, TaskMetadata
from opflow.domain.status import (
    ExecutionStatus,
    PhaseStatus,
    PlanStatus,
    StepStatus,
    is_finished,
    is_in_progress,
    is_terminal,
    start_plan,
)

__all__ = [
    "ExecutionStatus",
    "Metadata",
    "OwnerReference",
    "PhaseStatus",
    "PlanStatus",
    "StepStatus",
    "TaskMetadata",
    "is_finished",
    "is_in_progress",
    "is_terminal",
    "start_plan",
]
