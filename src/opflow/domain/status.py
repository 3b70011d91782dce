"""
Plan status tree.

The tree mirrors the plan: PlanStatus -> PhaseStatus -> StepStatus. Entries
are materialized lazily the first time a tick visits a phase or step and are
looked up by name, never by position, since a plan and a persisted status
may drift apart across operator upgrades.

State transitions:

    PENDING -> IN_PROGRESS -> COMPLETE
                   |  ^
                   v  |
                  ERROR
                   |
                   v
              FATAL_ERROR

COMPLETE and FATAL_ERROR are terminal.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionStatus(StrEnum):
    """Lifecycle state of a plan, phase or step."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    ERROR = "ERROR"
    FATAL_ERROR = "FATAL_ERROR"
    COMPLETE = "COMPLETE"


def is_finished(status: ExecutionStatus) -> bool:
    return status == ExecutionStatus.COMPLETE


def is_in_progress(status: ExecutionStatus) -> bool:
    """ERROR counts as in progress: it failed this attempt and will be retried."""
    return status in (ExecutionStatus.IN_PROGRESS, ExecutionStatus.PENDING, ExecutionStatus.ERROR)


def is_terminal(status: ExecutionStatus) -> bool:
    return status in (ExecutionStatus.COMPLETE, ExecutionStatus.FATAL_ERROR)


class _StatusEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    message: str = ""

    def set(self, status: ExecutionStatus, message: str = "") -> None:
        """Set the status; a status set without a message clears the old one."""
        self.status = status
        self.message = message


class StepStatus(_StatusEntry):
    pass


class PhaseStatus(_StatusEntry):
    steps: list[StepStatus] = Field(default_factory=list)

    def step(self, name: str) -> StepStatus | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def get_or_create_step(self, name: str) -> StepStatus:
        step = self.step(name)
        if step is None:
            step = StepStatus(name=name)
            self.steps.append(step)
        return step


class PlanStatus(_StatusEntry):
    uid: str = ""
    last_finished_run: datetime | None = Field(default=None, alias="lastFinishedRun")
    phases: list[PhaseStatus] = Field(default_factory=list)

    def phase(self, name: str) -> PhaseStatus | None:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None

    def get_or_create_phase(self, name: str) -> PhaseStatus:
        phase = self.phase(name)
        if phase is None:
            phase = PhaseStatus(name=name)
            self.phases.append(phase)
        return phase

    @property
    def terminal(self) -> bool:
        return is_terminal(self.status)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanStatus:
        return cls.model_validate(data)


def start_plan(name: str, uid: str | None = None) -> PlanStatus:
    """Fresh PENDING status for a newly activated plan.

    Any status left over from a previous activation of the same plan is
    superseded; phases and steps are recreated as the new run visits them.
    """
    return PlanStatus(name=name, uid=uid or str(uuid.uuid4()), status=ExecutionStatus.PENDING)
