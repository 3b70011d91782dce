from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class OwnerReference(BaseModel):
    """The object owning every resource created by an instance's plans."""

    model_config = ConfigDict(frozen=True)

    api_version: str
    kind: str
    name: str
    uid: str

    def to_manifest(self) -> dict[str, object]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


class Metadata(BaseModel):
    """Operator and instance a plan is executed for."""

    model_config = ConfigDict(frozen=True)

    instance_name: str
    instance_namespace: str
    operator_name: str
    operator_version: str = ""
    app_version: str = ""
    resources_owner: OwnerReference | None = None


class TaskMetadata(Metadata):
    """Metadata narrowed down to the task currently being executed."""

    plan_name: str
    plan_uid: str = ""
    phase_name: str
    step_name: str
    step_number: int = 0
    task_name: str

    @classmethod
    def for_task(
        cls,
        meta: Metadata,
        *,
        plan_name: str,
        plan_uid: str,
        phase_name: str,
        step_name: str,
        step_number: int,
        task_name: str,
    ) -> TaskMetadata:
        return cls(
            **meta.model_dump(exclude={"resources_owner"}),
            resources_owner=meta.resources_owner,
            plan_name=plan_name,
            plan_uid=plan_uid,
            phase_name=phase_name,
            step_name=step_name,
            step_number=step_number,
            task_name=task_name,
        )
