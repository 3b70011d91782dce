"""
Health evaluation of applied resources.

A task that applied resources is only done once every one of them is
healthy. Health is judged from the live object's ``status`` per kind; kinds
without a dedicated rule are healthy as soon as they exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol


@dataclass(frozen=True)
class HealthReport:
    """Outcome of evaluating one object.

    ``terminal`` marks objects that failed in a way that will never recover
    (a failed Job), as opposed to objects that are still converging.
    """

    healthy: bool
    message: str = ""
    terminal: bool = False

    @classmethod
    def ok(cls, message: str = "") -> HealthReport:
        return cls(healthy=True, message=message)

    @classmethod
    def waiting(cls, message: str) -> HealthReport:
        return cls(healthy=False, message=message)

    @classmethod
    def failed(cls, message: str) -> HealthReport:
        return cls(healthy=False, message=message, terminal=True)


class HealthEvaluator(Protocol):
    """Judges whether a live object has converged."""

    def evaluate(self, obj: dict[str, Any]) -> HealthReport:
        ...


def _condition(status: dict[str, Any], condition_type: str) -> dict[str, Any] | None:
    for condition in status.get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition
    return None


def _generation_observed(obj: dict[str, Any]) -> bool:
    generation = (obj.get("metadata") or {}).get("generation")
    observed = (obj.get("status") or {}).get("observedGeneration")
    if generation is None:
        return True
    return observed is not None and observed >= generation


def deployment_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    status = obj.get("status") or {}
    if not _generation_observed(obj):
        return HealthReport.waiting(f"deployment {name}: waiting for spec update to be observed")

    progressing = _condition(status, "Progressing")
    if progressing and progressing.get("reason") == "ProgressDeadlineExceeded":
        return HealthReport.waiting(f"deployment {name}: exceeded its progress deadline")

    desired = (obj.get("spec") or {}).get("replicas", 1)
    updated = status.get("updatedReplicas", 0)
    replicas = status.get("replicas", 0)
    available = status.get("availableReplicas", 0)
    if updated < desired:
        return HealthReport.waiting(f"deployment {name}: {updated} of {desired} updated replicas")
    if replicas > updated:
        return HealthReport.waiting(
            f"deployment {name}: {replicas - updated} old replicas pending termination"
        )
    if available < updated:
        return HealthReport.waiting(f"deployment {name}: {available} of {updated} updated replicas available")
    return HealthReport.ok(f"deployment {name} rolled out")


def statefulset_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    status = obj.get("status") or {}
    if not _generation_observed(obj):
        return HealthReport.waiting(f"statefulset {name}: waiting for spec update to be observed")

    desired = (obj.get("spec") or {}).get("replicas", 1)
    ready = status.get("readyReplicas", 0)
    if ready < desired:
        return HealthReport.waiting(f"statefulset {name}: {ready} of {desired} replicas ready")

    current_revision = status.get("currentRevision")
    update_revision = status.get("updateRevision")
    if current_revision and update_revision and current_revision != update_revision:
        return HealthReport.waiting(f"statefulset {name}: rolling update to {update_revision} in progress")
    return HealthReport.ok(f"statefulset {name} rolled out")


def job_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    status = obj.get("status") or {}
    failed = _condition(status, "Failed")
    if failed and failed.get("status") == "True":
        reason = failed.get("reason") or failed.get("message") or "unknown reason"
        return HealthReport.failed(f"job {name} failed: {reason}")
    if status.get("succeeded", 0) >= 1:
        return HealthReport.ok(f"job {name} succeeded")
    return HealthReport.waiting(f"job {name} still running")


def pod_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    status = obj.get("status") or {}
    phase = status.get("phase")
    if phase != "Running":
        return HealthReport.waiting(f"pod {name} is in phase {phase or 'Unknown'}")
    ready = _condition(status, "Ready")
    if not ready or ready.get("status") != "True":
        return HealthReport.waiting(f"pod {name} is running but not ready")
    return HealthReport.ok(f"pod {name} is ready")


def namespace_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    phase = (obj.get("status") or {}).get("phase")
    if phase == "Active":
        return HealthReport.ok(f"namespace {name} is active")
    return HealthReport.waiting(f"namespace {name} is in phase {phase or 'Unknown'}")


def service_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    spec = obj.get("spec") or {}
    service_type = spec.get("type", "ClusterIP")
    if service_type == "ExternalName":
        return HealthReport.ok(f"service {name} is an external name")
    if not spec.get("clusterIP"):
        return HealthReport.waiting(f"service {name} has no cluster IP yet")
    if service_type == "LoadBalancer":
        ingress = ((obj.get("status") or {}).get("loadBalancer") or {}).get("ingress")
        if not spec.get("externalIPs") and not ingress:
            return HealthReport.waiting(f"service {name} is waiting for a load balancer")
    return HealthReport.ok(f"service {name} is ready")


def crd_health(obj: dict[str, Any]) -> HealthReport:
    name = obj["metadata"]["name"]
    established = _condition(obj.get("status") or {}, "Established")
    if established and established.get("status") == "True":
        return HealthReport.ok(f"crd {name} is established")
    return HealthReport.waiting(f"crd {name} is not established yet")


HEALTH_CHECKS: dict[str, Callable[[dict[str, Any]], HealthReport]] = {
    "Deployment": deployment_health,
    "StatefulSet": statefulset_health,
    "Job": job_health,
    "Pod": pod_health,
    "Namespace": namespace_health,
    "Service": service_health,
    "CustomResourceDefinition": crd_health,
}


class DefaultHealthEvaluator:
    """Evaluates health with the built-in per-kind checks."""

    def __init__(self, checks: dict[str, Callable[[dict[str, Any]], HealthReport]] | None = None):
        self.checks = dict(HEALTH_CHECKS if checks is None else checks)

    def evaluate(self, obj: dict[str, Any]) -> HealthReport:
        check = self.checks.get(obj.get("kind", ""))
        if check is None:
            return HealthReport.ok(f"{obj.get('kind')} {obj['metadata']['name']} exists")
        return check(obj)
