"""Tests for health evaluation."""

import pytest
from opflow.resources.health import DefaultHealthEvaluator, HealthReport


@pytest.fixture
def evaluator():
    return DefaultHealthEvaluator()


def obj(kind, spec=None, status=None, generation=None):
    metadata = {"name": "x"}
    if generation is not None:
        metadata["generation"] = generation
    result = {"apiVersion": "v1", "kind": kind, "metadata": metadata}
    if spec is not None:
        result["spec"] = spec
    if status is not None:
        result["status"] = status
    return result


class TestDeployment:
    """Tests for Deployment rollout health."""

    def test_rolled_out(self, evaluator):
        d = obj(
            "Deployment",
            spec={"replicas": 2},
            status={"observedGeneration": 1, "replicas": 2, "updatedReplicas": 2, "availableReplicas": 2},
            generation=1,
        )
        assert evaluator.evaluate(d).healthy

    def test_generation_not_observed(self, evaluator):
        d = obj(
            "Deployment",
            spec={"replicas": 1},
            status={"observedGeneration": 1, "replicas": 1, "updatedReplicas": 1, "availableReplicas": 1},
            generation=2,
        )
        report = evaluator.evaluate(d)
        assert not report.healthy
        assert not report.terminal

    def test_no_status_yet(self, evaluator):
        assert not evaluator.evaluate(obj("Deployment", spec={"replicas": 1}, generation=1)).healthy

    def test_null_status(self, evaluator):
        d = obj("Deployment", spec={"replicas": 1}, generation=1)
        d["status"] = None

        report = evaluator.evaluate(d)

        assert not report.healthy
        assert not report.terminal

    def test_old_replicas_pending(self, evaluator):
        d = obj(
            "Deployment",
            spec={"replicas": 1},
            status={"observedGeneration": 1, "replicas": 2, "updatedReplicas": 1, "availableReplicas": 1},
            generation=1,
        )
        assert "old replicas" in evaluator.evaluate(d).message


class TestStatefulSet:
    """Tests for StatefulSet health."""

    def test_ready(self, evaluator):
        s = obj("StatefulSet", spec={"replicas": 3}, status={"observedGeneration": 1, "readyReplicas": 3}, generation=1)
        assert evaluator.evaluate(s).healthy

    def test_not_enough_ready(self, evaluator):
        s = obj("StatefulSet", spec={"replicas": 3}, status={"observedGeneration": 1, "readyReplicas": 2}, generation=1)
        assert not evaluator.evaluate(s).healthy

    def test_rolling_update_in_progress(self, evaluator):
        s = obj(
            "StatefulSet",
            spec={"replicas": 1},
            status={"observedGeneration": 1, "readyReplicas": 1, "currentRevision": "a", "updateRevision": "b"},
            generation=1,
        )
        assert not evaluator.evaluate(s).healthy


class TestJob:
    """Tests for Job health."""

    def test_succeeded(self, evaluator):
        assert evaluator.evaluate(obj("Job", status={"succeeded": 1})).healthy

    def test_running(self, evaluator):
        report = evaluator.evaluate(obj("Job", status={"active": 1}))
        assert not report.healthy
        assert not report.terminal

    def test_failed_is_terminal(self, evaluator):
        job = obj(
            "Job",
            status={"conditions": [{"type": "Failed", "status": "True", "reason": "BackoffLimitExceeded"}]},
        )
        report = evaluator.evaluate(job)
        assert report.terminal
        assert "BackoffLimitExceeded" in report.message


class TestOtherKinds:
    """Tests for pods, namespaces, services and CRDs."""

    def test_pod_ready(self, evaluator):
        pod = obj("Pod", status={"phase": "Running", "conditions": [{"type": "Ready", "status": "True"}]})
        assert evaluator.evaluate(pod).healthy

    def test_pod_running_not_ready(self, evaluator):
        pod = obj("Pod", status={"phase": "Running", "conditions": [{"type": "Ready", "status": "False"}]})
        assert not evaluator.evaluate(pod).healthy

    def test_namespace(self, evaluator):
        assert evaluator.evaluate(obj("Namespace", status={"phase": "Active"})).healthy
        assert not evaluator.evaluate(obj("Namespace", status={"phase": "Terminating"})).healthy

    def test_external_name_service(self, evaluator):
        assert evaluator.evaluate(obj("Service", spec={"type": "ExternalName"})).healthy

    def test_service_needs_cluster_ip(self, evaluator):
        assert not evaluator.evaluate(obj("Service", spec={})).healthy
        assert evaluator.evaluate(obj("Service", spec={"clusterIP": "10.0.0.1"})).healthy

    def test_load_balancer_needs_ingress(self, evaluator):
        spec = {"type": "LoadBalancer", "clusterIP": "10.0.0.1"}
        assert not evaluator.evaluate(obj("Service", spec=spec)).healthy
        ready = obj("Service", spec=spec, status={"loadBalancer": {"ingress": [{"ip": "1.2.3.4"}]}})
        assert evaluator.evaluate(ready).healthy

    def test_crd_established(self, evaluator):
        crd = obj("CustomResourceDefinition", status={"conditions": [{"type": "Established", "status": "True"}]})
        assert evaluator.evaluate(crd).healthy
        assert not evaluator.evaluate(obj("CustomResourceDefinition")).healthy

    def test_unknown_kind_is_healthy(self, evaluator):
        assert evaluator.evaluate(obj("ConfigMap")).healthy

    def test_custom_checks(self):
        evaluator = DefaultHealthEvaluator({"ConfigMap": lambda o: HealthReport.waiting("never")})
        assert not evaluator.evaluate(obj("ConfigMap")).healthy
