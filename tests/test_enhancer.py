"""Tests for the convention enhancer."""

import copy
import json

import pytest
from opflow.core.errors import EnhancementError
from opflow.providers.base import ObjectKey
from opflow.resources.enhancer import DefaultEnhancer, add_map_values


def deployment(volumes=None, pull_secrets=None):
    pod_spec = {"containers": [{"name": "app", "image": "zk:3.6"}]}
    if volumes is not None:
        pod_spec["volumes"] = volumes
    if pull_secrets is not None:
        pod_spec["imagePullSecrets"] = pull_secrets
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": "zk"},
        "spec": {"replicas": 1, "template": {"spec": pod_spec}},
    }


def config_map(name="zk-config", data=None, annotations=None):
    metadata = {"name": name}
    if annotations:
        metadata["annotations"] = annotations
    return {"apiVersion": "v1", "kind": "ConfigMap", "metadata": metadata, "data": data or {"a": "1"}}


def pod_template_hash(manifests, conventions):
    for m in manifests:
        if m["kind"] == "Deployment":
            return m["spec"]["template"]["metadata"]["annotations"][conventions.dependencies_hash_annotation]
    raise AssertionError("no deployment")


class TestAddMapValues:
    """Tests for nested map injection."""

    def test_creates_metadata_map(self):
        obj = {}
        add_map_values(obj, {"a": "1"}, ("metadata", "labels"))
        assert obj == {"metadata": {"labels": {"a": "1"}}}

    def test_skips_paths_whose_parent_is_absent(self):
        obj = {"metadata": {}}
        add_map_values(obj, {"a": "1"}, ("spec", "template", "metadata", "labels"))
        assert obj == {"metadata": {}}

    def test_applies_to_list_elements(self):
        obj = {"spec": {"volumeClaimTemplates": [{"metadata": {"name": "data"}}, {}]}}

        add_map_values(obj, {"a": "1"}, ("spec", "volumeClaimTemplates[]", "metadata", "labels"))

        claims = obj["spec"]["volumeClaimTemplates"]
        assert claims[0]["metadata"]["labels"] == {"a": "1"}
        assert claims[1]["metadata"]["labels"] == {"a": "1"}

    def test_non_mapping_is_an_error(self):
        with pytest.raises(EnhancementError):
            add_map_values({"metadata": {"labels": "oops"}}, {"a": "1"}, ("metadata", "labels"))


class TestLabelsAndAnnotations:
    """Tests for ownership labels and plan annotations."""

    def test_metadata_labels(self, task_meta, conventions):
        [out] = DefaultEnhancer(conventions).apply([config_map()], task_meta)

        labels = out["metadata"]["labels"]
        assert labels["heritage"] == "opflow"
        assert labels[conventions.operator_label] == "zookeeper"
        assert labels[conventions.instance_label] == "zk"

    def test_plan_annotations_on_top_level_only(self, task_meta, conventions):
        [out] = DefaultEnhancer(conventions).apply([deployment()], task_meta)

        top = out["metadata"]["annotations"]
        assert top[conventions.plan_annotation] == "deploy"
        assert top[conventions.phase_annotation] == "main"
        assert top[conventions.step_annotation] == "everything"
        assert top[conventions.plan_uid_annotation] == "plan-uid"
        assert top[conventions.operator_version_annotation] == "0.3.0"

        pod = out["spec"]["template"]["metadata"]
        assert pod["labels"][conventions.instance_label] == "zk"
        assert pod["annotations"][conventions.operator_version_annotation] == "0.3.0"
        assert conventions.plan_annotation not in pod["annotations"]

    def test_job_template_paths(self, task_meta, conventions):
        cron = {
            "apiVersion": "batch/v1",
            "kind": "CronJob",
            "metadata": {"name": "backup"},
            "spec": {"jobTemplate": {"spec": {"template": {"spec": {}}}}},
        }

        [out] = DefaultEnhancer(conventions).apply([cron], task_meta)

        job_template = out["spec"]["jobTemplate"]
        assert job_template["metadata"]["labels"]["heritage"] == "opflow"
        assert job_template["spec"]["template"]["metadata"]["labels"]["heritage"] == "opflow"

    def test_input_is_not_mutated(self, task_meta, conventions):
        manifests = [config_map(), deployment()]
        snapshot = copy.deepcopy(manifests)

        out = DefaultEnhancer(conventions).apply(manifests, task_meta)

        assert manifests == snapshot
        assert [m["kind"] for m in out] == ["ConfigMap", "Deployment"]


class TestNamespaceAndOwner:
    """Tests for namespacing and owner references."""

    def test_namespaced_object_gets_namespace_and_owner(self, task_meta, conventions):
        [out] = DefaultEnhancer(conventions).apply([config_map()], task_meta)

        assert out["metadata"]["namespace"] == "default"
        [ref] = out["metadata"]["ownerReferences"]
        assert ref["uid"] == "instance-uid"
        assert ref["controller"] is True
        assert ref["blockOwnerDeletion"] is True

    def test_cluster_scoped_object_is_left_alone(self, task_meta, conventions):
        role = {"apiVersion": "rbac.authorization.k8s.io/v1", "kind": "ClusterRole", "metadata": {"name": "r"}}

        [out] = DefaultEnhancer(conventions).apply([role], task_meta)

        assert "namespace" not in out["metadata"]
        assert "ownerReferences" not in out["metadata"]
        assert out["metadata"]["labels"]["heritage"] == "opflow"

    def test_owner_reference_not_duplicated(self, task_meta, conventions):
        enhancer = DefaultEnhancer(conventions)
        [once] = enhancer.apply([config_map()], task_meta)
        [twice] = enhancer.apply([once], task_meta)

        assert len(twice["metadata"]["ownerReferences"]) == 1

    def test_no_owner_without_resources_owner(self, task_meta, conventions):
        meta = task_meta.model_copy(update={"resources_owner": None})

        [out] = DefaultEnhancer(conventions).apply([config_map()], meta)

        assert out["metadata"]["namespace"] == "default"
        assert "ownerReferences" not in out["metadata"]


class TestDependenciesHash:
    """Tests for the hash of mounted ConfigMaps and Secrets."""

    def test_hash_is_stable(self, task_meta, conventions):
        enhancer = DefaultEnhancer(conventions)
        batch = [config_map(), deployment(volumes=[{"name": "c", "configMap": {"name": "zk-config"}}])]

        first = pod_template_hash(enhancer.apply(batch, task_meta), conventions)
        second = pod_template_hash(enhancer.apply(batch, task_meta), conventions)

        assert first == second
        assert len(first) == 64

    def test_hash_changes_with_config_content(self, task_meta, conventions):
        enhancer = DefaultEnhancer(conventions)
        volumes = [{"name": "c", "configMap": {"name": "zk-config"}}]

        before = enhancer.apply([config_map(data={"a": "1"}), deployment(volumes=volumes)], task_meta)
        after = enhancer.apply([config_map(data={"a": "2"}), deployment(volumes=volumes)], task_meta)

        assert pod_template_hash(before, conventions) != pod_template_hash(after, conventions)

    def test_skip_annotation_ignores_content(self, task_meta, conventions):
        enhancer = DefaultEnhancer(conventions)
        volumes = [{"name": "c", "configMap": {"name": "zk-config"}}]
        skip = {conventions.skip_hash_annotation: "true"}

        before = enhancer.apply([config_map(data={"a": "1"}, annotations=skip), deployment(volumes=volumes)], task_meta)
        after = enhancer.apply([config_map(data={"a": "2"}, annotations=skip), deployment(volumes=volumes)], task_meta)

        assert pod_template_hash(before, conventions) == pod_template_hash(after, conventions)

    def test_dependency_from_store_uses_last_applied(self, task_meta, conventions, store):
        enhancer = DefaultEnhancer(conventions, store)
        volumes = [{"name": "s", "secret": {"secretName": "creds"}}]
        secret = {"apiVersion": "v1", "kind": "Secret", "metadata": {"name": "creds"}, "data": {"pw": "eA=="}}
        stored = copy.deepcopy(secret)
        stored["metadata"]["namespace"] = "default"
        stored["metadata"]["annotations"] = {conventions.last_applied_annotation: json.dumps(secret)}
        store.create(stored)

        from_store = enhancer.apply([deployment(volumes=volumes)], task_meta)
        from_batch = enhancer.apply([secret, deployment(volumes=volumes)], task_meta)

        assert pod_template_hash(from_store, conventions) == pod_template_hash(from_batch, conventions)
        assert ObjectKey("v1", "Secret", "creds", "default") in store

    def test_image_pull_secrets_are_dependencies(self, task_meta, conventions, store):
        enhancer = DefaultEnhancer(conventions, store)

        with pytest.raises(EnhancementError, match="registry"):
            enhancer.apply([deployment(pull_secrets=[{"name": "registry"}])], task_meta)

    def test_missing_dependency_without_store(self, task_meta, conventions):
        volumes = [{"name": "c", "configMap": {"name": "absent"}}]

        with pytest.raises(EnhancementError):
            DefaultEnhancer(conventions).apply([deployment(volumes=volumes)], task_meta)

    def test_workload_without_dependencies_gets_empty_hash(self, task_meta, conventions):
        [out] = DefaultEnhancer(conventions).apply([deployment()], task_meta)

        assert pod_template_hash([out], conventions) == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_null_pod_template_has_no_dependencies(self, task_meta, conventions):
        manifest = deployment()
        manifest["spec"]["template"] = None

        [out] = DefaultEnhancer(conventions).apply([manifest], task_meta)

        assert out["spec"]["template"] is None
        assert out["metadata"]["labels"]["heritage"] == "opflow"
