"""
Convention enhancer.

Stamps the operator's conventions onto rendered manifests before they are
applied: ownership labels, plan/phase/step annotations, the instance
namespace, an owner reference and a hash of the ConfigMaps and Secrets a
workload mounts. The hash lands on the pod template, so a changed
dependency rolls the workload even when its own spec is unchanged.
"""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any, Iterable, Protocol, Sequence

import structlog

from opflow.core.errors import EnhancementError, NotFoundError, StoreError
from opflow.domain.models import TaskMetadata
from opflow.providers.base import ObjectKey, ResourceStore
from opflow.resources.conventions import HERITAGE_LABEL, Conventions

logger = structlog.get_logger()

# A trailing "[]" applies the rest of the path to every list element.
LABEL_PATHS: tuple[tuple[str, ...], ...] = (
    ("metadata", "labels"),
    ("spec", "template", "metadata", "labels"),
    ("spec", "volumeClaimTemplates[]", "metadata", "labels"),
    ("spec", "jobTemplate", "metadata", "labels"),
    ("spec", "jobTemplate", "spec", "template", "metadata", "labels"),
)

ANNOTATION_PATHS: tuple[tuple[str, ...], ...] = (
    ("metadata", "annotations"),
    ("spec", "template", "metadata", "annotations"),
    ("spec", "jobTemplate", "metadata", "annotations"),
    ("spec", "jobTemplate", "spec", "template", "metadata", "annotations"),
)

HASHED_WORKLOAD_KINDS = frozenset({"Deployment", "StatefulSet"})

# Fields of a ConfigMap or Secret that make up its content.
DEPENDENCY_CONTENT_FIELDS = ("data", "binaryData", "stringData", "type")


class ConventionEnhancer(Protocol):
    """Applies conventions to rendered manifests."""

    def apply(self, manifests: Sequence[dict[str, Any]], meta: TaskMetadata) -> list[dict[str, Any]]:
        ...


def add_map_values(obj: dict[str, Any], values: dict[str, str], path: Sequence[str]) -> None:
    """Merge ``values`` into the mapping at ``path``.

    Only the last two segments (``metadata`` and the map itself) are created
    when missing; if any earlier segment is absent the path does not apply to
    this object and nothing is written.
    """
    current: Any = obj
    for i, segment in enumerate(path):
        if segment.endswith("[]"):
            items = current.get(segment[:-2]) if isinstance(current, dict) else None
            if isinstance(items, list):
                for item in items:
                    if isinstance(item, dict):
                        add_map_values(item, values, path[i + 1 :])
            return

        creatable = i >= len(path) - 2
        if not isinstance(current, dict):
            raise EnhancementError(f"expected a mapping at {'.'.join(path[:i]) or '<root>'}")
        if segment not in current or current[segment] is None:
            if not creatable:
                return
            current[segment] = {}
        current = current[segment]

    if not isinstance(current, dict):
        raise EnhancementError(f"expected a mapping at {'.'.join(path)}")
    current.update(values)


def _dependency_names(manifest: dict[str, Any]) -> tuple[list[str], list[str]]:
    """ConfigMap and Secret names mounted by a workload's pod template."""
    pod_spec = ((manifest.get("spec") or {}).get("template") or {}).get("spec") or {}
    config_maps: list[str] = []
    secrets: list[str] = []

    for ref in pod_spec.get("imagePullSecrets") or []:
        if ref.get("name"):
            secrets.append(ref["name"])
    for volume in pod_spec.get("volumes") or []:
        config_map = volume.get("configMap") or {}
        if config_map.get("name"):
            config_maps.append(config_map["name"])
        secret = volume.get("secret") or {}
        if secret.get("secretName"):
            secrets.append(secret["secretName"])

    return sorted(set(config_maps)), sorted(set(secrets))


class DefaultEnhancer:
    """Enhancer applying the standard labels, annotations and ownership."""

    def __init__(self, conventions: Conventions | None = None, store: ResourceStore | None = None):
        self.conventions = conventions or Conventions()
        self.store = store

    def apply(self, manifests: Sequence[dict[str, Any]], meta: TaskMetadata) -> list[dict[str, Any]]:
        enhanced = [self._enhance(copy.deepcopy(m), meta) for m in manifests]

        cache: dict[tuple[str, str], bytes] = {}
        for manifest in enhanced:
            if manifest.get("kind") in HASHED_WORKLOAD_KINDS:
                self._add_dependencies_hash(manifest, enhanced, meta, cache)

        return enhanced

    def _enhance(self, manifest: dict[str, Any], meta: TaskMetadata) -> dict[str, Any]:
        conv = self.conventions
        labels = {
            HERITAGE_LABEL: conv.heritage,
            conv.operator_label: meta.operator_name,
            conv.instance_label: meta.instance_name,
        }
        for path in LABEL_PATHS:
            add_map_values(manifest, labels, path)

        annotations = {conv.operator_version_annotation: meta.operator_version}
        for path in ANNOTATION_PATHS:
            add_map_values(manifest, annotations, path)

        add_map_values(
            manifest,
            {
                conv.plan_annotation: meta.plan_name,
                conv.phase_annotation: meta.phase_name,
                conv.step_annotation: meta.step_name,
                conv.plan_uid_annotation: meta.plan_uid,
            },
            ("metadata", "annotations"),
        )

        kind = manifest.get("kind", "")
        if conv.is_namespaced(kind):
            manifest["metadata"]["namespace"] = meta.instance_namespace
            if meta.resources_owner is not None:
                self._set_owner(manifest, meta)
        else:
            # Cluster-scoped objects cannot be owned by a namespaced instance.
            manifest["metadata"].pop("namespace", None)
            logger.debug(
                "owner_reference_skipped",
                kind=kind,
                name=manifest["metadata"].get("name"),
                reason="cluster_scoped",
            )
        return manifest

    def _set_owner(self, manifest: dict[str, Any], meta: TaskMetadata) -> None:
        owner = meta.resources_owner
        refs = [
            ref
            for ref in manifest["metadata"].get("ownerReferences") or []
            if ref.get("uid") != owner.uid and not ref.get("controller")
        ]
        refs.append(owner.to_manifest())
        manifest["metadata"]["ownerReferences"] = refs

    def _add_dependencies_hash(
        self,
        workload: dict[str, Any],
        batch: Sequence[dict[str, Any]],
        meta: TaskMetadata,
        cache: dict[tuple[str, str], bytes],
    ) -> None:
        config_maps, secrets = _dependency_names(workload)
        digest = hashlib.sha256()
        for kind, names in (("Secret", secrets), ("ConfigMap", config_maps)):
            for name in names:
                if (kind, name) not in cache:
                    dependency = self._find_dependency(kind, name, batch, meta.instance_namespace)
                    cache[(kind, name)] = self._digest(dependency)
                digest.update(cache[(kind, name)])

        hash_value = digest.hexdigest()
        add_map_values(
            workload,
            {self.conventions.dependencies_hash_annotation: hash_value},
            ("spec", "template", "metadata", "annotations"),
        )
        logger.debug(
            "dependencies_hash_added",
            kind=workload.get("kind"),
            name=workload["metadata"].get("name"),
            hash=hash_value,
        )

    def _digest(self, dependency: dict[str, Any]) -> bytes:
        annotations = (dependency.get("metadata") or {}).get("annotations") or {}
        if self.conventions.skip_hash_annotation in annotations:
            return b"\x00" * 32
        content = {f: dependency[f] for f in DEPENDENCY_CONTENT_FIELDS if f in dependency}
        return hashlib.sha256(json.dumps(content, sort_keys=True).encode()).digest()

    def _find_dependency(
        self, kind: str, name: str, batch: Iterable[dict[str, Any]], namespace: str
    ) -> dict[str, Any]:
        """Look up a dependency in the current batch, then in the store.

        A stored object is represented by its last applied configuration when
        it carries one, so that hashes agree with the batch it was created from.
        """
        for obj in batch:
            if obj.get("kind") == kind and obj["metadata"].get("name") == name:
                return obj

        if self.store is None:
            raise EnhancementError(f"dependency {kind} {namespace}/{name} not found")

        key = ObjectKey(api_version="v1", kind=kind, name=name, namespace=namespace)
        try:
            live = self.store.get(key)
        except NotFoundError as e:
            raise EnhancementError(f"dependency {kind} {namespace}/{name} not found") from e
        except StoreError as e:
            raise EnhancementError(f"failed to get dependency {kind} {namespace}/{name}: {e}") from e

        annotations = (live.get("metadata") or {}).get("annotations") or {}
        last_applied = annotations.get(self.conventions.last_applied_annotation)
        if last_applied is None:
            return live
        try:
            return json.loads(last_applied)
        except ValueError as e:
            raise EnhancementError(
                f"failed to decode last applied configuration of {kind} {namespace}/{name}"
            ) from e
