from __future__ import annotations

import copy
import re
from typing import Any, Iterable

from opflow.core.errors import NotFoundError, RejectedError, StoreError, UnsupportedPatchError
from opflow.providers.base import ObjectKey, PatchStrategy

# Object names must be DNS subdomains, as on the API server
NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")

# Built-in kinds accepting strategic merge patches. Custom resources only
# support JSON merge patches, like on a real API server.
STRATEGIC_PATCH_KINDS = frozenset(
    {
        "ConfigMap",
        "CronJob",
        "DaemonSet",
        "Deployment",
        "Ingress",
        "Job",
        "Namespace",
        "NetworkPolicy",
        "PersistentVolumeClaim",
        "Pod",
        "PodDisruptionBudget",
        "Role",
        "RoleBinding",
        "Secret",
        "Service",
        "ServiceAccount",
        "StatefulSet",
    }
)


def json_merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7386 merge patch: mappings merge, None removes, anything else replaces."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = json_merge_patch(result.get(key), value)
    return result


def strategic_merge_patch(target: Any, patch: Any) -> Any:
    """Merge patch that also merges lists of named items (containers, ports, volumes) by name."""
    if isinstance(patch, dict):
        result = copy.deepcopy(target) if isinstance(target, dict) else {}
        for key, value in patch.items():
            if value is None:
                result.pop(key, None)
            else:
                result[key] = strategic_merge_patch(result.get(key), value)
        return result
    if isinstance(patch, list) and isinstance(target, list) and _named_items(patch) and _named_items(target):
        merged = {item["name"]: item for item in copy.deepcopy(target)}
        for item in patch:
            merged[item["name"]] = strategic_merge_patch(merged.get(item["name"]), item)
        return list(merged.values())
    return copy.deepcopy(patch)


def _named_items(items: list[Any]) -> bool:
    return bool(items) and all(isinstance(i, dict) and "name" in i for i in items)


class InMemoryResourceStore:
    """Deterministic in-process resource store for local runs and tests."""

    def __init__(
        self,
        objects: Iterable[dict[str, Any]] = (),
        *,
        strategic_kinds: Iterable[str] = STRATEGIC_PATCH_KINDS,
    ) -> None:
        self._objects: dict[ObjectKey, dict[str, Any]] = {}
        self._strategic_kinds = frozenset(strategic_kinds)
        self._uid_counter = 0
        self._files: dict[tuple[str, str, str], bytes] = {}
        for obj in objects:
            self.create(obj)

    def get(self, key: ObjectKey) -> dict[str, Any]:
        try:
            return copy.deepcopy(self._objects[key])
        except KeyError:
            raise NotFoundError(f"{key} not found", {"key": str(key)}) from None

    def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.from_manifest(manifest)
        if key in self._objects:
            raise StoreError(f"{key} already exists", {"key": str(key)})
        if len(key.name) > 253 or not NAME_RE.match(key.name):
            raise RejectedError(
                f"{key} is invalid: metadata.name must be a lowercase DNS subdomain",
                {"key": str(key), "status": 422},
            )
        self._uid_counter += 1
        obj = copy.deepcopy(manifest)
        metadata = obj.setdefault("metadata", {})
        metadata["uid"] = f"uid-{self._uid_counter}"
        metadata["resourceVersion"] = "1"
        metadata["generation"] = 1
        self._objects[key] = obj
        return copy.deepcopy(obj)

    def patch(self, key: ObjectKey, manifest: dict[str, Any], strategy: PatchStrategy) -> dict[str, Any]:
        current = self.get(key)
        if strategy == PatchStrategy.strategic:
            if key.kind not in self._strategic_kinds:
                raise UnsupportedPatchError(
                    f"strategic merge patch is not supported for {key.kind}",
                    {"key": str(key)},
                )
            patched = strategic_merge_patch(current, manifest)
        else:
            patched = json_merge_patch(current, manifest)

        metadata = patched.setdefault("metadata", {})
        for field in ("uid", "generation"):
            metadata[field] = current["metadata"][field]
        if patched != current:
            metadata["resourceVersion"] = str(int(current["metadata"]["resourceVersion"]) + 1)
            if patched.get("spec") != current.get("spec"):
                metadata["generation"] = current["metadata"]["generation"] + 1
        self._objects[key] = patched
        return copy.deepcopy(patched)

    def delete(self, key: ObjectKey, propagation: str = "Foreground") -> None:
        if key not in self._objects:
            raise NotFoundError(f"{key} not found", {"key": str(key)})
        del self._objects[key]

    def set_status(self, key: ObjectKey, status: dict[str, Any]) -> None:
        """Replace an object's status, the way a cluster controller would."""
        obj = self._objects.get(key)
        if obj is None:
            raise NotFoundError(f"{key} not found", {"key": str(key)})
        obj["status"] = copy.deepcopy(status)

    def put_file(self, namespace: str, pod: str, path: str, data: bytes) -> None:
        """Make a file readable from a pod, the way its containers would write it."""
        self._files[(namespace, pod, path)] = data

    def read_file(self, namespace: str, pod: str, container: str, path: str) -> bytes:
        if ObjectKey("v1", "Pod", pod, namespace) not in self._objects:
            raise NotFoundError(f"pod {namespace}/{pod} not found", {"pod": pod})
        try:
            return self._files[(namespace, pod, path)]
        except KeyError:
            raise StoreError(
                f"reading {path} from pod {namespace}/{pod} failed: no such file",
                {"pod": pod, "path": path},
            ) from None

    def keys(self) -> list[ObjectKey]:
        return list(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)
