from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from opflow.core.errors import ManifestError


class PatchStrategy(StrEnum):
    """Patch flavours understood by resource stores."""

    strategic = "strategic"
    merge = "merge"


@dataclass(frozen=True)
class ObjectKey:
    """Identity of an object in a resource store."""

    api_version: str
    kind: str
    name: str
    namespace: str | None = None

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> ObjectKey:
        metadata = manifest.get("metadata") or {}
        api_version = manifest.get("apiVersion")
        kind = manifest.get("kind")
        name = metadata.get("name")
        if not api_version or not kind or not name:
            raise ManifestError(
                "manifest must set apiVersion, kind and metadata.name",
                {"apiVersion": api_version, "kind": kind, "name": name},
            )
        return cls(api_version=api_version, kind=kind, name=name, namespace=metadata.get("namespace"))

    def __str__(self) -> str:
        location = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return f"{self.kind}.{self.api_version} {location}"


class ResourceStore(Protocol):
    """Contract for the store holding realized resources (e.g. a Kubernetes API server).

    Every call is a single bounded request. Failures raise StoreError
    subclasses: NotFoundError when the object is absent,
    UnsupportedPatchError when the kind rejects the requested patch type and
    RejectedError when the object itself is invalid. Any other StoreError is
    assumed to be temporary.
    """

    def get(self, key: ObjectKey) -> dict[str, Any]:
        ...

    def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        ...

    def patch(self, key: ObjectKey, manifest: dict[str, Any], strategy: PatchStrategy) -> dict[str, Any]:
        ...

    def delete(self, key: ObjectKey, propagation: str = "Foreground") -> None:
        ...


@runtime_checkable
class PodFileReader(Protocol):
    """Reads files out of a running pod's container."""

    def read_file(self, namespace: str, pod: str, container: str, path: str) -> bytes:
        ...
