"""
Kubernetes resource store.

Realizes manifests against a Kubernetes API server through the dynamic
client, so any kind the server knows (including custom resources) can be
applied without generated models.

Configuration:
    kubeconfig: Path to kubeconfig file (optional)
    context: Kubeconfig context to use (optional)
    timeout: API request timeout in seconds

Environment variables:
    KUBECONFIG: Standard kubeconfig path
    OPFLOW_KUBE_CONTEXT: Kubeconfig context
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass, field
from typing import Any

import structlog

from opflow.core.errors import NotFoundError, RejectedError, StoreError, UnsupportedPatchError
from opflow.providers.base import ObjectKey, PatchStrategy

logger = structlog.get_logger()

# Statuses for requests the API server refuses as invalid (BadRequest, Invalid)
REJECTED_STATUSES = frozenset({400, 422})

PATCH_CONTENT_TYPES = {
    PatchStrategy.strategic: "application/strategic-merge-patch+json",
    PatchStrategy.merge: "application/merge-patch+json",
}

# Lazy import kubernetes to allow optional installation
_kubernetes_available: bool | None = None


def _check_kubernetes_available() -> bool:
    """Check if kubernetes package is installed."""
    global _kubernetes_available
    if _kubernetes_available is None:
        try:
            import kubernetes  # noqa: F401

            _kubernetes_available = True
        except ImportError:
            _kubernetes_available = False
    return _kubernetes_available


@dataclass
class KubernetesResourceStore:
    """Resource store backed by the Kubernetes dynamic client."""

    kubeconfig: str | None = field(default_factory=lambda: os.environ.get("KUBECONFIG"))
    context: str | None = field(default_factory=lambda: os.environ.get("OPFLOW_KUBE_CONTEXT"))
    timeout: float = 30.0
    field_manager: str = "opflow"

    # Internal state
    _client: Any = field(default=None, repr=False, compare=False)

    def _ensure_initialized(self) -> Any:
        """Initialize the dynamic client if not already done."""
        if self._client is not None:
            return self._client

        if not _check_kubernetes_available():
            raise StoreError(
                "kubernetes package not installed. Install with: pip install opflow[kubernetes]"
            )

        from kubernetes import client, config, dynamic

        # Try in-cluster config first, then kubeconfig
        try:
            config.load_incluster_config()
        except config.ConfigException:
            try:
                config.load_kube_config(config_file=self.kubeconfig, context=self.context)
            except config.ConfigException as e:
                raise StoreError(f"Failed to load Kubernetes config: {e}") from e

        self._client = dynamic.DynamicClient(client.ApiClient())
        return self._client

    def _resource(self, api_version: str, kind: str) -> Any:
        from kubernetes.dynamic.exceptions import ResourceNotFoundError

        client = self._ensure_initialized()
        try:
            return client.resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError as e:
            raise StoreError(f"unknown resource type {kind}.{api_version}: {e}") from e

    def _call(self, key: ObjectKey, func: Any, **kwargs: Any) -> Any:
        from kubernetes.dynamic.exceptions import DynamicApiError

        try:
            return func(_request_timeout=self.timeout, **kwargs)
        except DynamicApiError as e:
            status = getattr(e, "status", None)
            details = {"key": str(key), "status": status}
            if status == 404:
                raise NotFoundError(f"{key} not found", details) from e
            if status == 415:
                raise UnsupportedPatchError(f"patch type rejected for {key}: {e.summary()}", details) from e
            if status in REJECTED_STATUSES:
                raise RejectedError(f"{key} rejected: {e.summary()}", details) from e
            raise StoreError(f"request for {key} failed: {e.summary()}", details) from e

    def get(self, key: ObjectKey) -> dict[str, Any]:
        resource = self._resource(key.api_version, key.kind)
        obj = self._call(key, resource.get, name=key.name, namespace=key.namespace)
        return obj.to_dict()

    def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        key = ObjectKey.from_manifest(manifest)
        resource = self._resource(key.api_version, key.kind)
        obj = self._call(
            key,
            resource.create,
            body=manifest,
            namespace=key.namespace,
            field_manager=self.field_manager,
        )
        logger.debug("k8s_object_created", key=str(key))
        return obj.to_dict()

    def patch(self, key: ObjectKey, manifest: dict[str, Any], strategy: PatchStrategy) -> dict[str, Any]:
        resource = self._resource(key.api_version, key.kind)
        obj = self._call(
            key,
            resource.patch,
            body=manifest,
            name=key.name,
            namespace=key.namespace,
            content_type=PATCH_CONTENT_TYPES[strategy],
            field_manager=self.field_manager,
        )
        logger.debug("k8s_object_patched", key=str(key), strategy=str(strategy))
        return obj.to_dict()

    def delete(self, key: ObjectKey, propagation: str = "Foreground") -> None:
        resource = self._resource(key.api_version, key.kind)
        self._call(
            key,
            resource.delete,
            name=key.name,
            namespace=key.namespace,
            body={"propagationPolicy": propagation},
        )
        logger.debug("k8s_object_deleted", key=str(key), propagation=propagation)

    def read_file(self, namespace: str, pod: str, container: str, path: str) -> bytes:
        """Read a file from a pod container through an exec of ``base64``.

        Raises:
            StoreError: If the exec fails or the file cannot be read
        """
        from kubernetes import client
        from kubernetes.client.exceptions import ApiException
        from kubernetes.stream import stream

        api = client.CoreV1Api(self._ensure_initialized().client)
        details = {"pod": f"{namespace}/{pod}", "container": container, "path": path}
        try:
            resp = stream(
                api.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                container=container,
                command=["base64", path],
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
            resp.run_forever(timeout=self.timeout)
            output = resp.read_stdout()
            errors = resp.read_stderr()
            returncode = resp.returncode
            resp.close()
        except ApiException as e:
            raise StoreError(f"exec in pod {namespace}/{pod} failed: {e.reason}", details) from e

        if returncode != 0:
            raise StoreError(f"reading {path} from pod {namespace}/{pod} failed: {errors.strip()}", details)
        try:
            return base64.b64decode("".join(output.split()), validate=True)
        except binascii.Error as e:
            raise StoreError(
                f"reading {path} from pod {namespace}/{pod} returned invalid data", details
            ) from e
