"""
Resource applier.

Realizes enhanced manifests in a resource store. Objects that do not exist
yet are created; existing ones are patched with a strategic merge patch,
falling back to a JSON merge patch for kinds that reject the strategic
flavour (custom resources). Every applied object carries its last applied
configuration, so fields dropped from a template are removed on the next
apply.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Sequence

import structlog

from opflow.core.errors import (
    NotFoundError,
    ResourceNotHealthyError,
    ResourceTerminallyFailedError,
    UnsupportedPatchError,
)
from opflow.providers.base import ObjectKey, PatchStrategy, ResourceStore
from opflow.resources.conventions import Conventions
from opflow.resources.health import DefaultHealthEvaluator, HealthEvaluator

logger = structlog.get_logger()


def removal_patch(original: Any, modified: Any) -> Any:
    """Merge patch turning the live object into ``modified``.

    All of ``modified`` is reissued; keys present in ``original`` (the last
    applied configuration) but gone from ``modified`` are set to None so the
    store removes them.
    """
    if not isinstance(original, dict) or not isinstance(modified, dict):
        return copy.deepcopy(modified)
    patch: dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None
    for key, value in modified.items():
        patch[key] = removal_patch(original.get(key), value)
    return patch


class ResourceApplier:
    """Creates, patches, deletes and health checks resources in a store."""

    def __init__(
        self,
        store: ResourceStore,
        health: HealthEvaluator | None = None,
        conventions: Conventions | None = None,
    ):
        self.store = store
        self.health = health or DefaultHealthEvaluator()
        self.conventions = conventions or Conventions()

    def _with_last_applied(self, manifest: dict[str, Any]) -> dict[str, Any]:
        key = self.conventions.last_applied_annotation
        original = copy.deepcopy(manifest)
        metadata = original.setdefault("metadata", {})
        if metadata.get("annotations"):
            metadata["annotations"].pop(key, None)
        serialized = json.dumps(original, sort_keys=True, separators=(",", ":"))

        annotated = copy.deepcopy(original)
        annotations = annotated["metadata"].get("annotations") or {}
        annotations[key] = serialized
        annotated["metadata"]["annotations"] = annotations
        return annotated

    def _last_applied(self, live: dict[str, Any]) -> dict[str, Any]:
        annotations = (live.get("metadata") or {}).get("annotations") or {}
        raw = annotations.get(self.conventions.last_applied_annotation)
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("last_applied_invalid", name=(live.get("metadata") or {}).get("name"))
            return {}

    def apply(self, manifests: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        """Create or patch every manifest, returning the live objects in order.

        Raises:
            StoreError: If the store fails a request
        """
        applied: list[dict[str, Any]] = []
        for manifest in manifests:
            key = ObjectKey.from_manifest(manifest)
            desired = self._with_last_applied(manifest)
            try:
                live = self.store.get(key)
            except NotFoundError:
                applied.append(self.store.create(desired))
                logger.info("resource_created", key=str(key))
                continue

            patch = removal_patch(self._last_applied(live), desired)
            applied.append(self._patch(key, patch))
        return applied

    def _patch(self, key: ObjectKey, patch: dict[str, Any]) -> dict[str, Any]:
        try:
            result = self.store.patch(key, patch, PatchStrategy.strategic)
            strategy = PatchStrategy.strategic
        except UnsupportedPatchError:
            result = self.store.patch(key, patch, PatchStrategy.merge)
            strategy = PatchStrategy.merge
        logger.debug("resource_patched", key=str(key), strategy=str(strategy))
        return result

    def check_health(self, objects: Sequence[dict[str, Any]]) -> None:
        """Raise unless every object is healthy.

        Raises:
            ResourceNotHealthyError: If an object is still converging
            ResourceTerminallyFailedError: If an object will never become healthy
        """
        for obj in objects:
            report = self.health.evaluate(obj)
            if report.healthy:
                continue
            details = {"kind": obj.get("kind"), "name": obj["metadata"].get("name")}
            if report.terminal:
                raise ResourceTerminallyFailedError(report.message, details)
            logger.debug("resource_not_healthy", message=report.message, **details)
            raise ResourceNotHealthyError(report.message, details)

    def delete(self, manifests: Sequence[dict[str, Any]]) -> None:
        """Delete every object with foreground propagation; absent objects are skipped."""
        for manifest in manifests:
            key = ObjectKey.from_manifest(manifest)
            try:
                self.store.delete(key, propagation="Foreground")
                logger.info("resource_deleted", key=str(key))
            except NotFoundError:
                logger.debug("resource_already_absent", key=str(key))

    def all_deleted(self, manifests: Sequence[dict[str, Any]]) -> bool:
        for manifest in manifests:
            try:
                self.store.get(ObjectKey.from_manifest(manifest))
            except NotFoundError:
                continue
            return False
        return True
