from __future__ import annotations

from opflow.providers.base import ObjectKey, PatchStrategy, PodFileReader, ResourceStore
from opflow.providers.kubernetes import KubernetesResourceStore
from opflow.providers.memory import InMemoryResourceStore
from opflow.providers.registry import (
    StoreRegistry,
    create_store,
    store_from_settings,
    store_registry,
)

__all__ = [
    "InMemoryResourceStore",
    "KubernetesResourceStore",
    "ObjectKey",
    "PatchStrategy",
    "PodFileReader",
    "ResourceStore",
    "StoreRegistry",
    "create_store",
    "store_from_settings",
    "store_registry",
]
