from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from opflow.config import Settings
from opflow.core.errors import ConfigurationError
from opflow.providers.base import ResourceStore
from opflow.providers.kubernetes import KubernetesResourceStore
from opflow.providers.memory import InMemoryResourceStore

StoreFactory = Callable[..., ResourceStore]


@dataclass(frozen=True)
class StoreSpec:
    """Metadata describing a registered resource store."""

    name: str
    factory: StoreFactory
    description: str | None = None


class StoreRegistry:
    """Simple in-memory registry for resource store backends."""

    def __init__(self) -> None:
        self._stores: Dict[str, StoreSpec] = {}

    def register(self, name: str, factory: StoreFactory, *, description: str | None = None) -> None:
        if not name:
            raise ValueError("Store name is required")
        self._stores[name] = StoreSpec(name=name, factory=factory, description=description)

    def create(self, name: str, **kwargs: Any) -> ResourceStore:
        spec = self._stores.get(name)
        if spec is None:
            raise KeyError(f"Store '{name}' is not registered")
        return spec.factory(**kwargs)

    def list(self) -> List[StoreSpec]:
        return list(self._stores.values())


store_registry = StoreRegistry()
store_registry.register("memory", InMemoryResourceStore, description="In-process store")
store_registry.register("kubernetes", KubernetesResourceStore, description="Kubernetes API server")


def create_store(name: str, **kwargs: Any) -> ResourceStore:
    return store_registry.create(name, **kwargs)


def store_from_settings(settings: Settings) -> ResourceStore:
    """Build the store selected by OPFLOW_STORE_BACKEND.

    Raises:
        ConfigurationError: If no store is registered under that name
    """
    if settings.store_backend not in {spec.name for spec in store_registry.list()}:
        raise ConfigurationError(
            f"unknown store backend '{settings.store_backend}'",
            {"available": sorted(spec.name for spec in store_registry.list())},
        )
    if settings.store_backend == "kubernetes":
        return create_store(
            "kubernetes",
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
            timeout=float(settings.request_timeout),
            field_manager=settings.field_manager,
        )
    return create_store(settings.store_backend)
