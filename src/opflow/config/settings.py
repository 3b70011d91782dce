"""
Application settings using Pydantic.

Provides environment-based configuration loading with OPFLOW_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings

# Kinds whose objects live outside any namespace. Owner references and the
# instance namespace are only applied to namespaced objects.
DEFAULT_CLUSTER_SCOPED_KINDS = [
    "APIService",
    "ClusterRole",
    "ClusterRoleBinding",
    "CustomResourceDefinition",
    "MutatingWebhookConfiguration",
    "Namespace",
    "Node",
    "PersistentVolume",
    "PriorityClass",
    "StorageClass",
    "ValidatingWebhookConfiguration",
]


class Settings(BaseSettings):
    """Application settings."""

    # Logging
    log_level: str = "INFO"

    # Resource store: memory, kubernetes
    store_backend: str = "memory"

    # Kubernetes
    kubeconfig: str | None = None
    kube_context: str | None = None
    request_timeout: int = 30
    field_manager: str = "opflow"

    # Conventions
    label_domain: str = "opflow.dev"
    heritage: str = "opflow"
    cluster_scoped_kinds: list[str] = DEFAULT_CLUSTER_SCOPED_KINDS

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "OPFLOW_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
