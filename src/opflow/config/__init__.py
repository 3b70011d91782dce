"""
opflow configuration.

Pydantic-based settings read from environment variables (OPFLOW_ prefix)
and .env files.
"""

from opflow.config.settings import DEFAULT_CLUSTER_SCOPED_KINDS, Settings, get_settings

__all__ = [
    "DEFAULT_CLUSTER_SCOPED_KINDS",
    "Settings",
    "get_settings",
]
