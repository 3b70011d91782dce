"""Core modules for opflow - centralized definitions and utilities."""

from opflow.core.errors import (
    ConfigurationError,
    EnhancementError,
    ExecutionError,
    FatalExecutionError,
    ManifestError,
    NotFoundError,
    OpflowError,
    PackageLoadError,
    ParameterError,
    RejectedError,
    ResourceNotHealthyError,
    ResourceTerminallyFailedError,
    StoreError,
    TaskBuildError,
    TemplateError,
    TemplateNotFoundError,
    TransientExecutionError,
    UnsupportedPatchError,
    fatal_execution_error,
    format_error_message,
)

__all__ = [
    "OpflowError",
    "ConfigurationError",
    "ExecutionError",
    "FatalExecutionError",
    "TransientExecutionError",
    "TaskBuildError",
    "TemplateError",
    "TemplateNotFoundError",
    "ManifestError",
    "EnhancementError",
    "StoreError",
    "NotFoundError",
    "UnsupportedPatchError",
    "ResourceNotHealthyError",
    "ResourceTerminallyFailedError",
    "PackageLoadError",
    "ParameterError",
    "RejectedError",
    "fatal_execution_error",
    "format_error_message",
]
