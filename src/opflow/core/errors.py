"""
Unified error handling for opflow.

Every error raised by the engine derives from OpflowError, which carries a
human readable message and a dict of structured details for logging.

Execution errors are classified: ExecutionError.fatal decides whether a plan
aborts (fatal) or the failing step is retried on the next tick (transient).
Propagation never inspects the wrapped cause, only the flag.

Event names:
- UnknownTaskName: a step references a task missing from the catalog
- UnknownTaskKind: a task could not be built (unknown kind, invalid spec)
- TaskRenderingError: template lookup, rendering or manifest parsing failed
- TaskEnhancementError: conventions could not be applied (retried)
- FailedTerminalStateError: a resource will never become healthy
- TaskExecutionError: unclassified failure raised by a task kind
- ResourceRejectedError: the store permanently refused an object
- ResourceValidationError: a rendered object is unusable for its task
- DummyTaskError, ToggleTaskError, PipeTaskError: failures of those kinds
"""

from __future__ import annotations

from typing import Any

import structlog

logger = structlog.get_logger()

UNKNOWN_TASK_NAME = "UnknownTaskName"
UNKNOWN_TASK_KIND = "UnknownTaskKind"
TASK_RENDERING_ERROR = "TaskRenderingError"
TASK_ENHANCEMENT_ERROR = "TaskEnhancementError"
FAILED_TERMINAL_STATE = "FailedTerminalStateError"
TASK_EXECUTION_ERROR = "TaskExecutionError"
DUMMY_TASK_ERROR = "DummyTaskError"
TOGGLE_TASK_ERROR = "ToggleTaskError"
PIPE_TASK_ERROR = "PipeTaskError"
RESOURCE_REJECTED = "ResourceRejectedError"
RESOURCE_VALIDATION_ERROR = "ResourceValidationError"


class OpflowError(Exception):
    """Base exception for opflow errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(OpflowError):
    """Raised for configuration-related errors."""


class ExecutionError(OpflowError):
    """A classified plan execution error.

    ``fatal`` decides propagation: fatal errors abort the plan, transient ones
    mark the step as ERROR and are retried on the next tick. ``event_name`` is
    the identifier published for observability and alerting.
    """

    fatal: bool = False

    def __init__(
        self,
        message: str,
        *,
        fatal: bool | None = None,
        event_name: str | None = None,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        if fatal is not None:
            self.fatal = fatal
        self.event_name = event_name
        self.cause = cause

    def __str__(self) -> str:
        return f"Error during execution: {self.message}"


class FatalExecutionError(ExecutionError):
    """Unrecoverable failure: the plan is marked FATAL_ERROR."""

    fatal = True


class TransientExecutionError(ExecutionError):
    """Retryable failure: the step is marked ERROR, the plan keeps going."""

    fatal = False


class TaskBuildError(OpflowError):
    """Raised when a task specification cannot be turned into a task kind."""


class TemplateError(OpflowError):
    """Raised when a template cannot be parsed or expanded."""


class TemplateNotFoundError(TemplateError):
    """Raised when a task references a template missing from the catalog."""

    def __init__(self, name: str):
        super().__init__(f"error finding resource named {name}", {"template": name})
        self.name = name


class ManifestError(OpflowError):
    """Raised when rendered text is not a valid resource manifest."""


class EnhancementError(OpflowError):
    """Raised when conventions cannot be applied to rendered manifests."""


class StoreError(OpflowError):
    """Raised when the resource store rejects or fails a request."""


class NotFoundError(StoreError):
    """Raised when the requested object does not exist in the store."""


class UnsupportedPatchError(StoreError):
    """Raised when a resource kind does not accept the requested patch type."""


class RejectedError(StoreError):
    """Raised when the store refuses an object as invalid; retrying cannot succeed."""


class ResourceNotHealthyError(OpflowError):
    """Raised when an applied resource has not become healthy yet."""


class ResourceTerminallyFailedError(ResourceNotHealthyError):
    """Raised when an applied resource will never become healthy."""


class PackageLoadError(OpflowError):
    """Raised when an operator package cannot be read."""


class ParameterError(OpflowError):
    """Raised when plan parameters cannot be resolved."""


def format_error_message(error: OpflowError) -> str:
    """Format an error message for display."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def fatal_execution_error(cause: BaseException, event_name: str, meta: Any) -> FatalExecutionError:
    """Wrap ``cause`` as a fatal error located at the task described by ``meta``."""
    message = (
        f"{meta.instance_namespace}/{meta.instance_name} failed in "
        f"{meta.plan_name}.{meta.phase_name}.{meta.step_name}.{meta.task_name}: {cause}"
    )
    logger.debug("fatal_execution_error", event_name=event_name, error=message)
    return FatalExecutionError(message, event_name=event_name, cause=cause)
