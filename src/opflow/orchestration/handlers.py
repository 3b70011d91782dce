"""Built-in task kinds."""

from __future__ import annotations

import base64
import copy
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

import structlog

from opflow.core.errors import (
    DUMMY_TASK_ERROR,
    FAILED_TERMINAL_STATE,
    PIPE_TASK_ERROR,
    RESOURCE_REJECTED,
    RESOURCE_VALIDATION_ERROR,
    TASK_ENHANCEMENT_ERROR,
    TASK_RENDERING_ERROR,
    TOGGLE_TASK_ERROR,
    EnhancementError,
    ExecutionError,
    ManifestError,
    RejectedError,
    ResourceNotHealthyError,
    ResourceTerminallyFailedError,
    TaskBuildError,
    TemplateError,
    TransientExecutionError,
    fatal_execution_error,
)
from opflow.orchestration.registry import TaskContext, TaskKind, TaskKindRegistry
from opflow.resources.render import load_documents, render_manifests, render_resources, variable_map
from opflow.specs.models import PipeFile, Plan, Task
from opflow.specs.parameters import parse_bool

logger = structlog.get_logger()

APPLY = "Apply"
DELETE = "Delete"
DUMMY = "Dummy"
PIPE = "Pipe"
TOGGLE = "Toggle"

PIPE_FILE_KINDS = ("Secret", "ConfigMap")
PIPE_CONTAINER_NAME = "waiter"
# API server limit for a Secret or ConfigMap
MAX_PIPE_FILE_SIZE = 1024 * 1024

_PIPE_KEY_RE = re.compile(r"^[a-zA-Z0-9_\-]+$")
_PIPE_FILE_NAME_RE = re.compile(r"^[-._a-zA-Z0-9]+$")
_ENV_NAME_RE = re.compile(r"^[-._a-zA-Z][-._a-zA-Z0-9]*$")
_NAME_PART_RE = re.compile(r"[^a-z0-9]")


def _enhance(manifests: List[Dict[str, Any]], ctx: TaskContext) -> List[Dict[str, Any]]:
    try:
        return ctx.enhancer.apply(manifests, ctx.meta)
    except ExecutionError:
        raise
    except EnhancementError as e:
        raise TransientExecutionError(
            f"enhancing resources of task {ctx.meta.task_name}: {e}",
            event_name=TASK_ENHANCEMENT_ERROR,
            cause=e,
        ) from e


def _render_and_enhance(resources: List[str], ctx: TaskContext) -> List[Dict[str, Any]]:
    """Render a task's templates and apply conventions to the result.

    Rendering failures are fatal: the same inputs will fail the same way on
    every retry. Enhancement failures are retried unless the enhancer raised
    an explicit fatal error.
    """
    try:
        manifests = render_manifests(
            resources, ctx.templates, ctx.meta, ctx.parameters, ctx.engine, ctx.pipes
        )
    except (TemplateError, ManifestError) as e:
        raise fatal_execution_error(e, TASK_RENDERING_ERROR, ctx.meta) from e
    return _enhance(manifests, ctx)


def _apply(manifests: List[Dict[str, Any]], ctx: TaskContext) -> List[Dict[str, Any]]:
    try:
        return ctx.applier.apply(manifests)
    except RejectedError as e:
        raise fatal_execution_error(e, RESOURCE_REJECTED, ctx.meta) from e


def _delete(manifests: List[Dict[str, Any]], ctx: TaskContext) -> None:
    try:
        ctx.applier.delete(manifests)
    except RejectedError as e:
        raise fatal_execution_error(e, RESOURCE_REJECTED, ctx.meta) from e


def _healthy(objects: List[Dict[str, Any]], ctx: TaskContext, task: str) -> bool:
    try:
        ctx.applier.check_health(objects)
    except ResourceTerminallyFailedError as e:
        raise fatal_execution_error(e, FAILED_TERMINAL_STATE, ctx.meta) from e
    except ResourceNotHealthyError as e:
        logger.debug("task_resources_not_healthy", task=task, reason=e.message)
        return False
    return True


@dataclass
class ApplyTask:
    """Creates or patches resources, done once all of them are healthy."""

    name: str
    resources: List[str] = field(default_factory=list)

    def run(self, ctx: TaskContext) -> bool:
        enhanced = _render_and_enhance(self.resources, ctx)
        applied = _apply(enhanced, ctx)
        return _healthy(applied, ctx, self.name)


@dataclass
class DeleteTask:
    """Deletes resources with cascading propagation, done once all are gone."""

    name: str
    resources: List[str] = field(default_factory=list)

    def run(self, ctx: TaskContext) -> bool:
        enhanced = _render_and_enhance(self.resources, ctx)
        _delete(enhanced, ctx)
        return ctx.applier.all_deleted(enhanced)


@dataclass
class DummyTask:
    """Task with a scripted outcome, used to exercise plans without resources."""

    name: str
    done: bool = False
    want_err: bool = False
    fatal: bool = False

    def run(self, ctx: TaskContext) -> bool:
        if self.want_err:
            if self.fatal:
                raise fatal_execution_error(
                    RuntimeError("dummy error"), DUMMY_TASK_ERROR, ctx.meta
                )
            raise TransientExecutionError("dummy error", event_name=DUMMY_TASK_ERROR)
        return self.done


@dataclass
class ToggleTask:
    """Applies or deletes resources depending on a boolean parameter."""

    name: str
    parameter: str
    resources: List[str] = field(default_factory=list)

    def delegate(self, ctx: TaskContext) -> TaskKind:
        """The Apply or Delete task selected by the parameter's current value.

        Raises:
            ValueError: If the parameter is empty or not a boolean
        """
        value = ctx.parameters.get(self.parameter)
        if value is None or value == "":
            raise ValueError(f"empty value for parameter {self.parameter}")
        if parse_bool(value):
            return ApplyTask(name=self.name, resources=self.resources)
        return DeleteTask(name=self.name, resources=self.resources)

    def run(self, ctx: TaskContext) -> bool:
        try:
            task = self.delegate(ctx)
        except ValueError as e:
            raise fatal_execution_error(e, TOGGLE_TASK_ERROR, ctx.meta) from e
        return task.run(ctx)


def pipe_resource_name(instance: str, plan: str, phase: str, step: str, task: str, suffix: str) -> str:
    """Deterministic name for a Pipe task's pod or artifact.

    Every part is lowercased and stripped of anything but letters and digits,
    so the result is a valid object name.
    """
    parts = (instance, plan, phase, step, task, suffix)
    return ".".join(_NAME_PART_RE.sub("", part.lower()) for part in parts)


def pipe_artifacts(plan_name: str, plan: Plan, tasks: Mapping[str, Task], instance: str) -> Dict[str, str]:
    """Names of the artifacts the Pipe tasks of a plan create, keyed by pipe key."""
    pipes: Dict[str, str] = {}
    for phase in plan.phases:
        for step in phase.steps:
            for task_name in step.tasks:
                task = tasks.get(task_name)
                if task is None or task.kind != PIPE:
                    continue
                for pf in task.spec.pipe:
                    pipes[pf.key] = pipe_resource_name(
                        instance, plan_name, phase.name, step.name, task.name, pf.key
                    )
    return pipes


def parse_env_file(data: bytes) -> Dict[str, str]:
    """Parse KEY=VALUE lines; blank lines and # comments are skipped.

    Raises:
        ValueError: If the data is not UTF-8 or a line is not a valid definition
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"env file is not valid utf-8: {e}") from e

    values: Dict[str, str] = {}
    for number, line in enumerate(text.removeprefix("\ufeff").splitlines(), start=1):
        line = line.lstrip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            raise ValueError(f"{line!r} is not a valid env var definition (KEY=VAL) at line {number}")
        if not _ENV_NAME_RE.match(key):
            raise ValueError(f"{key!r} is not a valid key name at line {number}")
        values[key] = value
    return values


def _is_within(base: str, path: str) -> bool:
    if not posixpath.isabs(path):
        return False
    rel = posixpath.relpath(posixpath.normpath(path), posixpath.normpath(base))
    return rel != "." and not rel.startswith("..")


def pipe_pod(manifests: List[Dict[str, Any]], pipe_files: List[PipeFile], name: str) -> Dict[str, Any]:
    """Validate a rendered pipe pod and turn it into the pod to run.

    The pod must run a single init container that writes the pipe files into
    an emptyDir volume. A waiter container mounting the same volume keeps
    the pod alive so the files can be read once the init container is done.

    Raises:
        ValueError: If the pod cannot produce the pipe files
    """
    if len(manifests) != 1 or manifests[0].get("kind") != "Pod":
        raise ValueError("pipe pod template must render exactly one Pod")
    pod = copy.deepcopy(manifests[0])
    spec = pod["spec"] = pod.get("spec") or {}

    if spec.get("containers"):
        raise ValueError("pipe pod should not have containers, only one init container")
    init_containers = spec.get("initContainers") or []
    if len(init_containers) != 1:
        raise ValueError("pipe pod should have exactly one init container")
    mounts = init_containers[0].get("volumeMounts") or []
    if len(mounts) != 1:
        raise ValueError("pipe container should have exactly one volume mount")

    mount = mounts[0]
    volumes = {v.get("name"): v for v in spec.get("volumes") or []}
    if "emptyDir" not in (volumes.get(mount.get("name")) or {}):
        raise ValueError(f"pipe container should mount an emptyDir volume, got {mount.get('name')!r}")

    mount_path = mount.get("mountPath", "")
    for pf in pipe_files:
        if not _is_within(mount_path, pf.path):
            raise ValueError(f"pipe file {pf.path} should be a child of {mount_path} mount path")
        file_name = posixpath.basename(pf.path)
        if not _PIPE_FILE_NAME_RE.match(file_name):
            raise ValueError(
                f"pipe file name {file_name} should only contain alphanumeric characters, '.', '_' and '-'"
            )

    pod.setdefault("apiVersion", "v1")
    pod["metadata"] = {**(pod.get("metadata") or {}), "name": name}
    spec["containers"] = [
        {
            "name": PIPE_CONTAINER_NAME,
            "image": "busybox",
            "command": ["/bin/sh", "-c"],
            "args": ["sleep infinity"],
            "volumeMounts": [{"name": mount["name"], "mountPath": mount_path}],
        }
    ]
    spec.setdefault("restartPolicy", "OnFailure")
    return pod


def pipe_artifact(pf: PipeFile, data: bytes, name: str) -> Dict[str, Any]:
    """Secret or ConfigMap holding a pipe file.

    A plain file is stored under its base name; an env file contributes one
    entry per variable.

    Raises:
        ValueError: If the file is too large or not a valid env file
    """
    if len(data) > MAX_PIPE_FILE_SIZE:
        raise ValueError(f"pipe file {pf.path} size ({len(data)} bytes) exceeds max size limit of 1Mb")

    entries = parse_env_file(data) if pf.env_file else None
    metadata = {"name": name}
    if pf.kind == "Secret":
        if entries is not None:
            raw = {k: v.encode() for k, v in entries.items()}
        else:
            raw = {posixpath.basename(pf.path): data}
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": metadata,
            "type": "Opaque",
            "data": {k: base64.b64encode(v).decode("ascii") for k, v in raw.items()},
        }
    if entries is not None:
        return {"apiVersion": "v1", "kind": "ConfigMap", "metadata": metadata, "data": entries}
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": metadata,
        "binaryData": {posixpath.basename(pf.path): base64.b64encode(data).decode("ascii")},
    }


@dataclass
class PipeTask:
    """Runs a pod that generates files and stores them as Secrets or ConfigMaps.

    Later tasks reference the artifacts through ``${Pipes.<key>}``. The task
    is done once every artifact exists and the pod has been deleted.
    """

    name: str
    pod: str
    pipe_files: List[PipeFile] = field(default_factory=list)

    def _name(self, ctx: TaskContext, suffix: str) -> str:
        meta = ctx.meta
        return pipe_resource_name(
            meta.instance_name, meta.plan_name, meta.phase_name, meta.step_name, meta.task_name, suffix
        )

    def run(self, ctx: TaskContext) -> bool:
        meta = ctx.meta
        try:
            variables = variable_map(meta, ctx.parameters, ctx.pipes)
            text = render_resources([self.pod], ctx.templates, variables, ctx.engine)[self.pod]
            rendered = load_documents(self.pod, text)
        except (TemplateError, ManifestError) as e:
            raise fatal_execution_error(e, TASK_RENDERING_ERROR, meta) from e

        try:
            pod = pipe_pod(rendered, self.pipe_files, self._name(ctx, "pipe-pod"))
        except ValueError as e:
            raise fatal_execution_error(e, RESOURCE_VALIDATION_ERROR, meta) from e

        enhanced_pod = _enhance([pod], ctx)
        live = _apply(enhanced_pod, ctx)
        # Ready means the init container has written every file
        if not _healthy(live, ctx, self.name):
            return False

        if ctx.files is None:
            raise fatal_execution_error(
                RuntimeError("no pod file reader configured for pipe tasks"), PIPE_TASK_ERROR, meta
            )
        pod_meta = live[0]["metadata"]
        namespace = pod_meta.get("namespace") or meta.instance_namespace
        artifacts = []
        for pf in self.pipe_files:
            data = ctx.files.read_file(namespace, pod_meta["name"], PIPE_CONTAINER_NAME, pf.path)
            try:
                artifacts.append(pipe_artifact(pf, data, self._name(ctx, pf.key)))
            except ValueError as e:
                raise fatal_execution_error(e, PIPE_TASK_ERROR, meta) from e

        _apply(_enhance(artifacts, ctx), ctx)
        _delete(enhanced_pod, ctx)
        logger.info(
            "pipe_task_artifacts_created",
            task=self.name,
            artifacts=[a["metadata"]["name"] for a in artifacts],
        )
        return True


def _require_resources(task: Task) -> List[str]:
    if not task.spec.resources:
        raise TaskBuildError(
            f"task validation error: {task.kind.lower()} task '{task.name}' has an empty "
            "resource list. if that's what you need, use a Dummy task instead",
            {"task": task.name, "kind": task.kind},
        )
    return list(task.spec.resources)


def build_apply(task: Task) -> ApplyTask:
    return ApplyTask(name=task.name, resources=_require_resources(task))


def build_delete(task: Task) -> DeleteTask:
    return DeleteTask(name=task.name, resources=_require_resources(task))


def build_dummy(task: Task) -> DummyTask:
    return DummyTask(
        name=task.name,
        done=task.spec.done,
        want_err=task.spec.want_err,
        fatal=task.spec.fatal,
    )


def build_pipe(task: Task) -> PipeTask:
    details = {"task": task.name, "kind": task.kind}
    if not task.spec.pod:
        raise TaskBuildError(f"task validation error: pipe task '{task.name}' has no pod template", details)
    if not task.spec.pipe:
        raise TaskBuildError(
            f"task validation error: pipe task '{task.name}' has an empty pipe files list", details
        )
    for pf in task.spec.pipe:
        if bool(pf.file) == bool(pf.env_file):
            raise TaskBuildError(
                f"task validation error: pipe file {pf.key!r} must have either 'file' or 'envFile' "
                "field set but not both",
                details,
            )
        if pf.kind not in PIPE_FILE_KINDS:
            raise TaskBuildError(
                f"task validation error: invalid pipe kind {pf.kind!r} (must be Secret or ConfigMap)",
                details,
            )
        if not _PIPE_KEY_RE.match(pf.key):
            raise TaskBuildError(
                f"task validation error: invalid pipe key {pf.key!r} "
                "(only letters, numbers and _ and - are allowed)",
                details,
            )
    return PipeTask(name=task.name, pod=task.spec.pod, pipe_files=list(task.spec.pipe))


def build_toggle(task: Task) -> ToggleTask:
    resources = _require_resources(task)
    if not task.spec.parameter:
        raise TaskBuildError(
            f"task validation error: toggle task '{task.name}' has an empty parameter",
            {"task": task.name, "kind": task.kind},
        )
    return ToggleTask(name=task.name, parameter=task.spec.parameter, resources=resources)


def register_builtin_kinds(registry: TaskKindRegistry) -> None:
    """Register the built-in task kinds on a registry."""
    registry.register(APPLY, build_apply)
    registry.register(DELETE, build_delete)
    registry.register(DUMMY, build_dummy)
    registry.register(PIPE, build_pipe)
    registry.register(TOGGLE, build_toggle)
