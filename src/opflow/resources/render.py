"""
Resource rendering.

Expands the templates a task references with the instance parameters and
the execution metadata, then parses the result into manifests. Rendering is
a pure function of its inputs: the same task, parameters and metadata always
yield identical manifests, which keeps repeated ticks from flapping.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import yaml

from opflow.core.errors import ManifestError, TemplateNotFoundError
from opflow.domain.models import TaskMetadata
from opflow.providers.base import ObjectKey
from opflow.specs.template import TemplateEngine


def variable_map(
    meta: TaskMetadata,
    parameters: Mapping[str, Any],
    pipes: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Variables available to templates. ``Pipes`` maps pipe keys to artifact names."""
    return {
        "OperatorName": meta.operator_name,
        "Name": meta.instance_name,
        "Namespace": meta.instance_namespace,
        "AppVersion": meta.app_version,
        "OperatorVersion": meta.operator_version,
        "PlanName": meta.plan_name,
        "PhaseName": meta.phase_name,
        "StepName": meta.step_name,
        "StepNumber": meta.step_number,
        "TaskName": meta.task_name,
        "Params": dict(parameters),
        "Pipes": dict(pipes or {}),
    }


def render_resources(
    names: Sequence[str],
    templates: Mapping[str, str],
    variables: Mapping[str, Any],
    engine: TemplateEngine,
) -> dict[str, str]:
    """Render the named templates, keeping the order of ``names``.

    Raises:
        TemplateNotFoundError: If a name is missing from the template catalog
        TemplateError: If a template cannot be expanded
    """
    rendered: dict[str, str] = {}
    for name in names:
        if name not in templates:
            raise TemplateNotFoundError(name)
        rendered[name] = engine.render(name, templates[name], variables)
    return rendered


def load_documents(name: str, text: str) -> list[dict[str, Any]]:
    """Parse one rendered template into its non-empty YAML documents.

    Raises:
        ManifestError: If the text is not valid YAML or a document is not a mapping
    """
    try:
        documents = list(yaml.safe_load_all(text))
    except yaml.YAMLError as e:
        raise ManifestError(f"parsing YAML from {name}: {e}", {"template": name}) from e

    loaded: list[dict[str, Any]] = []
    for doc in documents:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ManifestError(f"document in {name} is not a mapping", {"template": name})
        loaded.append(doc)
    return loaded


def parse_manifests(rendered: Mapping[str, str]) -> list[dict[str, Any]]:
    """Parse rendered YAML (possibly multi-document) into manifests, in order.

    Raises:
        ManifestError: If a document is not valid YAML or not a resource
    """
    manifests: list[dict[str, Any]] = []
    for name, text in rendered.items():
        for doc in load_documents(name, text):
            ObjectKey.from_manifest(doc)
            manifests.append(doc)
    return manifests


def render_manifests(
    names: Sequence[str],
    templates: Mapping[str, str],
    meta: TaskMetadata,
    parameters: Mapping[str, Any],
    engine: TemplateEngine,
    pipes: Mapping[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Render and parse the named templates for the task described by ``meta``."""
    rendered = render_resources(names, templates, variable_map(meta, parameters, pipes), engine)
    return parse_manifests(rendered)
