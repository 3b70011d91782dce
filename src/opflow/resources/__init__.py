from __future__ import annotations

from opflow.resources.applier import ResourceApplier
from opflow.resources.conventions import Conventions
from opflow.resources.enhancer import ConventionEnhancer, DefaultEnhancer
from opflow.resources.health import DefaultHealthEvaluator, HealthEvaluator, HealthReport
from opflow.resources.render import parse_manifests, render_manifests, render_resources, variable_map

__all__ = [
    "ConventionEnhancer",
    "Conventions",
    "DefaultEnhancer",
    "DefaultHealthEvaluator",
    "HealthEvaluator",
    "HealthReport",
    "ResourceApplier",
    "parse_manifests",
    "render_manifests",
    "render_resources",
    "variable_map",
]
