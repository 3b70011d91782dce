"""
Operator package specifications.

Plans, tasks, parameters and templates as declared by operator authors.
"""

from opflow.specs.loader import load_package
from opflow.specs.models import (
    OperatorPackage,
    Parameter,
    Phase,
    PipeFile,
    Plan,
    Step,
    Strategy,
    Task,
    TaskSpec,
)
from opflow.specs.parameters import resolve_parameters
from opflow.specs.template import SubstitutionEngine, TemplateEngine
from opflow.specs.validator import VerificationResult, verify_package

__all__ = [
    "OperatorPackage",
    "Parameter",
    "Phase",
    "PipeFile",
    "Plan",
    "Step",
    "Strategy",
    "SubstitutionEngine",
    "Task",
    "TaskSpec",
    "TemplateEngine",
    "VerificationResult",
    "load_package",
    "resolve_parameters",
    "verify_package",
]
