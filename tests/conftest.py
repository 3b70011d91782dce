"""Root test configuration."""

import logging

import pytest
import structlog
from opflow.domain.models import Metadata, OwnerReference, TaskMetadata
from opflow.providers.memory import InMemoryResourceStore
from opflow.resources.conventions import Conventions


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def owner():
    """Instance owning every resource created by its plans."""
    return OwnerReference(api_version="opflow.dev/v1", kind="Instance", name="zk", uid="instance-uid")


@pytest.fixture
def metadata(owner):
    """Execution metadata for the 'zk' instance of the zookeeper operator."""
    return Metadata(
        instance_name="zk",
        instance_namespace="default",
        operator_name="zookeeper",
        operator_version="0.3.0",
        app_version="3.6.2",
        resources_owner=owner,
    )


@pytest.fixture
def task_meta(metadata):
    """Metadata narrowed to the first task of the deploy plan."""
    return TaskMetadata.for_task(
        metadata,
        plan_name="deploy",
        plan_uid="plan-uid",
        phase_name="main",
        step_name="everything",
        step_number=0,
        task_name="app",
    )


@pytest.fixture
def conventions():
    return Conventions()


@pytest.fixture
def store():
    return InMemoryResourceStore()
