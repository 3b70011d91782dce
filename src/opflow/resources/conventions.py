"""Label and annotation keys stamped onto every managed resource."""

from __future__ import annotations

from dataclasses import dataclass, field

from opflow.config import DEFAULT_CLUSTER_SCOPED_KINDS, Settings

HERITAGE_LABEL = "heritage"


@dataclass(frozen=True)
class Conventions:
    domain: str = "opflow.dev"
    heritage: str = "opflow"
    cluster_scoped_kinds: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_CLUSTER_SCOPED_KINDS)
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> Conventions:
        return cls(
            domain=settings.label_domain,
            heritage=settings.heritage,
            cluster_scoped_kinds=frozenset(settings.cluster_scoped_kinds),
        )

    def _key(self, name: str) -> str:
        return f"{self.domain}/{name}"

    @property
    def operator_label(self) -> str:
        return self._key("operator")

    @property
    def instance_label(self) -> str:
        return self._key("instance")

    @property
    def plan_annotation(self) -> str:
        return self._key("plan")

    @property
    def phase_annotation(self) -> str:
        return self._key("phase")

    @property
    def step_annotation(self) -> str:
        return self._key("step")

    @property
    def operator_version_annotation(self) -> str:
        return self._key("operator-version")

    @property
    def plan_uid_annotation(self) -> str:
        return self._key("last-plan-execution-uid")

    @property
    def dependencies_hash_annotation(self) -> str:
        return self._key("dependencies-hash")

    @property
    def skip_hash_annotation(self) -> str:
        return self._key("skip-hash-calculation")

    @property
    def last_applied_annotation(self) -> str:
        return self._key("last-applied-configuration")

    def is_namespaced(self, kind: str) -> bool:
        return kind not in self.cluster_scoped_kinds
